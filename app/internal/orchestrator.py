import json
from enum import Enum
from typing import Any, Mapping, Optional

from aiohttp import ClientSession

from app.internal.env_settings import CacheSettings
from app.internal.models import Envelope, RecentChapters, SearchResults
from app.internal.providers import MangaProvider
from app.util.cache import MetadataCache
from app.util.exceptions import (
    ProviderError,
    UnsupportedProviderError,
    handle_external_api_error,
)
from app.util.log import logger, request_context


class Operation(str, Enum):
    search = "search"
    details = "details"
    pages = "pages"
    advanced_search = "advanced_search"
    recent = "recent"
    new = "new"
    random = "random"
    home = "home"
    genres = "genres"


LISTING_OPERATIONS = {
    Operation.search,
    Operation.advanced_search,
    Operation.recent,
    Operation.new,
}


class InvalidParamsError(ValueError):
    pass


def cache_key(operation: Operation, provider_id: str, params: Mapping[str, Any]) -> str:
    """Deterministic key: equal params give equal keys, providers never share keys."""
    encoded = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
    return f"{operation.value}:{provider_id}:{encoded}"


def _page(params: Mapping[str, Any]) -> int:
    try:
        page = int(params.get("page") or 1)
    except (TypeError, ValueError):
        raise InvalidParamsError(f"Invalid page: {params.get('page')!r}")
    return max(page, 1)


def _required(params: Mapping[str, Any], name: str) -> str:
    value = str(params.get(name) or "").strip()
    if not value:
        raise InvalidParamsError(f"Missing required parameter '{name}'")
    return value


def normalize_params(operation: Operation, params: Mapping[str, Any]) -> dict[str, Any]:
    """Canonical parameters per operation, so equivalent requests share a cache key."""
    match operation:
        case Operation.search:
            return {"query": _required(params, "query"), "page": _page(params)}
        case Operation.details:
            return {"work_id": _required(params, "work_id")}
        case Operation.pages:
            return {"chapter_id": _required(params, "chapter_id")}
        case Operation.advanced_search:
            return {
                "query": str(params.get("query") or "").strip(),
                "genre": str(params.get("genre") or "").strip(),
                "type": str(params.get("type") or "").strip(),
                "status": str(params.get("status") or "").strip(),
                "page": _page(params),
            }
        case Operation.recent | Operation.new:
            return {"page": _page(params)}
        case Operation.random | Operation.home | Operation.genres:
            return {}


class RequestOrchestrator:
    """
    Entry point for metadata operations.

    Resolves the provider, consults the metadata cache and wraps every outcome,
    success or failure, in an Envelope. Nothing is retried.
    """

    providers: dict[str, MangaProvider]
    cache: MetadataCache
    cache_settings: CacheSettings

    def __init__(
        self,
        providers: dict[str, MangaProvider],
        cache: MetadataCache,
        cache_settings: CacheSettings,
    ):
        self.providers = providers
        self.cache = cache
        self.cache_settings = cache_settings

    def ttl_for(self, operation: Operation) -> Optional[int]:
        """TTL in seconds, or None for operations that must not be cached."""
        return {
            Operation.search: self.cache_settings.search_ttl,
            Operation.details: self.cache_settings.details_ttl,
            Operation.pages: self.cache_settings.pages_ttl,
            Operation.advanced_search: self.cache_settings.advanced_search_ttl,
            Operation.recent: self.cache_settings.recent_ttl,
            Operation.new: self.cache_settings.new_ttl,
            Operation.home: self.cache_settings.home_ttl,
        }.get(operation)

    def resolve(self, provider_id: str) -> MangaProvider:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise UnsupportedProviderError(provider_id)
        return provider

    async def _invoke(
        self,
        client_session: ClientSession,
        provider: MangaProvider,
        operation: Operation,
        params: dict[str, Any],
    ) -> Any:
        match operation:
            case Operation.search:
                return await provider.search(client_session, params["query"], params["page"])
            case Operation.details:
                return await provider.get_details(client_session, params["work_id"])
            case Operation.pages:
                return await provider.get_pages(client_session, params["chapter_id"])
            case Operation.advanced_search:
                return await provider.advanced_search(client_session, **params)
            case Operation.recent:
                return await provider.recent_chapters(client_session, params["page"])
            case Operation.new:
                return await provider.new_works(client_session, params["page"])
            case Operation.random:
                return await provider.random_work(client_session)
            case Operation.home:
                return await provider.home_feed(client_session)
            case Operation.genres:
                return provider.catalogue_filters()

    async def execute(
        self,
        client_session: ClientSession,
        provider_id: str,
        operation: Operation,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Envelope:
        with request_context(provider=provider_id, operation=operation.value):
            return await self._execute(client_session, provider_id, operation, params)

    async def _execute(
        self,
        client_session: ClientSession,
        provider_id: str,
        operation: Operation,
        params: Optional[Mapping[str, Any]],
    ) -> Envelope:
        try:
            provider = self.resolve(provider_id)
        except UnsupportedProviderError as e:
            logger.warning("Unsupported provider requested")
            return Envelope.failure(e.message, provider_id, type(e).__name__)

        try:
            normalized = normalize_params(operation, params or {})
            ttl = self.ttl_for(operation)
            if ttl is None:
                value = await self._invoke(client_session, provider, operation, normalized)
                cached = False
            else:
                value, cached = await self.cache.get_or_compute(
                    cache_key(operation, provider_id, normalized),
                    ttl,
                    lambda: self._invoke(client_session, provider, operation, normalized),
                )
        except InvalidParamsError as e:
            return Envelope.failure(str(e), provider_id, type(e).__name__)
        except ProviderError as e:
            handle_external_api_error(
                e, provider.name, operation.value, params=dict(params or {})
            )
            return Envelope.failure(e.message, provider_id, type(e).__name__)
        except Exception as e:
            logger.exception("Unexpected error while handling request")
            return Envelope.failure(f"Internal error: {e}", provider_id, "InternalError")

        if operation in LISTING_OPERATIONS and isinstance(value, (SearchResults, RecentChapters)):
            return Envelope(
                status="success",
                provider=provider_id,
                cached=cached,
                results=value.results,
                current_page=value.current_page,
                has_next_page=value.has_next_page,
            )
        return Envelope(status="success", provider=provider_id, cached=cached, data=value)

    def describe_providers(self) -> list[dict[str, str]]:
        return [provider.describe() for provider in self.providers.values()]
