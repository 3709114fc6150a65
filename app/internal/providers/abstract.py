import asyncio
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

import aiohttp
from aiohttp import ClientSession

from app.internal.env_settings import ApplicationSettings
from app.internal.models import (
    CatalogueFilters,
    HomeFeed,
    Page,
    RecentChapters,
    SearchResults,
    WorkDetails,
)
from app.util.exceptions import (
    FetchError,
    RateLimitError,
    UnsupportedOperationError,
)
from app.util.log import logger

QueryParams = Mapping[str, Any] | Sequence[tuple[str, Any]]


class MangaProvider(ABC):
    """One upstream source translated into the canonical model."""

    id: str
    name: str
    base_url: str
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"

    def __init__(self, settings: ApplicationSettings):
        self.settings = settings

    def default_headers(self) -> dict[str, str]:
        return {
            "Accept": self.accept,
            "Accept-Language": "en-US,en;q=0.5",
            "User-Agent": self.settings.user_agent,
            "Cache-Control": "no-cache",
        }

    async def fetch_text(
        self,
        client_session: ClientSession,
        url: str,
        params: Optional[QueryParams] = None,
    ) -> tuple[str, str]:
        """
        Single GET bounded by the configured timeout. Never retried.

        Returns the body and the final URL after redirects.
        """
        try:
            async with client_session.get(
                url,
                params=params,
                headers=self.default_headers(),
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout),
            ) as response:
                if response.status == 429:
                    raise RateLimitError(
                        f"{self.name} is rate limiting requests (HTTP 429)", self.id
                    )
                if not response.ok:
                    logger.warning(
                        f"{self.name} returned {response.status}",
                        url=url,
                        reason=response.reason,
                    )
                    raise FetchError(
                        f"{self.name} returned {response.status}: {response.reason}",
                        self.id,
                        status=response.status,
                    )
                body = await response.text()
                return body, str(response.url)
        except asyncio.TimeoutError as e:
            raise FetchError(
                f"{self.name} did not answer within {self.settings.request_timeout:g}s",
                self.id,
            ) from e
        except aiohttp.ClientError as e:
            raise FetchError(f"{self.name} request failed: {e}", self.id) from e

    def describe(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "baseUrl": self.base_url}

    @abstractmethod
    async def search(
        self, client_session: ClientSession, query: str, page: int = 1
    ) -> SearchResults: ...

    @abstractmethod
    async def get_details(
        self, client_session: ClientSession, work_id: str
    ) -> WorkDetails: ...

    @abstractmethod
    async def get_pages(
        self, client_session: ClientSession, chapter_id: str
    ) -> list[Page]: ...

    # Catalogue operations only some providers offer

    async def advanced_search(
        self,
        client_session: ClientSession,
        query: str = "",
        genre: str = "",
        type: str = "",
        status: str = "",
        page: int = 1,
    ) -> SearchResults:
        raise UnsupportedOperationError("advanced_search", self.id)

    async def recent_chapters(
        self, client_session: ClientSession, page: int = 1
    ) -> RecentChapters:
        raise UnsupportedOperationError("recent", self.id)

    async def new_works(
        self, client_session: ClientSession, page: int = 1
    ) -> SearchResults:
        raise UnsupportedOperationError("new", self.id)

    async def random_work(self, client_session: ClientSession) -> WorkDetails:
        raise UnsupportedOperationError("random", self.id)

    async def home_feed(self, client_session: ClientSession) -> HomeFeed:
        raise UnsupportedOperationError("home", self.id)

    def catalogue_filters(self) -> CatalogueFilters:
        raise UnsupportedOperationError("genres", self.id)
