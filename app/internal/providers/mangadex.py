"""
MangaDex provider backed by the public JSON API (https://api.mangadex.org).
"""
import json
from typing import Any, Optional, TypeVar

from aiohttp import ClientSession
from pydantic import BaseModel, Field, ValidationError

from app.internal.models import (
    UNKNOWN_CHAPTER_NUMBER,
    Chapter,
    Page,
    SearchResults,
    Work,
    WorkDetails,
    WorkStatus,
)
from app.internal.providers.abstract import MangaProvider, QueryParams
from app.util.exceptions import (
    FetchError,
    ParseError,
    RateLimitError,
    handle_validation_error,
)
from app.util.log import logger

M = TypeVar("M", bound=BaseModel)

SEARCH_LIMIT = 20
FEED_LIMIT = 500
INCLUDES = [("includes[]", "cover_art"), ("includes[]", "author"), ("includes[]", "artist")]

STATUS_MAP = {
    "ongoing": WorkStatus.ongoing,
    "completed": WorkStatus.completed,
    "hiatus": WorkStatus.hiatus,
    "cancelled": WorkStatus.cancelled,
}

# MangaDex serializes an empty localized string as [] instead of {}
LocalizedString = dict[str, str] | list[Any]


class MangaDexRelationship(BaseModel):
    id: str = ""
    type: str
    attributes: Optional[dict[str, Any]] = None


class MangaDexTag(BaseModel):
    attributes: dict[str, Any] = Field(default_factory=dict)


class MangaDexMangaAttributes(BaseModel):
    title: LocalizedString = Field(default_factory=dict)
    description: LocalizedString = Field(default_factory=dict)
    status: Optional[str] = None
    tags: list[MangaDexTag] = Field(default_factory=list)


class MangaDexManga(BaseModel):
    id: str
    attributes: MangaDexMangaAttributes
    relationships: list[MangaDexRelationship] = Field(default_factory=list)


class MangaDexMangaList(BaseModel):
    data: list[MangaDexManga]
    total: int = 0


class MangaDexMangaEntity(BaseModel):
    data: MangaDexManga


class MangaDexChapterAttributes(BaseModel):
    title: Optional[str] = None
    chapter: Optional[str] = None


class MangaDexChapter(BaseModel):
    id: str
    attributes: MangaDexChapterAttributes


class MangaDexFeed(BaseModel):
    data: list[MangaDexChapter]


class MangaDexAtHomeChapter(BaseModel):
    hash: str
    data: list[str]


class MangaDexAtHome(BaseModel):
    baseUrl: str
    chapter: MangaDexAtHomeChapter


def localized(value: LocalizedString, language: str = "en") -> str:
    if not isinstance(value, dict) or not value:
        return ""
    return value.get(language) or next(iter(value.values()), "")


def normalize_status(raw: str | None) -> WorkStatus:
    if not raw:
        return WorkStatus.unknown
    return STATUS_MAP.get(raw.lower(), WorkStatus.unknown)


class MangaDexProvider(MangaProvider):
    id = "mangadex"
    name = "MangaDex"
    base_url = "https://mangadex.org"
    api_url = "https://api.mangadex.org"
    covers_url = "https://uploads.mangadex.org/covers"
    accept = "application/json"

    async def fetch_json(
        self,
        client_session: ClientSession,
        url: str,
        params: Optional[QueryParams] = None,
    ) -> dict[str, Any]:
        body, _ = await self.fetch_text(client_session, url, params=params)
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            logger.error(
                "MangaDex returned a non-JSON response",
                url=url,
                preview=body[:200],
            )
            raise RateLimitError(
                "MangaDex API returned an invalid response (possibly rate limited)",
                self.id,
            ) from e

        if not isinstance(payload, dict):
            raise ParseError("Unexpected response format from MangaDex API", self.id)
        if payload.get("result") == "error":
            errors = payload.get("errors") or [{}]
            raise FetchError(errors[0].get("detail") or "MangaDex API error", self.id)
        return payload

    def validate(self, model: type[M], payload: dict[str, Any], data_source: str) -> M:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            handle_validation_error(e, data_source)
            raise ParseError(f"Unexpected {data_source} format", self.id) from e

    def cover_url(self, manga: MangaDexManga) -> Optional[str]:
        for relationship in manga.relationships:
            if relationship.type != "cover_art" or not relationship.attributes:
                continue
            file_name = relationship.attributes.get("fileName")
            if file_name:
                return f"{self.covers_url}/{manga.id}/{file_name}"
        return None

    def to_work(self, manga: MangaDexManga) -> Work:
        attributes = manga.attributes
        return Work(
            id=manga.id,
            title=localized(attributes.title) or manga.id,
            cover_image_url=self.cover_url(manga),
            source_url=f"{self.base_url}/title/{manga.id}",
            provider_id=self.id,
            description=localized(attributes.description),
            genres=[
                name
                for tag in attributes.tags
                if (name := localized(tag.attributes.get("name") or {}))
            ],
            status=normalize_status(attributes.status),
        )

    def to_chapter(self, chapter: MangaDexChapter) -> Chapter:
        number = chapter.attributes.chapter
        if chapter.attributes.title:
            title = chapter.attributes.title
        elif number:
            title = f"Chapter {number}"
        else:
            title = "Oneshot"
        return Chapter(
            id=chapter.id,
            title=title,
            chapter_number=number or UNKNOWN_CHAPTER_NUMBER,
        )

    async def search(
        self, client_session: ClientSession, query: str, page: int = 1
    ) -> SearchResults:
        offset = (max(page, 1) - 1) * SEARCH_LIMIT
        params = [
            ("title", query),
            ("limit", SEARCH_LIMIT),
            ("offset", offset),
            *INCLUDES,
        ]
        payload = await self.fetch_json(client_session, f"{self.api_url}/manga", params)
        listing = self.validate(MangaDexMangaList, payload, "MangaDex search response")

        return SearchResults(
            results=[self.to_work(manga) for manga in listing.data],
            current_page=page,
            has_next_page=listing.total > offset + SEARCH_LIMIT,
        )

    async def get_details(
        self, client_session: ClientSession, work_id: str
    ) -> WorkDetails:
        payload = await self.fetch_json(
            client_session, f"{self.api_url}/manga/{work_id}", INCLUDES
        )
        entity = self.validate(MangaDexMangaEntity, payload, "MangaDex manga response")

        feed_params = [
            ("limit", FEED_LIMIT),
            ("translatedLanguage[]", "en"),
            ("order[chapter]", "desc"),
        ]
        feed_payload = await self.fetch_json(
            client_session, f"{self.api_url}/manga/{work_id}/feed", feed_params
        )
        feed = self.validate(MangaDexFeed, feed_payload, "MangaDex chapter feed")

        work = self.to_work(entity.data)
        return WorkDetails(
            **work.model_dump(),
            chapters=[self.to_chapter(chapter) for chapter in feed.data],
        )

    async def get_pages(
        self, client_session: ClientSession, chapter_id: str
    ) -> list[Page]:
        payload = await self.fetch_json(
            client_session, f"{self.api_url}/at-home/server/{chapter_id}"
        )
        at_home = self.validate(MangaDexAtHome, payload, "MangaDex at-home response")

        base = at_home.baseUrl.rstrip("/")
        return [
            Page(index=index, image_url=f"{base}/data/{at_home.chapter.hash}/{file_name}")
            for index, file_name in enumerate(at_home.chapter.data, start=1)
        ]
