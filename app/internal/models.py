from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

UNKNOWN_CHAPTER_NUMBER = "unknown"


class CanonicalModel(BaseModel):
    """Shared config: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(  # pyright: ignore[reportUnannotatedClassAttribute]
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class WorkStatus(str, Enum):
    ongoing = "ONGOING"
    completed = "COMPLETED"
    hiatus = "HIATUS"
    cancelled = "CANCELLED"
    unknown = "UNKNOWN"


class Work(CanonicalModel):
    id: str
    """Only unique within provider_id"""
    title: str
    cover_image_url: Optional[str] = None
    source_url: str
    provider_id: str
    description: Optional[str] = None
    genres: list[str] = Field(default_factory=list)
    status: Optional[WorkStatus] = None


class Chapter(CanonicalModel):
    id: str
    """Opaque token carrying whatever the provider needs to resolve the chapter pages"""
    title: str
    chapter_number: str = UNKNOWN_CHAPTER_NUMBER


class Page(CanonicalModel):
    index: int
    """1-based, in reading order"""
    image_url: str


class WorkDetails(Work):
    chapters: list[Chapter] = Field(default_factory=list)

    @computed_field
    @property
    def total_chapters(self) -> int:
        return len(self.chapters)


class SearchResults(CanonicalModel):
    results: list[Work] = Field(default_factory=list)
    current_page: int = 1
    has_next_page: bool = False


class RecentChapter(CanonicalModel):
    chapter_id: str
    chapter_title: str
    chapter_number: str = UNKNOWN_CHAPTER_NUMBER
    work_id: str
    work_title: str
    cover_image_url: Optional[str] = None
    chapter_url: str
    work_url: str
    provider_id: str


class RecentChapters(CanonicalModel):
    results: list[RecentChapter] = Field(default_factory=list)
    current_page: int = 1
    has_next_page: bool = False


class HomeFeed(CanonicalModel):
    """Front page of a provider: featured chapter releases and trending works."""

    featured_chapters: list[RecentChapter] = Field(default_factory=list)
    trending: list[Work] = Field(default_factory=list)


class CatalogueFilters(CanonicalModel):
    genres: list[str]
    types: list[str]
    statuses: list[str]


class Envelope(CanonicalModel):
    """Uniform response for every metadata operation."""

    status: Literal["success", "error"]
    provider: Optional[str] = None
    cached: Optional[bool] = None
    data: Optional[Any] = None
    results: Optional[list[Any]] = None
    current_page: Optional[int] = None
    has_next_page: Optional[bool] = None
    message: Optional[str] = None
    error_type: Optional[str] = Field(default=None, exclude=True)

    @classmethod
    def failure(
        cls, message: str, provider: str | None, error_type: str
    ) -> "Envelope":
        return cls(
            status="error", provider=provider, message=message, error_type=error_type
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
