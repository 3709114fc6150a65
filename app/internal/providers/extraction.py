"""
Selector extraction strategies for scraped providers.

Upstream sites change their markup without notice, so every field is located
through an ordered list of CSS selectors. The first selector that matches
anything wins; later selectors only run when the earlier ones found nothing.
"""
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from app.internal.models import UNKNOWN_CHAPTER_NUMBER
from app.util.exceptions import ParseError
from app.util.log import logger

# Lazy loaders keep the real URL in a data attribute and put a placeholder in src.
LAZY_IMAGE_ATTRIBUTES = ("data-src", "data-lazy-src", "data-original", "src")

_WHITESPACE_RE = re.compile(r"\s+")
_CHAPTER_NUMBER_RE = re.compile(r"Chapter\s+(\d+(?:\.\d+)?)", re.IGNORECASE)


def parse_html(document: str) -> BeautifulSoup:
    return BeautifulSoup(document, "html.parser")


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    selectors: tuple[str, ...]
    page_marker: Optional[str] = field(default=None)
    """
    When set, a page matching this selector but none of the selectors is a
    valid empty listing rather than a parse failure.
    """

    def select(self, root: Tag, provider: str | None = None) -> list[Tag]:
        """
        Return the elements of the first selector that matches at all.

        Raises ParseError when no selector matches and the page marker (if any)
        is absent too.
        """
        for position, selector in enumerate(self.selectors):
            elements = root.select(selector)
            if elements:
                if position > 0:
                    logger.warning(
                        "Primary selector found nothing, used fallback",
                        strategy=self.name,
                        selector=selector,
                        provider=provider,
                    )
                return elements

        if self.page_marker is not None and root.select_one(self.page_marker) is not None:
            logger.debug("Listing page has no entries", strategy=self.name, provider=provider)
            return []

        raise ParseError(
            f"Could not extract {self.name}: page layout not recognised",
            provider,
        )

    def select_optional(self, root: Tag) -> list[Tag]:
        """Like select, for fields that may legitimately be absent."""
        for selector in self.selectors:
            elements = root.select(selector)
            if elements:
                return elements
        return []

    def first(self, root: Tag) -> Optional[Tag]:
        """First element of the first selector that matches, or None."""
        for selector in self.selectors:
            element = root.select_one(selector)
            if element is not None:
                return element
        return None


def strategy(name: str, *selectors: str, page_marker: str | None = None) -> ExtractionStrategy:
    return ExtractionStrategy(name=name, selectors=selectors, page_marker=page_marker)


def image_source(tag: Optional[Tag]) -> Optional[str]:
    """Pick the real image URL out of an <img> tag, preferring lazy-load attributes."""
    if tag is None:
        return None
    for name in LAZY_IMAGE_ATTRIBUTES:
        value = tag.get(name)
        if isinstance(value, str) and value.strip() and not value.startswith("data:"):
            return value.strip()
    return None


def clean_text(value: Tag | str | None) -> str:
    """Visible text with whitespace collapsed. Entities are already decoded by the parser."""
    if value is None:
        return ""
    text = value.get_text(" ", strip=True) if isinstance(value, Tag) else value
    return _WHITESPACE_RE.sub(" ", text).strip()


def tag_value(tag: Optional[Tag]) -> str:
    """Text of an element, or the content attribute of a <meta> tag."""
    if tag is None:
        return ""
    if tag.name == "meta":
        return clean_text(str(tag.get("content") or ""))
    return clean_text(tag)


def path_after(href: str | None, prefix: str) -> Optional[str]:
    """
    The path segment following prefix, e.g. "2/kimetsu-no-yaiba" for
    "/manga/2/kimetsu-no-yaiba" and prefix "/manga/".
    """
    if not href:
        return None
    path = urlparse(href).path
    _, found, rest = path.partition(prefix)
    if not found or not rest:
        return None
    return rest.strip("/") or None


def links_to_page(root: Tag, page: int) -> bool:
    """Whether any link on the page carries ?page=<page>."""
    for link in root.select("a[href]"):
        query = urlparse(str(link["href"])).query
        if parse_qs(query).get("page") == [str(page)]:
            return True
    return False


def extract_chapter_number(text: str | None) -> str:
    """Chapter number from free text like "One Piece Chapter 1170". Never raises."""
    if not text:
        return UNKNOWN_CHAPTER_NUMBER
    match = _CHAPTER_NUMBER_RE.search(text)
    return match.group(1) if match else UNKNOWN_CHAPTER_NUMBER


def absolute_url(url: str, base_url: str) -> str:
    return urljoin(f"{base_url.rstrip('/')}/", url)
