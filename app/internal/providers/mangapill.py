"""
MangaPill provider. MangaPill has no API, so everything is scraped from HTML.
"""
import re
from typing import Optional

from aiohttp import ClientSession
from bs4 import BeautifulSoup, Tag

from app.internal.models import (
    CatalogueFilters,
    Chapter,
    HomeFeed,
    Page,
    RecentChapter,
    RecentChapters,
    SearchResults,
    Work,
    WorkDetails,
    WorkStatus,
)
from app.internal.providers.abstract import MangaProvider
from app.internal.providers.extraction import (
    absolute_url,
    clean_text,
    extract_chapter_number,
    image_source,
    links_to_page,
    parse_html,
    path_after,
    strategy,
    tag_value,
)
from app.util.exceptions import ParseError
from app.util.log import logger

MANGAPILL_GENRES = [
    "Action", "Adventure", "Cars", "Comedy", "Dementia", "Demons", "Doujinshi",
    "Drama", "Ecchi", "Fantasy", "Game", "Gender Bender", "Harem", "Historical",
    "Horror", "Isekai", "Josei", "Kids", "Magic", "Martial Arts", "Mecha",
    "Military", "Music", "Mystery", "Parody", "Police", "Psychological",
    "Romance", "Samurai", "School", "Sci-Fi", "Seinen", "Shoujo", "Shoujo Ai",
    "Shounen", "Shounen Ai", "Slice of Life", "Space", "Sports", "Super Power",
    "Supernatural", "Thriller", "Tragedy", "Vampire", "Yaoi", "Yuri",
]
MANGAPILL_TYPES = ["manga", "novel", "one-shot", "doujinshi", "manhwa", "manhua"]
MANGAPILL_STATUSES = ["publishing", "finished", "on hiatus", "discontinued"]

STATUS_MAP = {
    "publishing": WorkStatus.ongoing,
    "ongoing": WorkStatus.ongoing,
    "finished": WorkStatus.completed,
    "completed": WorkStatus.completed,
    "on hiatus": WorkStatus.hiatus,
    "hiatus": WorkStatus.hiatus,
    "discontinued": WorkStatus.cancelled,
    "cancelled": WorkStatus.cancelled,
}

# Cards are extracted one element at a time, so a card missing a field never
# borrows it from its neighbour.
LISTING = strategy(
    "listing entries",
    # <div><a href="/manga/ID"><figure><img></figure></a><div><a><div>Title</div></a></div></div>
    'div.grid > div:has(a[href*="/manga/"] img)',
    # Bare anchors wrapping an image whose alt text carries the title
    'a[href*="/manga/"]:has(img)',
    page_marker='input[name="q"]',
)
LISTING_TITLE = strategy(
    "listing title",
    'a[href*="/manga/"] div.font-black',
    'a[href*="/manga/"] div.font-bold',
)

TITLE = strategy("title", "h1", 'meta[property="og:title"]')
COVER = strategy(
    "cover image",
    'img[src^="https://cdn"], img[data-src^="https://cdn"]',
    'meta[property="og:image"]',
)
DESCRIPTION = strategy("description", "p.text--secondary", 'meta[name="description"]')
GENRES = strategy("genres", 'a[href*="/search?genre="]')
CHAPTERS = strategy(
    "chapters",
    'a[href*="/chapters/"][title]',
    'a[href*="/chapters/"]',
)
PAGES = strategy("chapter pages", "img.js-page", 'img[alt*="page" i]')

RECENT_CARDS = strategy(
    "recent chapter cards",
    'div.grid > div:has(a[href*="/chapters/"]):has(a[href*="/manga/"])',
    'div:has(> a[href*="/chapters/"]):has(> a[href*="/manga/"])',
)

TRENDING_HEADING = "Trending Mangas"
FEATURED_LIMIT = 12
TRENDING_LIMIT = 10

# Pages without a Status label still mention it somewhere in their text
STATUS_WORDS_RE = re.compile(
    r"\b(on hiatus|hiatus|ongoing|publishing|completed|finished|discontinued|cancelled)\b",
    re.IGNORECASE,
)


def normalize_status(raw: str | None) -> WorkStatus:
    if not raw:
        return WorkStatus.unknown
    return STATUS_MAP.get(clean_text(raw).lower(), WorkStatus.unknown)


def find_status(soup: BeautifulSoup) -> Optional[str]:
    """Raw status text: the value next to a "Status" label, else a status word in the page."""
    for label in soup.select("label"):
        if clean_text(label).rstrip(":").lower() != "status":
            continue
        value = label.find_next_sibling(["div", "a", "span"])
        if value is not None and clean_text(value):
            return clean_text(value)

    match = STATUS_WORDS_RE.search(soup.get_text(" "))
    return match.group(1) if match else None


def _href(tag: Optional[Tag]) -> Optional[str]:
    if tag is None:
        return None
    href = tag.get("href")
    return href if isinstance(href, str) else None


def _chapter_id(href: Optional[str]) -> Optional[str]:
    # Chapter ids are always "<numeric id>/<slug>"
    chapter_id = path_after(href, "/chapters/")
    return chapter_id if chapter_id and "/" in chapter_id else None


class MangaPillProvider(MangaProvider):
    id = "mangapill"
    name = "MangaPill"
    base_url = "https://mangapill.com"

    def work_url(self, work_id: str) -> str:
        return f"{self.base_url}/manga/{work_id}"

    def chapter_url(self, chapter_id: str) -> str:
        return f"{self.base_url}/chapters/{chapter_id}"

    def _image_url(self, tag: Optional[Tag]) -> Optional[str]:
        image = image_source(tag)
        return absolute_url(image, self.base_url) if image else None

    def _listing_works(self, cards: list[Tag]) -> list[Work]:
        works: list[Work] = []
        seen: set[str] = set()
        for card in cards:
            link = card if card.name == "a" else card.select_one('a[href*="/manga/"]')
            work_id = path_after(_href(link), "/manga/")
            if not work_id or work_id in seen:
                continue

            image = card.select_one("img")
            caption = LISTING_TITLE.first(card)
            if caption is not None:
                title = clean_text(caption)
            elif image is not None:
                title = clean_text(str(image.get("alt") or ""))
            else:
                title = clean_text(link)
            if not title:
                logger.debug("Skipping listing card without a title", work_id=work_id)
                continue

            seen.add(work_id)
            works.append(
                Work(
                    id=work_id,
                    title=title,
                    cover_image_url=self._image_url(image),
                    source_url=self.work_url(work_id),
                    provider_id=self.id,
                )
            )
        return works

    def _recent_entries(self, cards: list[Tag]) -> list[RecentChapter]:
        entries: list[RecentChapter] = []
        for card in cards:
            chapter_link = card.select_one('a[href*="/chapters/"]')
            work_link = card.select_one('a[href*="/manga/"]')
            chapter_id = _chapter_id(_href(chapter_link))
            work_id = path_after(_href(work_link), "/manga/")
            if not chapter_id or not work_id:
                continue

            image = (chapter_link.select_one("img") if chapter_link else None) or card.select_one("img")
            chapter_title = clean_text(str(image.get("alt") or "")) if image else ""
            chapter_title = chapter_title or clean_text(chapter_link)
            entries.append(
                RecentChapter(
                    chapter_id=chapter_id,
                    chapter_title=chapter_title,
                    chapter_number=extract_chapter_number(chapter_title),
                    work_id=work_id,
                    work_title=clean_text(work_link),
                    cover_image_url=self._image_url(image),
                    chapter_url=self.chapter_url(chapter_id),
                    work_url=self.work_url(work_id),
                    provider_id=self.id,
                )
            )
        return entries

    def parse_listing(self, document: str, page: int = 1) -> SearchResults:
        soup = parse_html(document)
        return SearchResults(
            results=self._listing_works(LISTING.select(soup, self.id)),
            current_page=page,
            has_next_page=links_to_page(soup, page + 1),
        )

    def parse_details(self, document: str, work_id: str) -> WorkDetails:
        soup = parse_html(document)
        title = tag_value(TITLE.first(soup))
        if not title:
            raise ParseError(f"Could not find a title for '{work_id}' on MangaPill", self.id)

        cover_tag = COVER.first(soup)
        if cover_tag is not None and cover_tag.name == "meta":
            cover: Optional[str] = tag_value(cover_tag)
        else:
            cover = image_source(cover_tag)

        chapters: list[Chapter] = []
        seen: set[str] = set()
        for link in CHAPTERS.select_optional(soup):
            chapter_id = _chapter_id(_href(link))
            if not chapter_id or chapter_id in seen:
                continue
            seen.add(chapter_id)
            text = clean_text(link)
            chapters.append(
                Chapter(
                    id=chapter_id,
                    title=clean_text(str(link.get("title") or "")) or text,
                    chapter_number=extract_chapter_number(text),
                )
            )

        return WorkDetails(
            id=work_id,
            title=title,
            cover_image_url=absolute_url(cover, self.base_url) if cover else None,
            source_url=self.work_url(work_id),
            provider_id=self.id,
            description=tag_value(DESCRIPTION.first(soup)) or None,
            genres=[clean_text(link) for link in GENRES.select_optional(soup)],
            status=normalize_status(find_status(soup)),
            chapters=chapters,
        )

    def parse_pages(self, document: str) -> list[Page]:
        pages: list[Page] = []
        for image in PAGES.select(parse_html(document), self.id):
            url = self._image_url(image)
            if not url:
                continue
            pages.append(Page(index=len(pages) + 1, image_url=url))
        if not pages:
            raise ParseError("Chapter page images have no usable source", self.id)
        return pages

    def parse_recent(self, document: str, page: int = 1) -> RecentChapters:
        soup = parse_html(document)
        return RecentChapters(
            results=self._recent_entries(RECENT_CARDS.select(soup, self.id)),
            current_page=page,
            has_next_page=links_to_page(soup, page + 1),
        )

    def parse_home(self, document: str) -> HomeFeed:
        """
        The front page lists featured chapter releases first, then a grid of
        trending works under a "Trending Mangas" heading.
        """
        soup = parse_html(document)
        featured = self._recent_entries(RECENT_CARDS.select_optional(soup))[:FEATURED_LIMIT]

        trending: list[Work] = []
        heading = soup.find(string=lambda text: text is not None and TRENDING_HEADING in text)
        if heading is not None:
            section = heading.find_next("div", class_="grid")
            if isinstance(section, Tag):
                trending = self._listing_works(LISTING.select_optional(section))[:TRENDING_LIMIT]

        if not featured and not trending:
            raise ParseError("Could not extract home feed: page layout not recognised", self.id)
        return HomeFeed(featured_chapters=featured, trending=trending)

    async def search(
        self, client_session: ClientSession, query: str, page: int = 1
    ) -> SearchResults:
        params: dict[str, str | int] = {"q": query}
        if page > 1:
            params["page"] = page
        document, _ = await self.fetch_text(
            client_session, f"{self.base_url}/search", params=params
        )
        results = self.parse_listing(document, page)
        logger.debug(
            "MangaPill search completed", query=query, page=page, count=len(results.results)
        )
        return results

    async def get_details(
        self, client_session: ClientSession, work_id: str
    ) -> WorkDetails:
        document, _ = await self.fetch_text(client_session, self.work_url(work_id))
        return self.parse_details(document, work_id)

    async def get_pages(
        self, client_session: ClientSession, chapter_id: str
    ) -> list[Page]:
        document, _ = await self.fetch_text(client_session, self.chapter_url(chapter_id))
        return self.parse_pages(document)

    async def advanced_search(
        self,
        client_session: ClientSession,
        query: str = "",
        genre: str = "",
        type: str = "",
        status: str = "",
        page: int = 1,
    ) -> SearchResults:
        params: dict[str, str | int] = {}
        if query:
            params["q"] = query
        if genre:
            params["genre"] = genre
        if type:
            params["type"] = type
        if status:
            params["status"] = status
        if page > 1:
            params["page"] = page
        document, _ = await self.fetch_text(
            client_session, f"{self.base_url}/search", params=params or None
        )
        return self.parse_listing(document, page)

    async def recent_chapters(
        self, client_session: ClientSession, page: int = 1
    ) -> RecentChapters:
        params = {"page": page} if page > 1 else None
        document, _ = await self.fetch_text(
            client_session, f"{self.base_url}/chapters", params=params
        )
        return self.parse_recent(document, page)

    async def new_works(
        self, client_session: ClientSession, page: int = 1
    ) -> SearchResults:
        params = {"page": page} if page > 1 else None
        document, _ = await self.fetch_text(
            client_session, f"{self.base_url}/mangas/new", params=params
        )
        return self.parse_listing(document, page)

    async def random_work(self, client_session: ClientSession) -> WorkDetails:
        document, final_url = await self.fetch_text(
            client_session, f"{self.base_url}/mangas/random"
        )
        work_id = path_after(final_url, "/manga/")
        if work_id is None:
            raise ParseError("MangaPill random did not redirect to a work", self.id)
        return self.parse_details(document, work_id)

    async def home_feed(self, client_session: ClientSession) -> HomeFeed:
        document, _ = await self.fetch_text(client_session, self.base_url)
        feed = self.parse_home(document)
        logger.debug(
            "MangaPill home feed parsed",
            featured=len(feed.featured_chapters),
            trending=len(feed.trending),
        )
        return feed

    def catalogue_filters(self) -> CatalogueFilters:
        return CatalogueFilters(
            genres=MANGAPILL_GENRES,
            types=MANGAPILL_TYPES,
            statuses=MANGAPILL_STATUSES,
        )
