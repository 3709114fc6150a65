"""
Tests for the MangaPill scraping provider.

Parsers are exercised directly against saved pages in tests/fixtures; the async
operations go through aioresponses so request building is covered too.
"""
import asyncio
import re
from unittest.mock import AsyncMock, patch

import pytest

from app.internal.models import WorkStatus
from app.internal.providers.mangapill import MangaPillProvider, normalize_status
from app.util.exceptions import FetchError, ParseError, RateLimitError

SEARCH_URL = re.compile(r"^https://mangapill\.com/search(\?.*)?$")


class TestParseListing:
    def test_parses_entries_in_page_order(self, mangapill: MangaPillProvider, search_html):
        results = mangapill.parse_listing(search_html)

        assert [w.id for w in results.results] == ["2/kimetsu-no-yaiba", "723/one-piece"]
        first = results.results[0]
        assert first.title == "Kimetsu & Tanjiro"
        assert first.cover_image_url == "https://cdn.readdetectiveconan.com/file/mangapill/i/2.jpeg"
        assert first.source_url == "https://mangapill.com/manga/2/kimetsu-no-yaiba"
        assert first.provider_id == "mangapill"

    def test_relative_cover_made_absolute(self, mangapill: MangaPillProvider, search_html):
        results = mangapill.parse_listing(search_html)
        assert results.results[1].cover_image_url == "https://mangapill.com/static/covers/723.jpeg"

    def test_next_page_detected(self, mangapill: MangaPillProvider, search_html):
        assert mangapill.parse_listing(search_html, page=1).has_next_page is True
        assert mangapill.parse_listing(search_html, page=2).has_next_page is False

    def test_fallback_layout_uses_image_alt(self, mangapill: MangaPillProvider, read_fixture):
        results = mangapill.parse_listing(read_fixture("search_alt.html"))
        assert [(w.id, w.title) for w in results.results] == [
            ("5/berserk", "Berserk"),
            ("6/vagabond", "Vagabond"),
        ]

    def test_cards_with_and_without_caption_stay_separate(
        self, mangapill: MangaPillProvider, read_fixture
    ):
        results = mangapill.parse_listing(read_fixture("search_mixed.html"))
        assert [(w.id, w.title) for w in results.results] == [
            ("1/alpha", "Alpha"),
            ("2/beta", "Beta"),
        ]
        assert results.results[0].cover_image_url.endswith("/i/1.jpeg")

    def test_empty_result_page_is_not_an_error(self, mangapill: MangaPillProvider, read_fixture):
        results = mangapill.parse_listing(read_fixture("search_empty.html"))
        assert results.results == []
        assert results.has_next_page is False

    def test_unrecognised_page_raises(self, mangapill: MangaPillProvider):
        with pytest.raises(ParseError):
            mangapill.parse_listing("<html><body><p>Under maintenance</p></body></html>")


class TestParseDetails:
    def test_full_page(self, mangapill: MangaPillProvider, details_html):
        details = mangapill.parse_details(details_html, "2/kimetsu-no-yaiba")

        assert details.title == "Kimetsu no Yaiba"
        assert details.cover_image_url == "https://cdn.readdetectiveconan.com/file/mangapill/i/2.jpeg"
        assert details.description == "Since ancient times, rumors & demons have spread."
        assert details.genres == ["Action", "Demons"]
        assert details.status == WorkStatus.completed

    def test_chapters_deduplicated_with_numbers(self, mangapill: MangaPillProvider, details_html):
        details = mangapill.parse_details(details_html, "2/kimetsu-no-yaiba")

        assert details.total_chapters == 3
        assert [(c.id, c.chapter_number) for c in details.chapters] == [
            ("2-10205000/kimetsu-no-yaiba-chapter-205", "205"),
            ("2-10204500/kimetsu-no-yaiba-chapter-204.5", "204.5"),
            ("2-10000000/kimetsu-no-yaiba-extra", "unknown"),
        ]
        assert details.chapters[0].title == "Kimetsu no Yaiba Chapter 205"

    def test_minimal_page_falls_back(self, mangapill: MangaPillProvider, read_fixture):
        details = mangapill.parse_details(read_fixture("details_minimal.html"), "6/vagabond")

        assert details.title == "Vagabond"
        assert details.cover_image_url is None
        assert details.description == "A wandering swordsman."
        assert details.genres == []
        assert details.status == WorkStatus.unknown
        assert [c.title for c in details.chapters] == ["Vagabond Chapter 1", "Vagabond Chapter 2"]
        assert [c.chapter_number for c in details.chapters] == ["1", "2"]

    def test_status_from_free_text(self, mangapill: MangaPillProvider, read_fixture):
        details = mangapill.parse_details(read_fixture("details_freetext.html"), "3/hunter-x-hunter")
        assert details.status == WorkStatus.hiatus
        assert details.total_chapters == 1

    @pytest.mark.parametrize(
        "markup,expected",
        [
            ("<label>STATUS</label><div>Publishing</div>", WorkStatus.ongoing),
            ("<label>Status:</label> <a href=\"/search?status=finished\">finished</a>", WorkStatus.completed),
            ("<p>This series is Completed.</p>", WorkStatus.completed),
            ("<p>discontinued by the publisher</p>", WorkStatus.cancelled),
        ],
    )
    def test_status_matched_case_insensitively(self, mangapill: MangaPillProvider, markup, expected):
        details = mangapill.parse_details(f"<h1>Title</h1>{markup}", "1/x")
        assert details.status == expected

    def test_missing_title_raises(self, mangapill: MangaPillProvider):
        with pytest.raises(ParseError):
            mangapill.parse_details("<html><body></body></html>", "1/x")

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Publishing", WorkStatus.ongoing),
            ("finished", WorkStatus.completed),
            ("On Hiatus", WorkStatus.hiatus),
            ("discontinued", WorkStatus.cancelled),
            ("something new", WorkStatus.unknown),
            (None, WorkStatus.unknown),
        ],
    )
    def test_normalize_status(self, raw, expected):
        assert normalize_status(raw) == expected


class TestParsePagesAndRecent:
    def test_pages_in_reading_order(self, mangapill: MangaPillProvider, chapter_html):
        pages = mangapill.parse_pages(chapter_html)

        assert [p.index for p in pages] == [1, 2, 3]
        assert pages[2].image_url == "https://cdn.readdetectiveconan.com/file/mangap/2/10205000/3.jpeg"

    def test_chapter_without_images_raises(self, mangapill: MangaPillProvider):
        with pytest.raises(ParseError):
            mangapill.parse_pages("<html><body><h1>Chapter 1</h1></body></html>")

    def test_images_without_usable_source_raise(self, mangapill: MangaPillProvider):
        document = '<img class="js-page" src="data:image/gif;base64,AAAA">'
        with pytest.raises(ParseError):
            mangapill.parse_pages(document)

    def test_recent_chapters(self, mangapill: MangaPillProvider, recent_html):
        recent = mangapill.parse_recent(recent_html)

        assert recent.has_next_page is True
        assert len(recent.results) == 2
        entry = recent.results[1]
        assert entry.chapter_id == "723-11170000/one-piece-chapter-1170"
        assert entry.chapter_number == "1170"
        assert entry.work_id == "723/one-piece"
        assert entry.work_title == "One Piece"
        assert entry.chapter_url == "https://mangapill.com/chapters/723-11170000/one-piece-chapter-1170"
        assert entry.work_url == "https://mangapill.com/manga/723/one-piece"


class TestParseHome:
    def test_featured_and_trending(self, mangapill: MangaPillProvider, read_fixture):
        feed = mangapill.parse_home(read_fixture("home.html"))

        assert [c.chapter_id for c in feed.featured_chapters] == [
            "723-11170000/one-piece-chapter-1170",
            "3258-10001000/oneshot-special",
        ]
        assert feed.featured_chapters[0].chapter_number == "1170"
        assert feed.featured_chapters[0].work_title == "One Piece"
        assert feed.featured_chapters[1].chapter_number == "unknown"
        assert [(w.id, w.title) for w in feed.trending] == [
            ("2/kimetsu-no-yaiba", "Kimetsu no Yaiba"),
            ("5/berserk", "Berserk"),
        ]
        assert feed.trending[1].cover_image_url == "https://mangapill.com/static/covers/5.jpeg"

    def test_sections_are_capped(self, mangapill: MangaPillProvider):
        featured = "".join(
            f'<div><a href="/chapters/{n}-1/c-{n}"><img data-src="https://cdn.x/{n}.jpg" alt="W Chapter {n}"></a>'
            f'<a href="/manga/{n}/w-{n}"><div>W {n}</div></a></div>'
            for n in range(1, 16)
        )
        trending = "".join(
            f'<div><a href="/manga/{n}/t-{n}"><img src="https://cdn.x/t{n}.jpg" alt="T {n}"></a></div>'
            for n in range(100, 115)
        )
        document = (
            f'<div class="grid">{featured}</div>'
            f'<h3>Trending Mangas</h3><div class="grid">{trending}</div>'
        )

        feed = mangapill.parse_home(document)

        assert len(feed.featured_chapters) == 12
        assert len(feed.trending) == 10
        assert feed.trending[0].title == "T 100"

    def test_page_without_feed_raises(self, mangapill: MangaPillProvider):
        with pytest.raises(ParseError):
            mangapill.parse_home("<html><body><p>Under maintenance</p></body></html>")


@pytest.mark.asyncio
class TestMangaPillRequests:
    async def test_search(self, mock_client_session, mangapill: MangaPillProvider, search_html):
        mock_client_session._mocked.get(SEARCH_URL, status=200, body=search_html)

        results = await mangapill.search(mock_client_session, "demon")

        assert len(results.results) == 2
        assert results.current_page == 1

    async def test_search_sends_query_and_page(
        self, mock_client_session, mangapill: MangaPillProvider, search_html
    ):
        mock_client_session._mocked.get(
            re.compile(r"^https://mangapill\.com/search\?q=demon&page=3$"),
            status=200,
            body=search_html,
        )

        results = await mangapill.search(mock_client_session, "demon", page=3)
        assert results.current_page == 3

    async def test_get_details(self, mock_client_session, mangapill: MangaPillProvider, details_html):
        mock_client_session._mocked.get(
            "https://mangapill.com/manga/2/kimetsu-no-yaiba", status=200, body=details_html
        )

        details = await mangapill.get_details(mock_client_session, "2/kimetsu-no-yaiba")
        assert details.id == "2/kimetsu-no-yaiba"
        assert details.total_chapters == 3

    async def test_get_pages(self, mock_client_session, mangapill: MangaPillProvider, chapter_html):
        mock_client_session._mocked.get(
            "https://mangapill.com/chapters/2-10205000/kimetsu-no-yaiba-chapter-205",
            status=200,
            body=chapter_html,
        )

        pages = await mangapill.get_pages(
            mock_client_session, "2-10205000/kimetsu-no-yaiba-chapter-205"
        )
        assert len(pages) == 3

    async def test_advanced_search_passes_filters(
        self, mock_client_session, mangapill: MangaPillProvider, search_html
    ):
        mock_client_session._mocked.get(
            re.compile(r"^https://mangapill\.com/search\?genre=Action&type=manga&status=publishing$"),
            status=200,
            body=search_html,
        )

        results = await mangapill.advanced_search(
            mock_client_session, genre="Action", type="manga", status="publishing"
        )
        assert len(results.results) == 2

    async def test_recent_and_new(
        self, mock_client_session, mangapill: MangaPillProvider, recent_html, search_html
    ):
        mock_client_session._mocked.get("https://mangapill.com/chapters", status=200, body=recent_html)
        mock_client_session._mocked.get("https://mangapill.com/mangas/new", status=200, body=search_html)

        recent = await mangapill.recent_chapters(mock_client_session)
        new = await mangapill.new_works(mock_client_session)

        assert len(recent.results) == 2
        assert [w.id for w in new.results] == ["2/kimetsu-no-yaiba", "723/one-piece"]

    async def test_home_feed(self, mock_client_session, mangapill: MangaPillProvider, read_fixture):
        mock_client_session._mocked.get("https://mangapill.com", status=200, body=read_fixture("home.html"))

        feed = await mangapill.home_feed(mock_client_session)

        assert len(feed.featured_chapters) == 2
        assert len(feed.trending) == 2

    async def test_random_uses_redirect_target(
        self, mock_client_session, mangapill: MangaPillProvider, details_html
    ):
        fetch = AsyncMock(
            return_value=(details_html, "https://mangapill.com/manga/2/kimetsu-no-yaiba")
        )
        with patch.object(mangapill, "fetch_text", fetch):
            details = await mangapill.random_work(mock_client_session)

        assert details.id == "2/kimetsu-no-yaiba"
        fetch.assert_awaited_once_with(mock_client_session, "https://mangapill.com/mangas/random")

    async def test_random_without_redirect_raises(
        self, mock_client_session, mangapill: MangaPillProvider, details_html
    ):
        fetch = AsyncMock(return_value=(details_html, "https://mangapill.com/mangas/random"))
        with patch.object(mangapill, "fetch_text", fetch):
            with pytest.raises(ParseError):
                await mangapill.random_work(mock_client_session)

    async def test_http_error_raises_fetch_error(self, mock_client_session, mangapill: MangaPillProvider):
        mock_client_session._mocked.get(SEARCH_URL, status=503, body="Service Unavailable")

        with pytest.raises(FetchError) as exc_info:
            await mangapill.search(mock_client_session, "demon")
        assert exc_info.value.status == 503
        assert exc_info.value.provider == "mangapill"

    async def test_http_429_raises_rate_limit(self, mock_client_session, mangapill: MangaPillProvider):
        mock_client_session._mocked.get(SEARCH_URL, status=429)

        with pytest.raises(RateLimitError):
            await mangapill.search(mock_client_session, "demon")

    async def test_timeout_raises_fetch_error(self, mock_client_session, mangapill: MangaPillProvider):
        mock_client_session._mocked.get(SEARCH_URL, exception=asyncio.TimeoutError())

        with pytest.raises(FetchError) as exc_info:
            await mangapill.search(mock_client_session, "demon")
        assert "5s" in exc_info.value.message


class TestCatalogueFilters:
    def test_catalogue_filters(self, mangapill: MangaPillProvider):
        filters = mangapill.catalogue_filters()
        assert "Action" in filters.genres
        assert "manhwa" in filters.types
        assert "publishing" in filters.statuses
