"""
Fetch-through image cache used by the image proxy endpoint.

Manga CDNs refuse hotlinked requests, so images are fetched server side with a
Referer the CDN accepts and kept in memory for a fixed duration.
"""
import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from urllib.parse import urlparse

import aiohttp
from aiohttp import ClientSession

from app.util.cache import CacheMetrics, Clock
from app.util.exceptions import FetchError
from app.util.log import logger

DEFAULT_CONTENT_TYPE = "image/jpeg"

# (host suffix, referer) checked in order; first suffix match wins
REFERER_HOSTS: list[tuple[str, str]] = [
    ("mangapill.com", "https://mangapill.com/"),
    ("readdetectiveconan.com", "https://mangapill.com/"),
    ("mangadex.org", "https://mangadex.org/"),
    ("mangadex.network", "https://mangadex.org/"),
]


def is_image_url(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https")


def referer_for(url: str) -> str:
    """Referer to send for an image, based on the host serving it."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    for suffix, referer in REFERER_HOSTS:
        if host == suffix or host.endswith(f".{suffix}"):
            return referer
    return f"{parsed.scheme}://{parsed.netloc}/"


@dataclass(frozen=True)
class ImageCacheEntry:
    key: str
    """The source URL"""
    data: bytes
    content_type: str
    created_at: float


class ImageCache:
    """
    Bounded in-memory image cache.

    Holds at most `capacity` images. When full, the oldest *inserted* image is
    evicted; reading an image does not change its position.
    """

    _entries: OrderedDict[str, ImageCacheEntry]
    _metrics: CacheMetrics

    def __init__(
        self,
        capacity: int = 100,
        ttl: float = 3600,
        timeout: float = 20.0,
        user_agent: str = "Mozilla/5.0",
        clock: Clock = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("Image cache capacity must be at least 1")
        self.capacity = capacity
        self.ttl = ttl
        self.timeout = timeout
        self.user_agent = user_agent
        self._clock = clock
        self._entries = OrderedDict()
        self._metrics = CacheMetrics()

    def get(self, url: str) -> ImageCacheEntry | None:
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.created_at >= self.ttl:
            del self._entries[url]
            return None
        return entry

    def put(self, url: str, data: bytes, content_type: str) -> ImageCacheEntry:
        if url in self._entries:
            # Re-inserted images go to the back of the eviction queue
            del self._entries[url]
        elif len(self._entries) >= self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self._metrics.record_eviction()
            logger.debug("Evicted cached image", url=evicted)

        entry = ImageCacheEntry(
            key=url, data=data, content_type=content_type, created_at=self._clock()
        )
        self._entries[url] = entry
        return entry

    async def fetch_image(
        self, client_session: ClientSession, url: str
    ) -> tuple[bytes, str, bool]:
        """
        Return (bytes, content_type, was_cached), fetching upstream on a miss.

        Raises FetchError when the upstream is unreachable or answers non-2xx;
        failures are never cached.
        """
        if not is_image_url(url):
            raise FetchError(f"Not an http(s) image URL: {url}")

        cached = self.get(url)
        if cached is not None:
            self._metrics.record_hit()
            return cached.data, cached.content_type, True

        self._metrics.record_miss()
        headers = {
            "Accept": "image/webp,image/avif,image/*,*/*;q=0.8",
            "User-Agent": self.user_agent,
            "Referer": referer_for(url),
        }
        try:
            async with client_session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if not response.ok:
                    logger.warning(
                        "Image upstream returned an error", url=url, status=response.status
                    )
                    raise FetchError(
                        f"Failed to fetch image: {response.status}", status=response.status
                    )
                content_type = response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
                data = await response.read()
        except asyncio.TimeoutError as e:
            raise FetchError(f"Image fetch timed out after {self.timeout:g}s") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Image fetch failed: {e}") from e

        self.put(url, data, content_type)
        return data, content_type, False

    def get_metrics(self) -> CacheMetrics:
        return self._metrics

    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return self.get(url) is not None
