# carfinder/resolver.py
"""Resolution of the site's Next.js build identifier.

The data endpoint lives under `/_next/data/<buildId>/...`, and the buildId
rotates with every deployment of the site. It is read from the human-facing
search page and cached per site origin for a limited time.
"""
import json
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from . import config
from .errors import BuildIdNotFound
from .utils import logger

# try to detect available parser; prefer lxml if installed
try:
    import lxml  # type: ignore  # noqa: F401
    _bs_parser = "lxml"
except ImportError:
    _bs_parser = "html.parser"

BUILD_ID_RE = re.compile(r'"buildId"\s*:\s*"([^"]+)"')
MANIFEST_RE = re.compile(r"_next/static/([^/]+)/_buildManifest\.js")

HTML_HEADERS = {
    "User-Agent": config.USER_AGENT,
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8",
}


def site_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


@dataclass(frozen=True)
class CacheEntry:
    build_id: str
    timestamp: float


class BuildIdCache:
    """In-memory buildId cache keyed by site origin."""

    def __init__(self, ttl: float = config.BUILD_ID_CACHE_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, origin: str) -> Optional[str]:
        """Return the cached buildId for `origin` when younger than the TTL."""
        entry = self._entries.get(origin)
        if entry is None:
            return None
        if self.clock() - entry.timestamp >= self.ttl:
            return None
        return entry.build_id

    def set(self, origin: str, build_id: str) -> None:
        self._entries[origin] = CacheEntry(build_id, self.clock())

    def invalidate(self, origin: str) -> None:
        self._entries.pop(origin, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self):
        return len(self._entries)


def extract_build_id(html: str) -> Optional[str]:
    """Find the buildId in a Next.js page, or None."""
    if not html:
        return None
    soup = BeautifulSoup(html, _bs_parser)
    script = soup.find("script", id="__NEXT_DATA__")
    if script and script.string:
        try:
            build_id = json.loads(script.string).get("buildId")
        except (ValueError, AttributeError):
            build_id = None
        if build_id:
            return build_id
    m = BUILD_ID_RE.search(html)
    if m:
        return m.group(1)
    m = MANIFEST_RE.search(html)
    if m:
        return m.group(1)
    return None


@dataclass(frozen=True)
class Resolution:
    build_id: str
    fetched: bool  # False when served from cache


class BuildIdResolver:
    def __init__(self, client: httpx.Client, cache: Optional[BuildIdCache] = None):
        self.client = client
        self.cache = cache if cache is not None else BuildIdCache()

    def resolve(self, search_url: str) -> Resolution:
        """Cached buildId for the URL's origin, fetching the page on a miss.

        Raises BuildIdNotFound when the page can't be fetched or holds no
        buildId; the cache is left untouched in that case.
        """
        origin = site_origin(search_url)
        cached = self.cache.get(origin)
        if cached:
            logger.info("Using cached buildId for %s", origin)
            return Resolution(cached, fetched=False)
        return Resolution(self.refresh(search_url), fetched=True)

    def refresh(self, search_url: str) -> str:
        """Fetch the buildId bypassing the cache, and cache it on success."""
        build_id = self._fetch_build_id(search_url)
        origin = site_origin(search_url)
        self.cache.set(origin, build_id)
        logger.info("Cached buildId for %s: %s", origin, build_id)
        return build_id

    def _fetch_build_id(self, search_url: str) -> str:
        try:
            response = self.client.get(search_url, headers=HTML_HEADERS)
        except httpx.HTTPError as e:
            logger.error("Error fetching %s for buildId: %s", search_url, e)
            raise BuildIdNotFound(search_url, f"network error: {e}") from e
        if not response.is_success:
            logger.error("Failed to fetch search page %s: HTTP %s", search_url, response.status_code)
            raise BuildIdNotFound(search_url, f"HTTP {response.status_code}")
        build_id = extract_build_id(response.text)
        if not build_id:
            logger.error("Could not find buildId in %s", search_url)
            raise BuildIdNotFound(search_url, "no buildId marker in page")
        return build_id
