# carfinder/fetcher.py
"""Fetching of one page of search results from the Next.js data endpoint."""
import enum
from dataclasses import dataclass, field
from typing import Any, List, Union
from urllib.parse import parse_qsl, urlencode, urlparse

import httpx
from pydantic import ValidationError

from . import config
from .resolver import site_origin
from .schemas import RawAd
from .utils import logger

PAGE_PARAM = "sp"

JSON_HEADERS = {
    "User-Agent": config.USER_AGENT,
    "Accept": "application/json",
    "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8",
}


class Outcome(enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class PageResult:
    outcome: Outcome
    status: int
    ads: List[RawAd] = field(default_factory=list)

    @property
    def first_list_id(self):
        return self.ads[0].list_id if self.ads else None


@dataclass(frozen=True)
class Accepted:
    ad: RawAd


@dataclass(frozen=True)
class Skipped:
    reason: str


def coerce_ad(item: Any) -> Union[Accepted, Skipped]:
    """Validate one raw result item; items without listId or url are skipped."""
    if not isinstance(item, dict):
        return Skipped(f"not an object: {type(item).__name__}")
    try:
        return Accepted(RawAd.model_validate(item))
    except ValidationError as e:
        fields = ",".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        return Skipped(f"invalid fields: {fields or 'unknown'}")


def build_data_url(human_url: str, build_id: str, page: int = 1) -> str:
    """Map a human search URL onto its `_next/data` JSON counterpart.

    /autos-e-pecas/carros?ps=20000 -> /_next/data/<id>/autos-e-pecas/carros.json?ps=20000
    """
    parsed = urlparse(human_url)
    path = parsed.path.rstrip("/") or "/index"
    if not path.endswith(".json"):
        path += ".json"
    params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    if page > 1:
        params[PAGE_PARAM] = str(page)
    url = f"{site_origin(human_url)}/_next/data/{build_id}{path}"
    if params:
        url += "?" + urlencode(params)
    return url


class PageFetcher:
    def __init__(self, client: httpx.Client, referer: str = config.SITE_BASE_URL):
        self.client = client
        self.referer = referer

    def fetch_page(self, data_url: str) -> PageResult:
        headers = dict(JSON_HEADERS, Referer=self.referer)
        try:
            response = self.client.get(data_url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Error fetching page %s: %s", data_url, e)
            return PageResult(Outcome.OTHER_ERROR, 500)

        # 404 usually means the buildId is stale
        if response.status_code == 404:
            logger.warning("Fetch returned 404 for %s", data_url)
            return PageResult(Outcome.NOT_FOUND, 404)
        if not response.is_success:
            logger.error("Failed to fetch page %s: HTTP %s", data_url, response.status_code)
            return PageResult(Outcome.OTHER_ERROR, response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            logger.error("Undecodable JSON from %s: %s", data_url, e)
            return PageResult(Outcome.OTHER_ERROR, 500)

        items = extract_ads(data)
        ads = []
        for item in items:
            parsed = coerce_ad(item)
            if isinstance(parsed, Accepted):
                ads.append(parsed.ad)
            else:
                logger.debug("Skipping ad: %s", parsed.reason)
        return PageResult(Outcome.OK, response.status_code, ads)


def extract_ads(data: Any) -> list:
    if not isinstance(data, dict):
        return []
    page_props = data.get("pageProps")
    if not isinstance(page_props, dict):
        return []
    ads = page_props.get("ads")
    return ads if isinstance(ads, list) else []
