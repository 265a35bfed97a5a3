# carfinder/scanner.py
"""Multi-page acquisition for one saved search.

A scan is a small state machine:

    RESOLVING -> FETCHING(page) -> ... -> STOPPED(reason)
                      |   ^
                      v   |
                   RETRYING(page)      (404 on a data page, once per run)

The transition functions below are pure; `Scanner.run` performs the network
calls and feeds their results through them. Stop reasons:

- completed: a later page came back empty
- empty:     page 1 came back empty
- limit:     max_pages were read without another stop
- loop:      a page's first listing repeats a previous page's first listing
- error:     buildId unresolvable, 404 not healed by a refresh, other HTTP errors

Loop detection only compares the first listing of each page, so a source
repeating content further down a page goes unnoticed.
"""
import enum
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple

from . import config
from .errors import BuildIdNotFound
from .fetcher import Outcome, PageFetcher, PageResult, build_data_url
from .parser import parse_ad
from .resolver import BuildIdResolver
from .schemas import Listing
from .utils import logger

MAX_RETRIES = 1


class Phase(enum.Enum):
    RESOLVING = "resolving"
    FETCHING = "fetching"
    RETRYING = "retrying"
    STOPPED = "stopped"


class StopReason(str, enum.Enum):
    COMPLETED = "completed"
    LIMIT = "limit"
    LOOP = "loop"
    ERROR = "error"
    EMPTY = "empty"


@dataclass(frozen=True)
class ScanState:
    phase: Phase = Phase.RESOLVING
    page: int = 1
    build_id: Optional[str] = None
    retries_used: int = 0
    page_first_ids: Dict[int, str] = field(default_factory=dict)
    stop_reason: Optional[StopReason] = None
    error_message: Optional[str] = None

    @property
    def stopped(self) -> bool:
        return self.phase is Phase.STOPPED


def _stop(state: ScanState, reason: StopReason, error: Optional[str] = None) -> ScanState:
    return replace(state, phase=Phase.STOPPED, stop_reason=reason, error_message=error)


def on_resolved(state: ScanState, build_id: Optional[str]) -> ScanState:
    if not build_id:
        return _stop(state, StopReason.ERROR, "Could not resolve buildId")
    return replace(state, phase=Phase.FETCHING, page=1, build_id=build_id)


def on_page(state: ScanState, result: PageResult, max_pages: int) -> Tuple[ScanState, bool]:
    """Apply one page fetch. Returns the next state and whether the page's
    ads are to be kept."""
    if result.outcome is Outcome.NOT_FOUND:
        if state.retries_used < MAX_RETRIES:
            return replace(state, phase=Phase.RETRYING), False
        return _stop(state, StopReason.ERROR, "Page 404 (likely buildId) after retry"), False

    if result.outcome is Outcome.OTHER_ERROR:
        return _stop(state, StopReason.ERROR, f"HTTP {result.status}"), False

    if not result.ads:
        reason = StopReason.EMPTY if state.page == 1 else StopReason.COMPLETED
        return _stop(state, reason), False

    first_id = result.first_list_id
    for page, seen_first in state.page_first_ids.items():
        if seen_first == first_id:
            logger.warning("Anti-loop: page %s has same first listing as page %s", state.page, page)
            return _stop(state, StopReason.LOOP), False

    first_ids = dict(state.page_first_ids)
    first_ids[state.page] = first_id
    next_state = replace(state, page=state.page + 1, page_first_ids=first_ids)
    if next_state.page > max_pages:
        next_state = _stop(next_state, StopReason.LIMIT)
    return next_state, True


def on_refreshed(state: ScanState, build_id: Optional[str]) -> ScanState:
    if not build_id or build_id == state.build_id:
        return _stop(state, StopReason.ERROR, "BuildId expired and refresh failed")
    return replace(
        state,
        phase=Phase.FETCHING,
        build_id=build_id,
        retries_used=state.retries_used + 1,
    )


@dataclass
class ScanResult:
    listings: List[Listing]
    sp_min: int
    sp_max: int
    stop_reason: StopReason
    duration_ms: int
    requests_count: int
    first_list_id: Optional[str] = None
    error_message: Optional[str] = None


class Scanner:
    """Runs the scan state machine against the live site."""

    def __init__(
        self,
        resolver: BuildIdResolver,
        fetcher: PageFetcher,
        max_pages: int = config.MAX_PAGES,
        page_delay: float = config.PAGE_DELAY_SECONDS,
        base_url: str = config.SITE_BASE_URL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self.fetcher = fetcher
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.base_url = base_url
        self.sleep = sleep
        self.clock = clock

    def run(self, human_url: str, search_id: str) -> ScanResult:
        start = self.clock()
        requests_count = 0
        listings: List[Listing] = []
        run_ids = set()

        state = ScanState()
        try:
            resolution = self.resolver.resolve(human_url)
            requests_count += int(resolution.fetched)
            build_id = resolution.build_id
        except BuildIdNotFound as e:
            requests_count += 1
            logger.error("%s", e)
            build_id = None
        state = on_resolved(state, build_id)

        while not state.stopped:
            if state.phase is Phase.RETRYING:
                logger.warning("Page %s returned 404, refreshing buildId", state.page)
                requests_count += 1
                try:
                    new_build_id = self.resolver.refresh(human_url)
                except BuildIdNotFound as e:
                    logger.error("%s", e)
                    new_build_id = None
                state = on_refreshed(state, new_build_id)
                if not state.stopped:
                    logger.info("Recovered with new buildId: %s", state.build_id)
                continue

            data_url = build_data_url(human_url, state.build_id, state.page)
            logger.info("Fetching page %s: %s", state.page, data_url)
            requests_count += 1
            result = self.fetcher.fetch_page(data_url)
            state, accepted = on_page(state, result, self.max_pages)
            if not accepted:
                continue

            for ad in result.ads:
                if ad.list_id in run_ids:
                    continue
                run_ids.add(ad.list_id)
                listings.append(parse_ad(ad, search_id, self.base_url))

            if not state.stopped and self.page_delay > 0:
                self.sleep(self.page_delay)

        duration_ms = int((self.clock() - start) * 1000)
        resolved = state.build_id is not None
        scan = ScanResult(
            listings=listings,
            sp_min=1 if resolved else 0,
            sp_max=min(state.page, self.max_pages) if resolved else 0,
            stop_reason=state.stop_reason,
            duration_ms=duration_ms,
            requests_count=requests_count,
            first_list_id=state.page_first_ids.get(1),
            error_message=state.error_message,
        )
        logger.info(
            "Scan complete: %d listings. Stop: %s. Duration: %dms",
            len(listings), scan.stop_reason.value, duration_ms
        )
        return scan
