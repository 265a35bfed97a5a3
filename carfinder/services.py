# carfinder/services.py
from datetime import datetime, timedelta
from typing import List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config, crud
from .diff import apply_model_filters, compute_diff
from .fetcher import PageFetcher
from .models import Alert, SavedSearch
from .parser import extract_model_from_subject
from .resolver import BuildIdCache, BuildIdResolver
from .scanner import Scanner
from .schemas import ScanReport
from .utils import logger, utcnow

# process-wide; shared by every scanner built with build_scanner()
build_id_cache = BuildIdCache()


def build_scanner(client: Optional[httpx.Client] = None, cache: Optional[BuildIdCache] = None) -> Scanner:
    client = client or httpx.Client(timeout=config.HTTP_TIMEOUT, follow_redirects=True)
    resolver = BuildIdResolver(client, cache if cache is not None else build_id_cache)
    return Scanner(resolver, PageFetcher(client))


def scan_one(db: Session, search: SavedSearch, scanner: Scanner) -> ScanReport:
    """Scan one saved search, store alerts for new listings and log the run.

    Stop conditions of the scan itself are reported in the result, never
    raised.
    """
    logger.info("Starting scan for search: %s (%s)", search.name, search.id)
    scan = scanner.run(search.human_url, search.id)

    new_listings = []
    if scan.listings:
        seen_ids = crud.get_seen_ids(db, search.id)
        new_listings = compute_diff(scan.listings, seen_ids)
        new_listings = apply_model_filters(new_listings, search.model_whitelist, search.model_blacklist)
        # every observed id is recorded, so re-appearing listings never alert twice
        crud.record_seen(db, search.id, [l.list_id for l in scan.listings])
        crud.insert_alerts(db, search.id, new_listings)
    logger.info("Found %d new listings (after filters) for %s", len(new_listings), search.id)

    try:
        crud.log_execution(db, search.id, scan, new_count=len(new_listings))
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to log execution stats for %s: %s", search.id, e)

    crud.touch_search(db, search.id, scan.sp_max)

    return ScanReport(
        search_id=search.id,
        search_name=search.name,
        new_count=len(new_listings),
        total_scanned=len(scan.listings),
        stop_reason=scan.stop_reason.value,
        sp_min=scan.sp_min,
        sp_max=scan.sp_max,
        requests_count=scan.requests_count,
        duration_ms=scan.duration_ms,
        error=scan.error_message,
        new_ads=new_listings,
    )


def _scan_many(db: Session, searches: List[SavedSearch], scanner: Scanner) -> List[ScanReport]:
    reports = []
    for search in searches:
        try:
            report = scan_one(db, search, scanner)
            logger.info("Scanned %s: %d new listings", search.name, report.new_count)
        except Exception as e:
            db.rollback()
            logger.exception("Error scanning %s: %s", search.name, e)
            report = ScanReport(search_id=search.id, search_name=search.name, error=str(e))
        reports.append(report)
    return reports


def scan_all(db: Session, scanner: Scanner) -> List[ScanReport]:
    """Scan every saved search in turn; one failing search doesn't stop the sweep."""
    searches = crud.load_saved_searches(db)
    logger.info("Found %d searches to scan", len(searches))
    return _scan_many(db, searches, scanner)


def is_due(search: SavedSearch, now: datetime) -> bool:
    if search.last_checked_at is None:
        return True
    return now - search.last_checked_at >= timedelta(minutes=search.check_period_minutes)


def scan_due(db: Session, scanner: Scanner, now: Optional[datetime] = None) -> List[ScanReport]:
    """Scan only the searches whose check period has elapsed."""
    now = now or utcnow()
    searches = [s for s in crud.load_saved_searches(db) if is_due(s, now)]
    logger.info("%d searches due for scanning", len(searches))
    return _scan_many(db, searches, scanner)


def remodel_alerts(db: Session) -> dict:
    """Re-derive the model of stored alerts from their subject line."""
    alerts = db.query(Alert).all()
    updated = 0
    for alert in alerts:
        if not alert.subject:
            continue
        model = extract_model_from_subject(alert.subject)
        if model and model != alert.model:
            alert.model = model
            updated += 1
    db.commit()
    logger.info("Re-derived model for %d of %d alerts", updated, len(alerts))
    return {"updated": updated, "total": len(alerts)}
