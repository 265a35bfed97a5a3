# carfinder/crud.py
"""Persistence helpers for saved searches, the seen-id set, alerts and
execution logs.

Every write commits on its own; a scan is not wrapped in a single
transaction, so a crash between `record_seen` and `insert_alerts` leaves ids
recorded without their alerts.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from . import config
from .errors import CarFinderError
from .models import Alert, ExecutionLog, SavedSearch, SeenId
from .schemas import Listing
from .utils import utcnow

INSERT_CHUNK = 200
ALERT_SORTS = {"created_at", "price", "model", "municipality"}
INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _insert_ignore(db: Session, table, rows: List[Dict[str, Any]], keys: List[str]) -> None:
    """Bulk insert skipping rows that collide on `keys`."""
    if not rows:
        return
    dialect = db.get_bind().dialect.name
    if dialect not in INSERTS:
        raise CarFinderError(f"Unsupported database dialect: {dialect}")
    insert = INSERTS[dialect]
    for i in range(0, len(rows), INSERT_CHUNK):
        chunk = rows[i:i + INSERT_CHUNK]
        db.execute(insert(table).values(chunk).on_conflict_do_nothing(index_elements=keys))


# --- saved searches -------------------------------------------------------

def create_search(db: Session, data: Dict[str, Any]) -> SavedSearch:
    obj = SavedSearch(**data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def get_search(db: Session, search_id: str) -> Optional[SavedSearch]:
    return db.get(SavedSearch, search_id)


def load_saved_searches(db: Session) -> List[SavedSearch]:
    return db.query(SavedSearch).order_by(SavedSearch.created_at.desc()).all()


def update_search(db: Session, search_id: str, updates: Dict[str, Any]) -> Optional[SavedSearch]:
    obj = get_search(db, search_id)
    if not obj:
        return None
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj


def delete_search(db: Session, search_id: str) -> bool:
    obj = get_search(db, search_id)
    if not obj:
        return False
    db.delete(obj)
    db.commit()
    return True


def touch_search(db: Session, search_id: str, sp_scanned: int, now: Optional[datetime] = None) -> None:
    obj = get_search(db, search_id)
    if not obj:
        return
    obj.last_checked_at = now or utcnow()
    obj.last_sp_scanned = sp_scanned
    db.commit()


# --- seen ids -------------------------------------------------------------

def get_seen_ids(db: Session, search_id: str) -> Set[str]:
    rows = db.execute(select(SeenId.list_id).where(SeenId.search_id == search_id)).scalars()
    return set(rows)


def record_seen(
    db: Session,
    search_id: str,
    list_ids: Iterable[str],
    now: Optional[datetime] = None,
    cap: int = config.SEEN_IDS_CAP,
) -> None:
    """Add ids to the search's seen-set, then trim it to the `cap` most
    recently first-seen ids. Ids already present keep their first-seen time."""
    ids = list(dict.fromkeys(list_ids))
    if not ids:
        return
    now = now or utcnow()
    rows = [{"search_id": search_id, "list_id": i, "first_seen_at": now} for i in ids]
    _insert_ignore(db, SeenId.__table__, rows, ["search_id", "list_id"])

    keep = (
        select(SeenId.id)
        .where(SeenId.search_id == search_id)
        .order_by(SeenId.first_seen_at.desc(), SeenId.id.desc())
        .limit(cap)
    )
    db.execute(
        delete(SeenId)
        .where(SeenId.search_id == search_id, SeenId.id.not_in(keep))
        .execution_options(synchronize_session=False)
    )
    db.commit()


def count_seen(db: Session, search_id: str) -> int:
    return db.scalar(select(func.count()).select_from(SeenId).where(SeenId.search_id == search_id))


# --- alerts ---------------------------------------------------------------

def insert_alerts(db: Session, search_id: str, listings: Iterable[Listing], now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    rows = [
        {
            "search_id": search_id,
            "list_id": l.list_id,
            "subject": l.subject,
            "price": l.price,
            "municipality": l.municipality,
            "neighbourhood": l.neighbourhood,
            "ad_url": l.ad_url,
            "model": l.model,
            "thumbnail_url": l.thumbnail_url,
            "mileage": l.mileage,
            "date_ts": l.date_ts,
            "status": "new",
            "created_at": now,
        }
        for l in listings
    ]
    if not rows:
        return
    _insert_ignore(db, Alert.__table__, rows, ["search_id", "list_id"])
    db.commit()


def _alert_query(db: Session, search_id: str, brand: Optional[str] = None, model: Optional[str] = None):
    q = db.query(Alert)
    if search_id != "all":
        q = q.filter(Alert.search_id == search_id)
    if brand:
        q = q.filter(Alert.model.ilike(f"{brand}%"))
    if model:
        q = q.filter(Alert.model.ilike(f"%{model}%"))
    return q


def load_alerts(db: Session, search_id: str = "all", brand: Optional[str] = None,
                model: Optional[str] = None) -> List[Alert]:
    """All alerts of one search (or "all"), newest first."""
    q = _alert_query(db, search_id, brand, model)
    return q.order_by(Alert.created_at.desc(), Alert.id.desc()).all()


def list_alerts(db: Session, search_id: str, skip: int = 0, limit: int = 50,
                brand: Optional[str] = None, model: Optional[str] = None,
                sort: str = "created_at", order: str = "desc") -> Dict[str, Any]:
    """One page of alerts plus the unpaged total.

    `price` is stored as display text, so `sort="price"` orders it as text:
    "R$ 9.000" sorts after "R$ 10.000" ascending. Unknown sort keys fall back to
    `created_at`.
    """
    q = _alert_query(db, search_id, brand, model)
    column = getattr(Alert, sort if sort in ALERT_SORTS else "created_at")
    column = column.asc() if order.lower() == "asc" else column.desc()
    total = q.count()
    items = q.order_by(column, Alert.id.desc()).offset(skip).limit(limit).all()
    return {"total": total, "items": items}


def update_alert_status(db: Session, alert_id: int, status: str) -> Optional[Alert]:
    obj = db.get(Alert, alert_id)
    if not obj:
        return None
    obj.status = status
    db.commit()
    db.refresh(obj)
    return obj


# --- execution logs -------------------------------------------------------

def log_execution(db: Session, search_id: str, scan, new_count: int) -> ExecutionLog:
    entry = ExecutionLog(
        search_id=search_id,
        sp_min=scan.sp_min,
        sp_max=scan.sp_max,
        listings_count=len(scan.listings),
        new_listings_count=new_count,
        first_list_id=scan.first_list_id,
        stop_reason=scan.stop_reason.value,
        duration_ms=scan.duration_ms,
        requests_count=scan.requests_count,
        error_message=scan.error_message,
    )
    db.add(entry)
    db.commit()
    return entry


def list_execution_logs(db: Session, search_id: str, limit: int = 20) -> List[ExecutionLog]:
    return (
        db.query(ExecutionLog)
        .filter(ExecutionLog.search_id == search_id)
        .order_by(ExecutionLog.created_at.desc(), ExecutionLog.id.desc())
        .limit(limit)
        .all()
    )
