# carfinder/api/routes.py
import secrets
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from .. import config, crud, schemas
from ..db import get_db
from ..scoring import brand_distribution, find_opportunities, model_stats
from ..services import build_scanner, remodel_alerts, scan_all, scan_one
from ..utils import logger

router = APIRouter()


def require_token(x_access_token: Optional[str] = Header(None)):
    expected = config.API_TOKEN
    if not expected or not x_access_token or not secrets.compare_digest(x_access_token, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_scanner():
    scanner = build_scanner()
    try:
        yield scanner
    finally:
        scanner.resolver.client.close()


api = APIRouter(prefix="/api", dependencies=[Depends(require_token)])


@router.get("/health")
def health():
    return {"status": "ok"}


def _search_or_404(db: Session, search_id: str):
    obj = crud.get_search(db, search_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Search not found")
    return obj


@api.get("/searches", response_model=List[schemas.SavedSearchOut])
def list_searches(db: Session = Depends(get_db)):
    return crud.load_saved_searches(db)


@api.post("/searches", response_model=schemas.SavedSearchOut, status_code=201)
def create_search(payload: schemas.SavedSearchCreate, db: Session = Depends(get_db)):
    return crud.create_search(db, payload.model_dump())


@api.get("/searches/{search_id}", response_model=schemas.SavedSearchOut)
def get_search(search_id: str, db: Session = Depends(get_db)):
    return _search_or_404(db, search_id)


@api.put("/searches/{search_id}", response_model=schemas.SavedSearchOut)
def update_search(search_id: str, payload: schemas.SavedSearchUpdate, db: Session = Depends(get_db)):
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    obj = crud.update_search(db, search_id, updates)
    if not obj:
        raise HTTPException(status_code=404, detail="Search not found")
    return obj


@api.delete("/searches/{search_id}")
def delete_search(search_id: str, db: Session = Depends(get_db)):
    if not crud.delete_search(db, search_id):
        raise HTTPException(status_code=404, detail="Search not found")
    return {"status": "deleted", "id": search_id}


@api.get("/searches/{search_id}/alerts", response_model=List[schemas.AlertOut])
def search_alerts(search_id: str, limit: int = Query(100, ge=1, le=500), db: Session = Depends(get_db)):
    _search_or_404(db, search_id)
    return crud.list_alerts(db, search_id, limit=limit)["items"]


@api.get("/searches/{search_id}/logs")
def search_logs(search_id: str, limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    _search_or_404(db, search_id)
    return [
        {c.name: getattr(log, c.name) for c in log.__table__.columns}
        for log in crud.list_execution_logs(db, search_id, limit=limit)
    ]


@api.get("/searches/{search_id}/models")
def search_models(search_id: str, db: Session = Depends(get_db)):
    whitelist, blacklist = [], []
    if search_id != "all":
        search = _search_or_404(db, search_id)
        whitelist, blacklist = search.model_whitelist, search.model_blacklist
    stats = model_stats(crud.load_alerts(db, search_id))
    return {
        "models": stats,
        "whitelist": whitelist,
        "blacklist": blacklist,
        "total": sum(s["count"] for s in stats),
    }


@api.get("/searches/{search_id}/opportunities", response_model=List[schemas.Opportunity])
def search_opportunities(
    search_id: str,
    limit: int = Query(20, ge=1, le=200),
    brand: str | None = Query(None),
    model: str | None = Query(None),
    db: Session = Depends(get_db)
):
    min_group_size = config.ALL_MIN_GROUP_SIZE
    if search_id != "all":
        min_group_size = _search_or_404(db, search_id).min_group_size or config.DEFAULT_MIN_GROUP_SIZE
    alerts = crud.load_alerts(db, search_id, brand=brand, model=model)
    return find_opportunities(alerts, min_group_size, limit=limit)


@api.get("/searches/{search_id}/brands")
def search_brands(search_id: str, db: Session = Depends(get_db)):
    if search_id != "all":
        _search_or_404(db, search_id)
    alerts = crud.load_alerts(db, search_id)
    return {"brands": brand_distribution(alerts), "total": len(alerts)}


@api.get("/searches/{search_id}/listings")
def search_listings(
    search_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    brand: str | None = Query(None),
    model: str | None = Query(None),
    sort: str = Query("created_at"),
    order: str = Query("desc"),
    db: Session = Depends(get_db)
):
    if search_id != "all":
        _search_or_404(db, search_id)
    res = crud.list_alerts(db, search_id, skip=offset, limit=limit, brand=brand,
                           model=model, sort=sort, order=order)
    return {
        "listings": [schemas.AlertOut.model_validate(a) for a in res["items"]],
        "total": res["total"],
        "limit": limit,
        "offset": offset,
    }


@api.put("/alerts/{alert_id}", response_model=schemas.AlertOut)
def update_alert(alert_id: int, payload: schemas.AlertStatusUpdate, db: Session = Depends(get_db)):
    obj = crud.update_alert_status(db, alert_id, payload.status)
    if not obj:
        raise HTTPException(status_code=404, detail="Alert not found")
    return obj


@api.post("/scan", response_model=List[schemas.ScanReport])
def trigger_scan_all(db: Session = Depends(get_db), scanner=Depends(get_scanner)):
    return scan_all(db, scanner)


@api.post("/scan/{search_id}", response_model=schemas.ScanReport)
def trigger_scan_one(search_id: str, db: Session = Depends(get_db), scanner=Depends(get_scanner)):
    search = _search_or_404(db, search_id)
    try:
        return scan_one(db, search, scanner)
    except Exception as e:
        db.rollback()
        logger.exception("Scan failed: %s", e)
        raise HTTPException(status_code=500, detail="Scan failed")


@api.post("/migrate-models")
def migrate_models(db: Session = Depends(get_db)):
    return remodel_alerts(db)


router.include_router(api)
