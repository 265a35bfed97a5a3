# carfinder/schemas.py
from datetime import datetime
from typing import List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

AlertStatus = Literal["new", "seen", "opened", "muted", "favorite"]
StopReason = Literal["completed", "limit", "loop", "error", "empty"]


def _as_text(value):
    """Strings pass through, numbers become strings, anything else is None."""
    if isinstance(value, bool) or value == "":
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return None


# --- source payload -------------------------------------------------------

class AdProperty(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    label: str = ""
    value: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _text_or_none(cls, v):
        return _as_text(v)

    @field_validator("label", "value", mode="before")
    @classmethod
    def _text_or_empty(cls, v):
        v = _as_text(v)
        return "" if v is None else v


class AdLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    municipality: Optional[str] = None
    neighbourhood: Optional[str] = None

    @field_validator("municipality", "neighbourhood", mode="before")
    @classmethod
    def _text_or_none(cls, v):
        return _as_text(v)


class RawAd(BaseModel):
    """One item of `pageProps.ads`, validated by capability only.

    Only `listId` and `url` are required; optional fields of an unexpected
    shape are dropped instead of rejecting the ad.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    list_id: str = Field(..., alias="listId")
    url: str
    subject: Optional[str] = None
    price: Optional[str] = None
    location: Optional[AdLocation] = None
    properties: List[AdProperty] = Field(default_factory=list)
    thumbnail: Optional[str] = None
    date: Optional[str] = None

    @field_validator("list_id", "url", "subject", "price", "thumbnail", "date", mode="before")
    @classmethod
    def _coerce_scalars(cls, v):
        return _as_text(v)

    @field_validator("location", mode="before")
    @classmethod
    def _object_or_none(cls, v):
        return v if isinstance(v, dict) else None

    @field_validator("properties", mode="before")
    @classmethod
    def _objects_only(cls, v):
        if not isinstance(v, list):
            return []
        return [p for p in v if isinstance(p, dict)]


# --- canonical records ----------------------------------------------------

class Listing(BaseModel):
    model_config = ConfigDict(frozen=True)

    list_id: str
    search_id: str
    subject: Optional[str] = None
    price: Optional[str] = None
    municipality: Optional[str] = None
    neighbourhood: Optional[str] = None
    ad_url: str
    model: Optional[str] = None
    mileage: Optional[int] = None
    date_ts: Optional[str] = None
    thumbnail_url: Optional[str] = None
    collected_at: datetime


class ScanReport(BaseModel):
    search_id: str
    search_name: Optional[str] = None
    new_count: int = 0
    total_scanned: int = 0
    stop_reason: Optional[StopReason] = None
    sp_min: int = 0
    sp_max: int = 0
    requests_count: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    new_ads: List[Listing] = Field(default_factory=list)


# --- API payloads ---------------------------------------------------------

class SavedSearchCreate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    name: str = Field(..., min_length=1, max_length=255)
    human_url: str
    check_period_minutes: int = Field(60, ge=1)
    model_whitelist: List[str] = Field(default_factory=list)
    model_blacklist: List[str] = Field(default_factory=list)
    min_group_size: int = Field(5, ge=1)

    @field_validator("human_url")
    @classmethod
    def _absolute_http_url(cls, v):
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("human_url must be an absolute http(s) URL")
        return v


class SavedSearchUpdate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    check_period_minutes: Optional[int] = Field(None, ge=1)
    model_whitelist: Optional[List[str]] = None
    model_blacklist: Optional[List[str]] = None
    min_group_size: Optional[int] = Field(None, ge=1)


class SavedSearchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: str
    name: str
    human_url: str
    check_period_minutes: int
    model_whitelist: List[str]
    model_blacklist: List[str]
    min_group_size: int
    last_checked_at: Optional[datetime] = None
    last_sp_scanned: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    search_id: str
    list_id: str
    subject: Optional[str] = None
    price: Optional[str] = None
    municipality: Optional[str] = None
    neighbourhood: Optional[str] = None
    ad_url: Optional[str] = None
    model: Optional[str] = None
    thumbnail_url: Optional[str] = None
    mileage: Optional[int] = None
    status: AlertStatus
    created_at: datetime


class AlertStatusUpdate(BaseModel):
    status: AlertStatus


class Opportunity(AlertOut):
    brand: str
    median: float
    pct_below_median: int
    score: float
    explanation: str
    badges: List[str]

