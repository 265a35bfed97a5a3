# carfinder/models.py
"""SQLAlchemy ORM models for persisted entities.

Saved searches own their seen-id set, their alerts and their execution
logs; deleting a search cascades to all three.
"""
import uuid
from sqlalchemy import (
    Column, Integer, Text, TIMESTAMP, JSON, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from .db import Base
from .utils import utcnow

ALERT_STATUSES = ("new", "seen", "opened", "muted", "favorite")


def _new_id():
    return str(uuid.uuid4())


class SavedSearch(Base):
    __tablename__ = "saved_searches"
    id = Column(Text, primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    human_url = Column(Text, nullable=False)
    check_period_minutes = Column(Integer, nullable=False, default=60)
    model_whitelist = Column(JSON, nullable=False, default=list)
    model_blacklist = Column(JSON, nullable=False, default=list)
    min_group_size = Column(Integer, nullable=False, default=5)
    last_checked_at = Column(TIMESTAMP)
    last_sp_scanned = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP, default=utcnow)
    updated_at = Column(TIMESTAMP, default=utcnow, onupdate=utcnow)

    seen_ids = relationship("SeenId", cascade="all, delete-orphan", passive_deletes=True)
    alerts = relationship("Alert", cascade="all, delete-orphan", passive_deletes=True)
    execution_logs = relationship("ExecutionLog", cascade="all, delete-orphan", passive_deletes=True)


class SeenId(Base):
    __tablename__ = "seen_ids"
    id = Column(Integer, primary_key=True, autoincrement=True)
    search_id = Column(Text, ForeignKey("saved_searches.id", ondelete="CASCADE"), nullable=False)
    list_id = Column(Text, nullable=False)
    first_seen_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("search_id", "list_id", name="uq_seen_ids_search_list"),
        Index("idx_seen_ids_search_first_seen", "search_id", "first_seen_at"),
    )


class Alert(Base):
    __tablename__ = "alerts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    search_id = Column(Text, ForeignKey("saved_searches.id", ondelete="CASCADE"), nullable=False)
    list_id = Column(Text, nullable=False)
    subject = Column(Text)
    price = Column(Text)
    municipality = Column(Text)
    neighbourhood = Column(Text)
    ad_url = Column(Text)
    model = Column(Text)
    thumbnail_url = Column(Text)
    mileage = Column(Integer)
    date_ts = Column(Text)
    status = Column(Text, nullable=False, default="new")
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("search_id", "list_id", name="uq_alerts_search_list"),
        Index("idx_alerts_status", "status"),
        Index("idx_alerts_model", "model"),
    )


class ExecutionLog(Base):
    __tablename__ = "execution_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    search_id = Column(Text, ForeignKey("saved_searches.id", ondelete="CASCADE"), nullable=False, index=True)
    sp_min = Column(Integer, nullable=False, default=0)
    sp_max = Column(Integer, nullable=False, default=0)
    listings_count = Column(Integer, nullable=False, default=0)
    new_listings_count = Column(Integer, nullable=False, default=0)
    first_list_id = Column(Text)
    stop_reason = Column(Text, nullable=False)
    duration_ms = Column(Integer, nullable=False, default=0)
    requests_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(TIMESTAMP, nullable=False, default=utcnow)
