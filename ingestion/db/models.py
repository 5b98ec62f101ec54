"""SQLAlchemy models for rates, subscribers and pipeline runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for ORM models."""


class TimestampMixin:
    """Adds created_at/updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class JobStage(str, Enum):
    SCRAPE = "scrape"
    INGEST = "ingest"
    NOTIFY = "notify"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ScrapingSourceRow(Base):
    """Configured source page, written by the admin flow."""

    __tablename__ = "scraping_sources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid_str)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    selector: Mapped[str] = mapped_column(String(512), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    target_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="BOB")
    frequency: Mapped[str] = mapped_column(String(64), nullable=False, default="0 */2 * * *")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    rate_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ExchangeRateRow(Base):
    """Current rate, one row per (type, base, target)."""

    __tablename__ = "exchange_rates"
    __table_args__ = (
        UniqueConstraint("type", "base_currency", "target_currency", name="uq_exchange_rates_key"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid_str)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    target_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    buy_price: Mapped[float] = mapped_column(Float, nullable=False)
    sell_price: Mapped[float] = mapped_column(Float, nullable=False)
    average_price: Mapped[float] = mapped_column(Float, nullable=False)
    spread_amount: Mapped[float] = mapped_column(Float, nullable=False)
    change_24h: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    change_percentage_24h: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str | None] = mapped_column(String(128))


class HistoricalRateRow(Base):
    """Append-only rate snapshot."""

    __tablename__ = "exchange_rates_history"
    __table_args__ = (
        Index("ix_exchange_rates_history_type_recorded", "rate_type", "recorded_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid_str)
    rate_type: Mapped[str] = mapped_column(String(16), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    target_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    buy_price: Mapped[float] = mapped_column(Float, nullable=False)
    sell_price: Mapped[float] = mapped_column(Float, nullable=False)
    average_price: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class NotificationSubscriberRow(TimestampMixin, Base):
    __tablename__ = "notification_subscribers"
    __table_args__ = (
        Index("ix_notification_subscribers_platform_active", "platform", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid_str)
    user_identifier: Mapped[str | None] = mapped_column(String(256))
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    push_subscription_data: Mapped[dict | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AlertNotificationRow(Base):
    __tablename__ = "alert_notifications"
    __table_args__ = (
        Index("ix_alert_notifications_subscriber_created", "subscriber_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid_str)
    subscriber_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("notification_subscribers.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class JobRun(TimestampMixin, Base):
    """Represents a single pipeline stage execution."""

    __tablename__ = "job_runs"
    __table_args__ = (
        Index("ix_job_runs_stage_status", "stage", "status"),
        Index("ix_job_runs_trace", "trace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    stage: Mapped[JobStage] = mapped_column(
        SAEnum(JobStage, name="job_stage", native_enum=False, length=16),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus, name="job_status", native_enum=False, length=16),
        nullable=False,
        default=JobStatus.PENDING,
    )
    task_name: Mapped[str | None] = mapped_column(String(100))
    items_in: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_out: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[str | None] = mapped_column(String(512))
    trace_id: Mapped[str | None] = mapped_column(String(64))
