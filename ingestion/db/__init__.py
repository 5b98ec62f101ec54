"""Database utilities for the rates service."""

from .models import (  # noqa: F401
    AlertNotificationRow,
    Base,
    ExchangeRateRow,
    HistoricalRateRow,
    JobRun,
    JobStage,
    JobStatus,
    NotificationSubscriberRow,
    ScrapingSourceRow,
)
from .session import get_engine, get_sessionmaker, session_scope  # noqa: F401

__all__ = [
    "AlertNotificationRow",
    "Base",
    "ExchangeRateRow",
    "HistoricalRateRow",
    "JobRun",
    "JobStage",
    "JobStatus",
    "NotificationSubscriberRow",
    "ScrapingSourceRow",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
