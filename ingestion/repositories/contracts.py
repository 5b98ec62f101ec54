"""Repository contracts consumed by the pipeline."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ingestion.models.domain import (
    AlertNotification,
    ExchangeRate,
    HistoricalRate,
    NotificationSubscriber,
    ScrapingSource,
)


class ExchangeRateRepository(Protocol):
    def get_current_rate(self, rate_type: str, base: str, target: str) -> Optional[ExchangeRate]: ...
    def upsert_current_rate(self, rate: ExchangeRate) -> ExchangeRate: ...
    def append_historical_rate(self, snapshot: HistoricalRate) -> HistoricalRate: ...


class SourceRepository(Protocol):
    def get_active_sources(self) -> List[ScrapingSource]: ...


class SubscriberRepository(Protocol):
    def get_active_subscribers(self) -> List[NotificationSubscriber]: ...


class NotificationRepository(Protocol):
    def append_notification(self, notification: AlertNotification) -> AlertNotification: ...
