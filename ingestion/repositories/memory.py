"""In-memory repositories for tests and local runs."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from ingestion.models.domain import (
    AlertNotification,
    ExchangeRate,
    HistoricalRate,
    NotificationSubscriber,
    ScrapingSource,
)

RateKey = Tuple[str, str, str]


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InMemoryRateRepository:
    """Current rates keyed by (type, base, target) plus an append-only history."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: Dict[RateKey, ExchangeRate] = {}
        self._history: List[HistoricalRate] = []

    def get_current_rate(self, rate_type: str, base: str, target: str) -> Optional[ExchangeRate]:
        return self._current.get((rate_type, base, target))

    def upsert_current_rate(self, rate: ExchangeRate) -> ExchangeRate:
        with self._lock:
            existing = self._current.get(rate.key)
            # last writer wins by timestamp; an older cycle never clobbers a newer row
            if existing is not None and as_utc(existing.last_updated) > as_utc(rate.last_updated):
                return existing
            self._current[rate.key] = rate
            return rate

    def append_historical_rate(self, snapshot: HistoricalRate) -> HistoricalRate:
        with self._lock:
            self._history.append(snapshot)
        return snapshot

    def current_rates(self) -> List[ExchangeRate]:
        return list(self._current.values())

    def historical_rates(self) -> List[HistoricalRate]:
        return list(self._history)


class InMemorySourceRepository:
    def __init__(self, sources: Iterable[ScrapingSource] = ()) -> None:
        self._sources = list(sources)

    def get_active_sources(self) -> List[ScrapingSource]:
        return [s for s in self._sources if s.is_active]


class InMemorySubscriberRepository:
    def __init__(self, subscribers: Iterable[NotificationSubscriber] = ()) -> None:
        self._subscribers = list(subscribers)

    def get_active_subscribers(self) -> List[NotificationSubscriber]:
        return [s for s in self._subscribers if s.is_active]


class InMemoryNotificationRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: List[AlertNotification] = []

    def append_notification(self, notification: AlertNotification) -> AlertNotification:
        with self._lock:
            self._items.append(notification)
        return notification

    def list_notifications(self, subscriber_id: str | None = None) -> List[AlertNotification]:
        return [n for n in self._items if subscriber_id is None or n.subscriber_id == subscriber_id]
