"""Fetcher abstraction for scraping sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ingestion.errors import (  # noqa: F401  re-exported for connector users
    FetchConnectionError,
    FetchError,
    FetchHTTPStatusError,
    FetchTimeoutError,
)
from ingestion.models.domain import ScrapingSource


class BaseFetcher(ABC):
    """Retrieves raw markup for a single source.

    Implementations make exactly one attempt and raise a ``FetchError`` subclass
    on failure; retry policy belongs to the scheduler.
    """

    @abstractmethod
    def fetch(self, source: ScrapingSource) -> str:
        """Return the page markup for ``source``."""

    def close(self) -> None:  # pragma: no cover - optional hook
        return None
