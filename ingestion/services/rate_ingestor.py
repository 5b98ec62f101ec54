"""Turn raw scrape results into current and historical rate records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from ingestion.models.domain import ExchangeRate, HistoricalRate, RawScrapeResult
from ingestion.repositories.contracts import ExchangeRateRepository
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def compute_change(average: float, previous: Optional[ExchangeRate]) -> tuple[float, float]:
    """Absolute and percentage change of ``average`` against the previous record."""
    if previous is None:
        return 0.0, 0.0
    change = average - previous.average_price
    if previous.average_price == 0:
        return change, 0.0
    return change, change / previous.average_price * 100


class RateIngestor:
    """Normalizes a scrape batch and persists it, isolating failures per rate."""

    def __init__(
        self,
        repository: ExchangeRateRepository,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ingest(self, raw_results: Iterable[RawScrapeResult]) -> List[ExchangeRate]:
        saved: List[ExchangeRate] = []
        for raw in raw_results:
            extra = {"rate_type": raw.type, "pair": f"{raw.base_currency}/{raw.target_currency}", "source": raw.source}
            try:
                saved.append(self.ingest_one(raw))
            except Exception as exc:
                logger.warning("ingest.rate_failed", extra={**extra, "error": str(exc), "kind": type(exc).__name__})
        logger.info("ingest.done", extra={"saved": len(saved)})
        return saved

    def ingest_one(self, raw: RawScrapeResult) -> ExchangeRate:
        previous = self._repository.get_current_rate(raw.type, raw.base_currency, raw.target_currency)
        average = (raw.buy_price + raw.sell_price) / 2
        change, change_pct = compute_change(average, previous)
        rate = ExchangeRate(
            type=raw.type,
            base_currency=raw.base_currency,
            target_currency=raw.target_currency,
            buy_price=raw.buy_price,
            sell_price=raw.sell_price,
            change_24h=change,
            change_percentage_24h=change_pct,
            last_updated=self._clock(),
            source=raw.source,
        )
        current = self._repository.upsert_current_rate(rate)
        if current.id != rate.id:
            logger.info(
                "ingest.stale_write_ignored",
                extra={"rate_type": rate.type, "kept": current.last_updated.isoformat()},
            )
        self._repository.append_historical_rate(HistoricalRate.from_rate(rate))
        return rate
