"""Scraper engine: fetch, locate and parse every active source."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

from ingestion.connectors.base import BaseFetcher
from ingestion.errors import ExtractionError, FetchError
from ingestion.models.domain import RawScrapeResult, ScrapingSource
from ingestion.parsing.rates import ParseFailure, RatePlausibilityBand, parse_rate_text
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def extract_text(markup: str, selector: str) -> str:
    """Return the stripped text of the first node matching ``selector``."""
    soup = BeautifulSoup(markup, "html.parser")
    node = soup.select_one(selector)
    if node is None:
        raise ExtractionError(f"no element matches selector {selector!r}")
    text = node.get_text(" ", strip=True)
    if not text:
        raise ExtractionError(f"element for selector {selector!r} has no text")
    return text


class ScraperEngine:
    """Best-effort scrape of a batch of sources.

    Each source is fetched, its locator resolved and its text parsed in
    isolation; a failure at any step drops that source only.
    """

    def __init__(
        self,
        fetcher: BaseFetcher,
        *,
        band: Optional[RatePlausibilityBand] = None,
        max_workers: int = 4,
        clock: Optional[Clock] = None,
    ) -> None:
        self._fetcher = fetcher
        self._band = band
        self._max_workers = max(1, max_workers)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def scrape_all(self, sources: Iterable[ScrapingSource]) -> List[RawScrapeResult]:
        active: Sequence[ScrapingSource] = [s for s in sources if s.is_active]
        if not active:
            logger.info("scrape.no_sources")
            return []

        workers = min(self._max_workers, len(active))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scrape") as pool:
            outcomes = list(pool.map(self._scrape_isolated, active))

        results = [item for item in outcomes if item is not None]
        logger.info(
            "scrape.done",
            extra={"sources": len(active), "succeeded": len(results), "failed": len(active) - len(results)},
        )
        return results

    def scrape_source(self, source: ScrapingSource) -> Optional[RawScrapeResult]:
        """Scrape one source; fetch and extraction errors propagate."""
        markup = self._fetcher.fetch(source)
        text = extract_text(markup, source.selector)
        parsed = parse_rate_text(text, band=self._band)
        if isinstance(parsed, ParseFailure):
            logger.warning(
                "scrape.parse_failed",
                extra={"source": source.name, "reason": parsed.reason, "text": parsed.text[:120]},
            )
            return None
        return RawScrapeResult(
            type=source.rate_type,
            base_currency=source.currency,
            target_currency=source.target_currency,
            buy_price=parsed.buy,
            sell_price=parsed.sell,
            source=source.name,
            timestamp=self._clock(),
        )

    def _scrape_isolated(self, source: ScrapingSource) -> Optional[RawScrapeResult]:
        extra = {"source": source.name, "url": source.url}
        try:
            return self.scrape_source(source)
        except FetchError as exc:
            logger.warning("scrape.fetch_failed", extra={**extra, "error": str(exc), "kind": type(exc).__name__})
        except ExtractionError as exc:
            logger.warning("scrape.extract_failed", extra={**extra, "error": str(exc)})
        except Exception:
            logger.exception("scrape.unexpected_error", extra=extra)
        return None
