"""Celery tasks for the scrape → ingest → notify cycle."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence

from celery import shared_task

from ingestion.connectors.html import HttpSourceFetcher
from ingestion.db.models import Base, JobStage
from ingestion.db.session import get_engine, session_scope
from ingestion.models.domain import ExchangeRate
from ingestion.parsing.rates import RatePlausibilityBand
from ingestion.repositories.job_runs import JobRunRecorder
from ingestion.repositories.rates import SqlRateRepository
from ingestion.repositories.sources import SqlSourceRepository
from ingestion.services.rate_ingestor import RateIngestor
from ingestion.services.scraper import ScraperEngine
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from publish.channels import ChannelAdapter, default_channels
from publish.notifier import FanoutReport, NotificationFanout, PartialDeliveryError
from publish.repositories import SqlNotificationRepository, SqlSubscriberRepository

# Injection points for tests; each receives the active Settings.
SCRAPER_FACTORY: Callable[[Settings], ScraperEngine] | None = None
CHANNELS_FACTORY: Callable[[Settings], Mapping[str, ChannelAdapter]] | None = None


@dataclass(frozen=True)
class CycleResult:
    trace_id: str
    sources: int
    scraped: int
    ingested: int
    notified: int


def build_scraper(settings: Settings) -> ScraperEngine:
    if SCRAPER_FACTORY is not None:
        return SCRAPER_FACTORY(settings)
    band = RatePlausibilityBand(settings.single_value_min_rate, settings.single_value_max_rate)
    return ScraperEngine(
        HttpSourceFetcher(settings=settings),
        band=band,
        max_workers=settings.scrape_max_workers,
    )


def build_fanout(settings: Settings) -> NotificationFanout:
    channels = CHANNELS_FACTORY(settings) if CHANNELS_FACTORY is not None else default_channels(settings)
    return NotificationFanout(SqlSubscriberRepository(), SqlNotificationRepository(), channels)


def _ensure_schema() -> None:
    # For local runs/tests, ensure schema exists (idempotent)
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def threshold_breaches(rates: Sequence[ExchangeRate], threshold_percent: Optional[float]) -> List[ExchangeRate]:
    if threshold_percent is None:
        return []
    return [r for r in rates if abs(r.change_percentage_24h) >= threshold_percent]


def scrape_cycle_core(source_ids: Optional[Sequence[str]] = None) -> CycleResult:
    """Run one cycle over the active sources (optionally restricted to ``source_ids``)."""
    _ensure_schema()
    settings = get_settings()
    trace_id = str(uuid.uuid4())
    logger = get_logger(__name__)

    with session_scope() as session:
        sources = SqlSourceRepository(session, settings.scraping_sources).get_active_sources()
        if source_ids:
            wanted = set(source_ids)
            sources = [s for s in sources if s.id in wanted]
        logger.info("cycle.start", extra={"trace_id": trace_id, "sources": len(sources)})

        with JobRunRecorder(
            session, stage=JobStage.SCRAPE, task_name="scrape_rates", trace_id=trace_id, items_in=len(sources)
        ) as job:
            scraper = build_scraper(settings)
            raw = scraper.scrape_all(sources)
            job.items_out = len(raw)

        with JobRunRecorder(
            session, stage=JobStage.INGEST, task_name="ingest_rates", trace_id=trace_id, items_in=len(raw)
        ) as job:
            rates = RateIngestor(SqlRateRepository()).ingest(raw)
            job.items_out = len(rates)

        notified = 0
        if rates:
            with JobRunRecorder(
                session, stage=JobStage.NOTIFY, task_name="notify_rates", trace_id=trace_id, items_in=len(rates)
            ) as job:
                notified = _notify(build_fanout(settings), rates, settings, trace_id)
                job.items_out = notified

    result = CycleResult(
        trace_id=trace_id,
        sources=len(sources),
        scraped=len(raw),
        ingested=len(rates),
        notified=notified,
    )
    logger.info("cycle.done", extra={**result.__dict__})
    return result


def _notify(fanout: NotificationFanout, rates: List[ExchangeRate], settings: Settings, trace_id: str) -> int:
    logger = get_logger(__name__)
    reports: List[FanoutReport] = []
    try:
        reports.append(fanout.notify_price_change(rates))
    except PartialDeliveryError as exc:
        logger.warning("cycle.partial_delivery", extra={"trace_id": trace_id, "error": exc.last_error})
        reports.append(exc.report)

    for rate in threshold_breaches(rates, settings.alert_threshold_percent):
        try:
            reports.append(fanout.notify_threshold_alert(rate, float(settings.alert_threshold_percent)))
        except PartialDeliveryError as exc:
            logger.warning("cycle.partial_threshold_delivery", extra={"trace_id": trace_id, "error": exc.last_error})
            reports.append(exc.report)
    return sum(r.delivered for r in reports)


@shared_task(name="ingestion.tasks.scrape.scrape_rates", queue="ingestion.scrape")
def scrape_rates(source_ids: Optional[List[str]] = None) -> dict:  # pragma: no cover - thin Celery wrapper
    return scrape_cycle_core(source_ids).__dict__
