"""Celery application bootstrap."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from celery import Celery
from celery.schedules import crontab

from .settings import Settings, SourceConfig, get_settings
from .utils.logging import configure_logging

_CELERY_APP: Celery | None = None


def create_celery_app(settings: Settings | None = None) -> Celery:
    """Build a Celery instance from settings."""
    config = settings or get_settings()
    configure_logging(config.structlog_level, json_enabled=config.log_json)

    app = Celery("ingestion", broker=config.redis_url, backend=config.redis_url)
    app.conf.update(
        task_default_queue="ingestion.default",
        task_default_exchange="ingestion",
        task_default_routing_key="ingestion.default",
        task_soft_time_limit=config.celery_task_soft_time_limit,
        worker_concurrency=config.celery_worker_concurrency,
        beat_schedule=_build_beat_schedule(config),
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )

    app.autodiscover_tasks(["ingestion.tasks"], related_name="scrape")
    _install_signal_handlers(app, config)
    return app


def get_celery_app() -> Celery:
    """Return the singleton Celery instance."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def cron_schedule(expression: str) -> crontab:
    minute, hour, day_of_month, month_of_year, day_of_week = expression.split()
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def _build_beat_schedule(settings: Settings) -> Dict[str, Dict[str, Any]]:
    # one beat entry per distinct cadence, carrying the ids of the sources on it
    by_frequency: Dict[str, List[SourceConfig]] = {}
    for source in settings.scraping_sources:
        if not source.is_active:
            continue
        by_frequency.setdefault(source.frequency, []).append(source)

    schedule: Dict[str, Dict[str, Any]] = {}
    for index, (frequency, sources) in enumerate(by_frequency.items()):
        schedule[_build_schedule_name(sources, index)] = {
            "task": "ingestion.tasks.scrape.scrape_rates",
            "schedule": cron_schedule(frequency),
            "args": ([s.id for s in sources],),
            "options": {"queue": "ingestion.scrape"},
        }
    return schedule


def _build_schedule_name(sources: List[SourceConfig], index: int) -> str:
    types = "-".join(sorted({s.rate_type for s in sources}))
    return f"scrape.{types}.{index}"


def _install_signal_handlers(app: Celery, settings: Settings) -> None:
    from celery import signals

    logger = logging.getLogger("ingestion.worker")
    bot_holder: Dict[str, Any] = {}

    @signals.worker_ready.connect(weak=False)  # type: ignore[attr-defined]
    def _on_worker_ready(sender=None, **kwargs):  # noqa: ANN001
        if not (settings.telegram_bot_polling and settings.telegram_token):
            return
        from publish.bot import TelegramCommandResponder

        bot = TelegramCommandResponder(
            settings.telegram_token.get_secret_value(), api_base=settings.telegram_api_base
        )
        bot.start()
        bot_holder["bot"] = bot

    @signals.worker_shutdown.connect(weak=False)  # type: ignore[attr-defined]
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("Celery worker shutdown detected", extra={"sender": str(sender)})
        bot = bot_holder.pop("bot", None)
        if bot is not None:
            bot.stop()
