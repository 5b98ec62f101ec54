import pytest

celery = pytest.importorskip("celery")  # noqa: F841

from ingestion.celery_app import create_celery_app, cron_schedule
from ingestion.settings import Settings, SourceConfig


def _source(source_id: str, rate_type: str, frequency: str, active: bool = True) -> SourceConfig:
    return SourceConfig(
        id=source_id,
        name=f"Source {source_id}",
        url=f"https://{source_id}.example.com/",
        selector=".rate",
        rate_type=rate_type,
        frequency=frequency,
        is_active=active,
    )


def _make_settings() -> Settings:
    return Settings(
        redis_url="redis://localhost:6379/0",
        database_dsn="sqlite:///:memory:",
        scraping_sources=[
            _source("bcb", "official", "0 */6 * * *"),
            _source("dolarbo", "parallel", "0 */2 * * *"),
            _source("binance", "parallel", "0 */2 * * *"),
            _source("old", "parallel", "*/5 * * * *", active=False),
        ],
        structlog_level="DEBUG",
        celery_worker_concurrency=2,
    )


def test_create_celery_app_groups_active_sources_by_frequency():
    app = create_celery_app(_make_settings())

    schedule = app.conf.beat_schedule
    assert isinstance(schedule, dict)
    assert set(schedule) == {"scrape.official.0", "scrape.parallel.1"}
    assert schedule["scrape.official.0"]["args"] == (["bcb"],)
    assert schedule["scrape.parallel.1"]["args"] == (["dolarbo", "binance"],)
    assert all(entry["task"] == "ingestion.tasks.scrape.scrape_rates" for entry in schedule.values())
    assert all(entry["options"] == {"queue": "ingestion.scrape"} for entry in schedule.values())
    assert app.conf.worker_concurrency == 2


def test_inactive_sources_get_no_schedule():
    settings = Settings(
        database_dsn="sqlite:///:memory:",
        scraping_sources=[_source("old", "parallel", "*/5 * * * *", active=False)],
    )

    app = create_celery_app(settings)

    assert app.conf.beat_schedule == {}


def test_cron_schedule_maps_fields():
    schedule = cron_schedule("15 */2 * * 1-5")

    assert schedule.minute == {15}
    assert 4 in schedule.hour and 5 not in schedule.hour
    assert schedule.day_of_week == {1, 2, 3, 4, 5}
