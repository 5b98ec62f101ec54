from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingestion.settings import reset_settings_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("DATABASE_DSN", f"sqlite:///{tmp_path / 'rates.db'}")
    monkeypatch.setenv("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    for key in (
        "TELEGRAM_TOKEN",
        "TELEGRAM_BOT_POLLING",
        "VAPID_PUBLIC_KEY",
        "VAPID_PRIVATE_KEY",
        "ALERT_THRESHOLD_PERCENT",
        "SCRAPING_SOURCES",
        "SCRAPE_TIMEOUT_SECONDS",
        "SINGLE_VALUE_MIN_RATE",
        "SINGLE_VALUE_MAX_RATE",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()
