import json

import pytest

from ingestion.settings import DEFAULT_SOURCES, Settings, get_settings, reset_settings_cache


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    reset_settings_cache()
    yield
    reset_settings_cache()


def _sources_env(*items):
    return json.dumps(list(items))


def _source(source_id="bcb", **overrides):
    source = {
        "id": source_id,
        "name": "Banco Central de Bolivia",
        "url": "https://www.bcb.gob.bo/",
        "selector": ".tipo-cambio .valor",
        "rate_type": "official",
        "frequency": "0 */6 * * *",
    }
    source.update(overrides)
    return source


def test_defaults_ship_both_categories():
    settings = get_settings()

    assert {s.rate_type for s in settings.scraping_sources} == {"official", "parallel"}
    assert len(settings.scraping_sources) == len(DEFAULT_SOURCES)
    assert settings.telegram_token is None
    assert settings.alert_threshold_percent is None
    assert settings.single_value_min_rate is None


def test_get_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("SCRAPING_SOURCES", _sources_env(_source(currency="usd")))
    monkeypatch.setenv("TELEGRAM_TOKEN", "123:abc")
    monkeypatch.setenv("ALERT_THRESHOLD_PERCENT", "2.5")
    monkeypatch.setenv("SINGLE_VALUE_MIN_RATE", "5")
    monkeypatch.setenv("SINGLE_VALUE_MAX_RATE", "20")

    settings = get_settings()

    assert [s.id for s in settings.scraping_sources] == ["bcb"]
    assert settings.scraping_sources[0].currency == "USD"
    assert settings.scraping_sources[0].target_currency == "BOB"
    assert settings.telegram_token and settings.telegram_token.get_secret_value() == "123:abc"
    assert settings.alert_threshold_percent == 2.5
    assert (settings.single_value_min_rate, settings.single_value_max_rate) == (5, 20)


def test_reset_settings_cache_reloads(monkeypatch):
    monkeypatch.setenv("TELEGRAM_TOKEN", "first")
    first = get_settings()
    assert first.telegram_token and first.telegram_token.get_secret_value() == "first"

    monkeypatch.setenv("TELEGRAM_TOKEN", "next")
    assert get_settings().telegram_token.get_secret_value() == "first"

    reset_settings_cache()
    assert get_settings().telegram_token.get_secret_value() == "next"


@pytest.mark.parametrize(("value", "expected"), [("3", 10.0), ("15", 15.0), ("60", 20.0)])
def test_scrape_timeout_is_clamped(monkeypatch, value, expected):
    monkeypatch.setenv("SCRAPE_TIMEOUT_SECONDS", value)

    assert get_settings().scrape_timeout_seconds == expected


def test_duplicate_source_ids_raise(monkeypatch):
    monkeypatch.setenv("SCRAPING_SOURCES", _sources_env(_source("x"), _source("x", rate_type="parallel")))

    with pytest.raises(RuntimeError) as exc:
        get_settings()

    assert "duplicate scraping source id" in str(exc.value)


@pytest.mark.parametrize(
    "override",
    [{"url": "ftp://example.com"}, {"selector": "  "}, {"frequency": "every hour"}, {"rate_type": "blue"}],
)
def test_invalid_source_definitions_raise(monkeypatch, override):
    monkeypatch.setenv("SCRAPING_SOURCES", _sources_env(_source(**override)))

    with pytest.raises(RuntimeError):
        get_settings()


def test_inverted_band_is_rejected(monkeypatch):
    monkeypatch.setenv("SINGLE_VALUE_MIN_RATE", "20")
    monkeypatch.setenv("SINGLE_VALUE_MAX_RATE", "5")

    with pytest.raises(RuntimeError):
        get_settings()


def test_settings_accept_field_names():
    settings = Settings(database_dsn="sqlite:///:memory:", log_json=True)

    assert settings.database_dsn == "sqlite:///:memory:"
    assert settings.log_json is True
