from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ingestion.connectors.base import BaseFetcher, FetchHTTPStatusError, FetchTimeoutError
from ingestion.errors import ExtractionError
from ingestion.models.domain import ScrapingSource
from ingestion.parsing.rates import RatePlausibilityBand
from ingestion.services.scraper import ScraperEngine, extract_text

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeFetcher(BaseFetcher):
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    def fetch(self, source: ScrapingSource) -> str:
        self.calls.append(source.id)
        page = self.pages[source.url]
        if isinstance(page, Exception):
            raise page
        return page


def _source(source_id: str, *, rate_type="parallel", active=True, selector=".rate") -> ScrapingSource:
    return ScrapingSource(
        id=source_id,
        name=f"Source {source_id}",
        url=f"https://{source_id}.example.com/",
        selector=selector,
        rate_type=rate_type,
        is_active=active,
    )


def _engine(pages, **kwargs) -> tuple[ScraperEngine, FakeFetcher]:
    fetcher = FakeFetcher(pages)
    return ScraperEngine(fetcher, clock=lambda: FIXED_NOW, **kwargs), fetcher


def test_extract_text_returns_first_match():
    markup = "<div class='rate'> Compra <b>6,86</b> </div><div class='rate'>9.99</div>"

    assert extract_text(markup, ".rate") == "Compra 6,86"


def test_extract_text_raises_when_selector_misses():
    with pytest.raises(ExtractionError):
        extract_text("<p>nothing</p>", ".rate")


def test_extract_text_raises_on_empty_node():
    with pytest.raises(ExtractionError):
        extract_text("<span class='rate'>  </span>", ".rate")


def test_scrape_all_builds_results_from_source_metadata():
    engine, _ = _engine({"https://a.example.com/": "<span class='rate'>6.95 - 7.05</span>"})

    results = engine.scrape_all([_source("a", rate_type="official")])

    assert len(results) == 1
    result = results[0]
    assert result.type == "official"
    assert result.base_currency == "USD"
    assert result.target_currency == "BOB"
    assert (result.buy_price, result.sell_price) == (6.95, 7.05)
    assert result.source == "Source a"
    assert result.timestamp == FIXED_NOW


def test_one_failing_source_does_not_affect_the_others():
    source_a, source_b, source_c, source_d = (_source(x) for x in "abcd")
    engine, fetcher = _engine(
        {
            source_a.url: "<span class='rate'>6.90 7.00</span>",
            source_b.url: FetchHTTPStatusError(source_b.name, 500, "Server Error"),
            source_c.url: FetchTimeoutError(source_c.name, "timed out"),
            source_d.url: "<span class='other'>7.10</span>",
        },
        max_workers=3,
    )

    results = engine.scrape_all([source_a, source_b, source_c, source_d])

    assert [r.source for r in results] == ["Source a"]
    assert sorted(fetcher.calls) == ["a", "b", "c", "d"]


def test_unexpected_errors_are_isolated_too():
    source_a, source_b = _source("a"), _source("b")
    engine, _ = _engine({source_a.url: RuntimeError("boom"), source_b.url: "<i class='rate'>7.00</i>"})

    results = engine.scrape_all([source_a, source_b])

    assert [r.source for r in results] == ["Source b"]


def test_inactive_sources_are_never_fetched():
    active, inactive = _source("a"), _source("b", active=False)
    engine, fetcher = _engine({active.url: "<i class='rate'>7.00</i>", inactive.url: "<i class='rate'>8.00</i>"})

    results = engine.scrape_all([active, inactive])

    assert len(results) == 1
    assert fetcher.calls == ["a"]


def test_empty_source_list_returns_empty():
    engine, fetcher = _engine({})

    assert engine.scrape_all([]) == []
    assert fetcher.calls == []


def test_unparseable_text_drops_the_source():
    source = _source("a")
    engine, _ = _engine({source.url: "<i class='rate'>sin datos</i>"})

    assert engine.scrape_all([source]) == []


def test_band_applies_to_single_values():
    source = _source("a")
    engine, _ = _engine(
        {source.url: "<i class='rate'>Actualizado 2024</i>"},
        band=RatePlausibilityBand(minimum=5, maximum=20),
    )

    assert engine.scrape_all([source]) == []


def test_scrape_source_propagates_fetch_errors():
    source = _source("a")
    engine, _ = _engine({source.url: FetchTimeoutError(source.name, "timed out")})

    with pytest.raises(FetchTimeoutError):
        engine.scrape_source(source)
