"""Scraping source lookup (database rows, falling back to configured sources)."""

from __future__ import annotations

from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.db.models import ScrapingSourceRow
from ingestion.errors import PersistenceError
from ingestion.models.domain import ScrapingSource
from ingestion.settings import SourceConfig


def to_scraping_source(row: ScrapingSourceRow) -> ScrapingSource:
    return ScrapingSource(
        id=row.id,
        name=row.name,
        url=row.url,
        selector=row.selector,
        currency=row.currency,
        target_currency=row.target_currency,
        frequency=row.frequency,
        is_active=row.is_active,
        rate_type=row.rate_type,
        created_at=row.created_at,
    )


def sources_from_config(configs: Iterable[SourceConfig]) -> List[ScrapingSource]:
    return [ScrapingSource.model_validate(cfg.model_dump()) for cfg in configs]


class SqlSourceRepository:
    """Active sources stored in ``scraping_sources``.

    When the table holds no rows at all, the sources declared in settings are
    used so a fresh deployment scrapes something out of the box.
    """

    def __init__(self, session: Session, fallback: Iterable[SourceConfig] = ()) -> None:
        self._session = session
        self._fallback = list(fallback)

    def get_active_sources(self) -> List[ScrapingSource]:
        try:
            rows = list(self._session.scalars(select(ScrapingSourceRow)))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"loading scraping sources failed: {exc}") from exc
        if not rows:
            return [s for s in sources_from_config(self._fallback) if s.is_active]
        return [to_scraping_source(r) for r in rows if r.is_active]
