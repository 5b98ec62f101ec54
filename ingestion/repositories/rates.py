"""SQLAlchemy repositories for current and historical rates."""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.db.models import ExchangeRateRow, HistoricalRateRow
from ingestion.db.session import session_scope
from ingestion.errors import PersistenceError
from ingestion.models.domain import ExchangeRate, HistoricalRate
from ingestion.repositories.memory import as_utc

SessionFactory = Callable[[], AbstractContextManager[Session]]


def to_exchange_rate(row: ExchangeRateRow) -> ExchangeRate:
    return ExchangeRate(
        id=row.id,
        type=row.type,
        base_currency=row.base_currency,
        target_currency=row.target_currency,
        buy_price=row.buy_price,
        sell_price=row.sell_price,
        change_24h=row.change_24h,
        change_percentage_24h=row.change_percentage_24h,
        last_updated=as_utc(row.last_updated),
        source=row.source,
    )


def to_historical_rate(row: HistoricalRateRow) -> HistoricalRate:
    return HistoricalRate(
        id=row.id,
        rate_type=row.rate_type,
        base_currency=row.base_currency,
        target_currency=row.target_currency,
        buy_price=row.buy_price,
        sell_price=row.sell_price,
        average_price=row.average_price,
        recorded_at=as_utc(row.recorded_at),
    )


class SqlRateRepository:
    """Each call runs in its own short transaction so one failing write
    leaves the rest of the batch untouched."""

    def __init__(self, session_factory: SessionFactory = session_scope) -> None:
        self._session_factory = session_factory

    def get_current_rate(self, rate_type: str, base: str, target: str) -> Optional[ExchangeRate]:
        try:
            with self._session_factory() as session:
                row = session.scalar(self._key_stmt(rate_type, base, target))
                return to_exchange_rate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"reading current rate {rate_type}/{base}/{target} failed: {exc}") from exc

    def upsert_current_rate(self, rate: ExchangeRate) -> ExchangeRate:
        try:
            try:
                return self._upsert(rate)
            except IntegrityError:
                # a concurrent cycle inserted the key between our read and write;
                # the row exists now, so the timestamp check applies on retry
                return self._upsert(rate)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"upserting rate {rate.key} failed: {exc}") from exc

    def _upsert(self, rate: ExchangeRate) -> ExchangeRate:
        with self._session_factory() as session:
            row = session.scalar(
                self._key_stmt(rate.type, rate.base_currency, rate.target_currency).with_for_update()
            )
            if row is None:
                row = ExchangeRateRow(
                    type=rate.type,
                    base_currency=rate.base_currency,
                    target_currency=rate.target_currency,
                )
                session.add(row)
            elif as_utc(row.last_updated) > as_utc(rate.last_updated):
                return to_exchange_rate(row)
            row.id = rate.id
            row.buy_price = rate.buy_price
            row.sell_price = rate.sell_price
            row.average_price = rate.average_price
            row.spread_amount = rate.spread_amount
            row.change_24h = rate.change_24h
            row.change_percentage_24h = rate.change_percentage_24h
            row.last_updated = rate.last_updated
            row.source = rate.source
            session.flush()
            return to_exchange_rate(row)

    def append_historical_rate(self, snapshot: HistoricalRate) -> HistoricalRate:
        try:
            with self._session_factory() as session:
                row = HistoricalRateRow(
                    id=snapshot.id,
                    rate_type=snapshot.rate_type,
                    base_currency=snapshot.base_currency,
                    target_currency=snapshot.target_currency,
                    buy_price=snapshot.buy_price,
                    sell_price=snapshot.sell_price,
                    average_price=snapshot.average_price,
                    recorded_at=snapshot.recorded_at,
                )
                session.add(row)
                session.flush()
                return to_historical_rate(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"appending historical rate failed: {exc}") from exc

    def list_current_rates(self, limit: int = 10) -> List[ExchangeRate]:
        with self._session_factory() as session:
            stmt = select(ExchangeRateRow).order_by(ExchangeRateRow.last_updated.desc()).limit(limit)
            return [to_exchange_rate(r) for r in session.scalars(stmt)]

    def list_historical_rates(
        self,
        *,
        rate_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 25,
        offset: int = 0,
    ) -> tuple[List[HistoricalRate], int]:
        """Return one page of snapshots, newest first, plus the total match count."""
        with self._session_factory() as session:
            stmt = select(HistoricalRateRow)
            if rate_type:
                stmt = stmt.where(HistoricalRateRow.rate_type == rate_type)
            if start:
                stmt = stmt.where(HistoricalRateRow.recorded_at >= start)
            if end:
                stmt = stmt.where(HistoricalRateRow.recorded_at <= end)
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            page = stmt.order_by(HistoricalRateRow.recorded_at.desc()).offset(offset).limit(limit)
            return [to_historical_rate(r) for r in session.scalars(page)], int(total)

    @staticmethod
    def _key_stmt(rate_type: str, base: str, target: str):
        return select(ExchangeRateRow).where(
            ExchangeRateRow.type == rate_type,
            ExchangeRateRow.base_currency == base,
            ExchangeRateRow.target_currency == target,
        )
