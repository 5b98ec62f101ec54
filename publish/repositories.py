"""SQLAlchemy repositories for subscribers and the notification log."""

from __future__ import annotations

from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.db.models import AlertNotificationRow, NotificationSubscriberRow
from ingestion.db.session import session_scope
from ingestion.errors import PersistenceError
from ingestion.models.domain import AlertNotification, NotificationSubscriber, PushSubscription
from ingestion.repositories.memory import as_utc
from ingestion.repositories.rates import SessionFactory
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def to_subscriber(row: NotificationSubscriberRow) -> NotificationSubscriber:
    push: Optional[PushSubscription] = None
    if row.push_subscription_data:
        try:
            push = PushSubscription.model_validate(row.push_subscription_data)
        except ValidationError:
            logger.warning("subscribers.bad_push_payload", extra={"subscriber_id": row.id})
    return NotificationSubscriber(
        id=row.id,
        user_identifier=row.user_identifier,
        platform=row.platform,
        push_subscription=push,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def to_notification(row: AlertNotificationRow) -> AlertNotification:
    return AlertNotification(
        id=row.id,
        subscriber_id=row.subscriber_id,
        type=row.type,
        message=row.message,
        is_read=row.is_read,
        created_at=as_utc(row.created_at),
    )


class SqlSubscriberRepository:
    def __init__(self, session_factory: SessionFactory = session_scope) -> None:
        self._session_factory = session_factory

    def get_active_subscribers(self) -> List[NotificationSubscriber]:
        return self._query(select(NotificationSubscriberRow).where(NotificationSubscriberRow.is_active.is_(True)))

    def get_subscribers_by_platform(self, platform: str) -> List[NotificationSubscriber]:
        return self._query(
            select(NotificationSubscriberRow).where(
                NotificationSubscriberRow.platform == platform,
                NotificationSubscriberRow.is_active.is_(True),
            )
        )

    def _query(self, stmt) -> List[NotificationSubscriber]:
        try:
            with self._session_factory() as session:
                return [to_subscriber(r) for r in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"loading subscribers failed: {exc}") from exc


class SqlNotificationRepository:
    """Append-only notification log; only the read flag is ever updated."""

    def __init__(self, session_factory: SessionFactory = session_scope) -> None:
        self._session_factory = session_factory

    def append_notification(self, notification: AlertNotification) -> AlertNotification:
        try:
            with self._session_factory() as session:
                row = AlertNotificationRow(
                    id=notification.id,
                    subscriber_id=notification.subscriber_id,
                    type=notification.type,
                    message=notification.message,
                    is_read=notification.is_read,
                    created_at=notification.created_at,
                )
                session.add(row)
                session.flush()
                return to_notification(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"appending notification failed: {exc}") from exc

    def list_notifications(
        self,
        *,
        subscriber_id: str | None = None,
        unread_only: bool = False,
        limit: int = 25,
        offset: int = 0,
    ) -> List[AlertNotification]:
        with self._session_factory() as session:
            stmt = select(AlertNotificationRow)
            if subscriber_id:
                stmt = stmt.where(AlertNotificationRow.subscriber_id == subscriber_id)
            if unread_only:
                stmt = stmt.where(AlertNotificationRow.is_read.is_(False))
            stmt = stmt.order_by(AlertNotificationRow.created_at.desc()).offset(offset).limit(limit)
            return [to_notification(r) for r in session.scalars(stmt)]

    def mark_as_read(self, notification_id: str) -> None:
        with self._session_factory() as session:
            session.execute(
                update(AlertNotificationRow).where(AlertNotificationRow.id == notification_id).values(is_read=True)
            )

    def mark_all_as_read(self, subscriber_id: str | None = None) -> None:
        with self._session_factory() as session:
            stmt = update(AlertNotificationRow).values(is_read=True)
            if subscriber_id:
                stmt = stmt.where(AlertNotificationRow.subscriber_id == subscriber_id)
            session.execute(stmt)


def add_subscriber(session: Session, subscriber: NotificationSubscriber) -> NotificationSubscriberRow:
    """Insert a subscriber row (used by the registration flow and tests)."""
    row = NotificationSubscriberRow(
        id=subscriber.id,
        user_identifier=subscriber.user_identifier,
        platform=subscriber.platform,
        push_subscription_data=(
            subscriber.push_subscription.model_dump(by_alias=True, exclude_none=True)
            if subscriber.push_subscription
            else None
        ),
        is_active=subscriber.is_active,
    )
    session.add(row)
    return row
