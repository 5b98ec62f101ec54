from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from ingestion.errors import DeliveryError
from ingestion.models.domain import (
    AlertNotification,
    ExchangeRate,
    NotificationSubscriber,
    NotificationType,
)
from ingestion.repositories.contracts import NotificationRepository, SubscriberRepository
from ingestion.utils.logging import get_logger
from publish.channels import ChannelAdapter
from publish.messages import format_price_change, format_threshold_alert

logger = get_logger(__name__)


@dataclass(frozen=True)
class DispatchOutcome:
    subscriber_id: str
    platform: str
    type: str
    delivered: bool
    recorded: bool
    error: Optional[str] = None
    channel_disabled: bool = False


@dataclass
class FanoutReport:
    outcomes: List[DispatchOutcome] = field(default_factory=list)
    skipped: int = 0

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def delivered(self) -> int:
        return sum(1 for o in self.outcomes if o.delivered)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.error is not None)

    @property
    def disabled(self) -> int:
        return sum(1 for o in self.outcomes if o.channel_disabled)


class PartialDeliveryError(DeliveryError):
    """Raised after a fan-out completed with at least one failed recipient."""

    def __init__(self, last_error: str, report: FanoutReport) -> None:
        super().__init__(f"{report.failed}/{report.attempted} deliveries failed; last error: {last_error}")
        self.last_error = last_error
        self.report = report


class NotificationFanout:
    """Dispatches rate events to every active subscriber.

    Recipients are isolated from each other: a failing channel is logged and
    the remaining recipients are still attempted. An ``AlertNotification`` is
    appended for every attempt whatever its outcome. If anything failed, the
    last error is raised once all attempts are done.
    """

    def __init__(
        self,
        subscribers: SubscriberRepository,
        notifications: NotificationRepository,
        channels: Mapping[str, ChannelAdapter],
        *,
        max_workers: int = 1,
    ) -> None:
        self._subscribers = subscribers
        self._notifications = notifications
        self._channels = dict(channels)
        self._max_workers = max(1, max_workers)

    def notify_price_change(self, rates: Sequence[ExchangeRate]) -> FanoutReport:
        if not rates:
            return FanoutReport()
        recipients = self._load_recipients()
        report = FanoutReport()
        for rate in rates:
            self._fan_out(recipients, "price_change", format_price_change(rate), report)
        return self._finish("price_change", report)

    def notify_threshold_alert(self, rate: ExchangeRate, threshold_percent: float) -> FanoutReport:
        recipients = self._load_recipients()
        report = FanoutReport()
        self._fan_out(recipients, "threshold_alert", format_threshold_alert(rate, threshold_percent), report)
        return self._finish("threshold_alert", report)

    def create_notification(self, subscriber_id: str, kind: NotificationType, message: str) -> AlertNotification:
        return self._notifications.append_notification(
            AlertNotification(subscriber_id=subscriber_id, type=kind, message=message)
        )

    def _load_recipients(self) -> List[NotificationSubscriber]:
        # a failing subscriber lookup is a batch-level error and propagates
        subscribers = self._subscribers.get_active_subscribers()
        recipients = [s for s in subscribers if s.is_active and s.delivery_target() is not None]
        if not recipients:
            logger.info("notify.no_subscribers")
        return recipients

    def _fan_out(
        self,
        recipients: Iterable[NotificationSubscriber],
        kind: NotificationType,
        message: str,
        report: FanoutReport,
    ) -> None:
        routable: List[NotificationSubscriber] = []
        for subscriber in recipients:
            if subscriber.platform not in self._channels:
                logger.warning(
                    "notify.unsupported_platform",
                    extra={"subscriber_id": subscriber.id, "platform": subscriber.platform},
                )
                report.skipped += 1
                continue
            routable.append(subscriber)
        if not routable:
            return

        workers = min(self._max_workers, len(routable))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
            report.outcomes.extend(pool.map(lambda s: self._dispatch(s, kind, message), routable))

    def _dispatch(self, subscriber: NotificationSubscriber, kind: NotificationType, message: str) -> DispatchOutcome:
        extra = {"subscriber_id": subscriber.id, "platform": subscriber.platform, "type": kind}
        error: Optional[str] = None
        delivered = False
        channel = self._channels[subscriber.platform]
        disabled = not getattr(channel, "enabled", True)
        if disabled:
            logger.info("notify.channel_disabled", extra=extra)
        else:
            try:
                channel.deliver(subscriber.delivery_target(), message)
                delivered = True
            except Exception as exc:
                error = str(exc)
                logger.warning("notify.delivery_failed", extra={**extra, "error": error})

        recorded = False
        try:
            self.create_notification(subscriber.id, kind, message)
            recorded = True
        except Exception as exc:
            record_error = f"recording notification failed: {exc}"
            error = record_error if error is None else f"{error}; {record_error}"
            logger.warning("notify.record_failed", extra={**extra, "error": record_error})

        return DispatchOutcome(
            subscriber_id=subscriber.id,
            platform=subscriber.platform,
            type=kind,
            delivered=delivered,
            recorded=recorded,
            error=error,
            channel_disabled=disabled,
        )

    def _finish(self, kind: str, report: FanoutReport) -> FanoutReport:
        logger.info(
            "notify.done",
            extra={
                "type": kind,
                "attempted": report.attempted,
                "delivered": report.delivered,
                "failed": report.failed,
                "disabled": report.disabled,
                "skipped": report.skipped,
            },
        )
        errors = [o.error for o in report.outcomes if o.error is not None]
        if errors:
            raise PartialDeliveryError(errors[-1], report)
        return report
