from __future__ import annotations

import pytest

from ingestion.errors import DeliveryError, PersistenceError
from ingestion.models.domain import ExchangeRate, NotificationSubscriber, PushKeys, PushSubscription
from ingestion.repositories.memory import InMemoryNotificationRepository, InMemorySubscriberRepository
from publish.channels import TelegramChannel
from publish.notifier import NotificationFanout, PartialDeliveryError

PUSH = PushSubscription(endpoint="https://push.example.com/abc", keys=PushKeys(p256dh="p256", auth="auth"))


class RecordingChannel:
    def __init__(self, failing_targets=()):
        self.failing_targets = set(failing_targets)
        self.sent = []

    def deliver(self, target, message):
        self.sent.append((target, message))
        key = target if isinstance(target, str) else target.endpoint
        if key in self.failing_targets:
            raise DeliveryError(f"cannot reach {key}")


class BrokenSubscribers:
    def get_active_subscribers(self):
        raise PersistenceError("subscribers table unavailable")


def _rate(rate_type="parallel", buy=10.0, sell=12.0, change=1.0, pct=10.0) -> ExchangeRate:
    return ExchangeRate(
        type=rate_type,
        base_currency="USD",
        target_currency="BOB",
        buy_price=buy,
        sell_price=sell,
        change_24h=change,
        change_percentage_24h=pct,
    )


def _subscribers():
    return [
        NotificationSubscriber(id="tg-1", platform="telegram", user_identifier="1001"),
        NotificationSubscriber(id="tg-2", platform="telegram", user_identifier="1002"),
        NotificationSubscriber(id="wp-1", platform="web_push", push_subscription=PUSH),
    ]


def _fanout(subscribers, channels, **kwargs):
    notifications = InMemoryNotificationRepository()
    fanout = NotificationFanout(InMemorySubscriberRepository(subscribers), notifications, channels, **kwargs)
    return fanout, notifications


def test_every_subscriber_gets_every_rate():
    telegram, web_push = RecordingChannel(), RecordingChannel()
    fanout, notifications = _fanout(_subscribers(), {"telegram": telegram, "web_push": web_push})

    report = fanout.notify_price_change([_rate("official", 6.86, 6.96, 0.0, 0.0), _rate()])

    assert report.attempted == 6
    assert report.delivered == 6
    assert len(telegram.sent) == 4
    assert [target for target, _ in web_push.sent] == [PUSH, PUSH]
    assert len(notifications.list_notifications()) == 6
    assert {n.type for n in notifications.list_notifications()} == {"price_change"}


def test_failures_do_not_stop_other_recipients_and_are_recorded():
    telegram = RecordingChannel(failing_targets={"1001"})
    fanout, notifications = _fanout(_subscribers(), {"telegram": telegram, "web_push": RecordingChannel()})

    with pytest.raises(PartialDeliveryError) as exc:
        fanout.notify_price_change([_rate()])

    report = exc.value.report
    assert report.attempted == 3
    assert report.delivered == 2
    assert report.failed == 1
    assert "cannot reach 1001" in exc.value.last_error
    assert len(telegram.sent) == 2
    assert len(notifications.list_notifications()) == 3
    assert len(notifications.list_notifications("tg-1")) == 1


def test_concurrent_dispatch_reaches_everyone():
    telegram = RecordingChannel(failing_targets={"1002"})
    subscribers = [NotificationSubscriber(id=f"s{i}", platform="telegram", user_identifier=str(i)) for i in range(20)]
    subscribers.append(NotificationSubscriber(id="bad", platform="telegram", user_identifier="1002"))
    fanout, notifications = _fanout(subscribers, {"telegram": telegram}, max_workers=4)

    with pytest.raises(PartialDeliveryError) as exc:
        fanout.notify_price_change([_rate()])

    assert exc.value.report.attempted == 21
    assert len(telegram.sent) == 21
    assert len(notifications.list_notifications()) == 21


def test_unknown_platform_is_skipped():
    subscribers = _subscribers() + [NotificationSubscriber(id="sms-1", platform="sms", user_identifier="+591")]
    fanout, notifications = _fanout(subscribers, {"telegram": RecordingChannel(), "web_push": RecordingChannel()})

    report = fanout.notify_price_change([_rate()])

    assert report.skipped == 1
    assert report.attempted == 3
    assert notifications.list_notifications("sms-1") == []


def test_subscribers_without_target_or_inactive_are_ignored():
    subscribers = [
        NotificationSubscriber(id="tg", platform="telegram", user_identifier="1001"),
        NotificationSubscriber(id="empty", platform="telegram", user_identifier=" "),
        NotificationSubscriber(id="nopush", platform="web_push"),
        NotificationSubscriber(id="gone", platform="telegram", user_identifier="1003", is_active=False),
    ]
    telegram = RecordingChannel()
    fanout, _ = _fanout(subscribers, {"telegram": telegram, "web_push": RecordingChannel()})

    report = fanout.notify_price_change([_rate()])

    assert report.attempted == 1
    assert [target for target, _ in telegram.sent] == ["1001"]


def test_empty_rate_list_is_a_noop():
    fanout = NotificationFanout(BrokenSubscribers(), InMemoryNotificationRepository(), {})

    report = fanout.notify_price_change([])

    assert report.attempted == 0


def test_subscriber_lookup_failure_propagates():
    fanout = NotificationFanout(BrokenSubscribers(), InMemoryNotificationRepository(), {})

    with pytest.raises(PersistenceError):
        fanout.notify_price_change([_rate()])


def test_no_subscribers_sends_nothing():
    fanout, notifications = _fanout([], {"telegram": RecordingChannel()})

    report = fanout.notify_price_change([_rate()])

    assert report.attempted == 0
    assert notifications.list_notifications() == []


def test_threshold_alert_uses_alert_template():
    telegram = RecordingChannel()
    fanout, notifications = _fanout(_subscribers()[:1], {"telegram": telegram})

    report = fanout.notify_threshold_alert(_rate(pct=7.5), 5)

    assert report.delivered == 1
    [(_, message)] = telegram.sent
    assert message.startswith("🚨 ¡ALERTA DE UMBRAL! 🚨")
    assert "umbral del 5%" in message
    [record] = notifications.list_notifications()
    assert record.type == "threshold_alert"
    assert record.message == message


def test_recording_failure_is_reported():
    class BrokenLog(InMemoryNotificationRepository):
        def append_notification(self, notification):
            raise PersistenceError("log unavailable")

    telegram = RecordingChannel()
    fanout = NotificationFanout(
        InMemorySubscriberRepository(_subscribers()[:1]), BrokenLog(), {"telegram": telegram}
    )

    with pytest.raises(PartialDeliveryError) as exc:
        fanout.notify_price_change([_rate()])

    [outcome] = exc.value.report.outcomes
    assert outcome.delivered is True
    assert outcome.recorded is False
    assert len(telegram.sent) == 1


def test_create_notification_appends_unread_record():
    fanout, notifications = _fanout([], {})

    record = fanout.create_notification("tg-1", kind="price_change", message="hola")

    assert record.is_read is False
    assert notifications.list_notifications("tg-1") == [record]


def test_delivery_and_recording_failures_are_both_reported():
    class BrokenLog(InMemoryNotificationRepository):
        def append_notification(self, notification):
            raise PersistenceError("log unavailable")

    telegram = RecordingChannel(failing_targets={"1001"})
    fanout = NotificationFanout(
        InMemorySubscriberRepository(_subscribers()[:1]), BrokenLog(), {"telegram": telegram}
    )

    with pytest.raises(PartialDeliveryError) as exc:
        fanout.notify_price_change([_rate()])

    [outcome] = exc.value.report.outcomes
    assert outcome.error == "cannot reach 1001; recording notification failed: log unavailable"
    assert exc.value.last_error == outcome.error


def test_disabled_channel_is_not_counted_as_delivered():
    web_push = RecordingChannel()
    fanout, notifications = _fanout(_subscribers(), {"telegram": TelegramChannel(None), "web_push": web_push})

    report = fanout.notify_price_change([_rate()])

    assert report.attempted == 3
    assert report.delivered == 1
    assert report.disabled == 2
    assert report.failed == 0
    assert [o.subscriber_id for o in report.outcomes if o.channel_disabled] == ["tg-1", "tg-2"]
    assert len(web_push.sent) == 1
    assert len(notifications.list_notifications()) == 3
