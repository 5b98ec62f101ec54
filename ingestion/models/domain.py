"""Domain models for the rate pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RateType = Literal["official", "parallel"]
NotificationType = Literal["price_change", "threshold_alert"]

PLATFORM_TELEGRAM = "telegram"
PLATFORM_WEB_PUSH = "web_push"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ScrapingSource(BaseModel):
    """A page that publishes one quote, owned by configuration."""

    id: str
    name: str
    url: str
    selector: str = Field(..., description="CSS locator of the rate text")
    currency: str = Field("USD", description="Base currency")
    target_currency: str = "BOB"
    frequency: str = Field("0 */2 * * *", description="Cron cadence, advisory")
    is_active: bool = True
    rate_type: RateType
    created_at: datetime = Field(default_factory=_utcnow)


class RawScrapeResult(BaseModel):
    """Transient output of one successful source scrape."""

    type: RateType
    base_currency: str
    target_currency: str
    buy_price: float
    sell_price: float
    source: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ExchangeRate(BaseModel):
    """Current rate for a (type, base, target) key.

    ``average_price`` and ``spread_amount`` are always derived from the buy and
    sell prices; values passed in for them are discarded.
    """

    id: str = Field(default_factory=_new_id)
    type: RateType
    base_currency: str
    target_currency: str
    buy_price: float
    sell_price: float
    average_price: float = 0.0
    spread_amount: float = 0.0
    change_24h: float = 0.0
    change_percentage_24h: float = 0.0
    last_updated: datetime = Field(default_factory=_utcnow)
    source: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and "buy_price" in data and "sell_price" in data:
            data = dict(data)
            buy = float(data["buy_price"])
            sell = float(data["sell_price"])
            data["average_price"] = (buy + sell) / 2
            data["spread_amount"] = sell - buy
        return data

    @model_validator(mode="after")
    def _check_order(self) -> "ExchangeRate":
        if self.sell_price < self.buy_price:
            raise ValueError("sell_price must be greater than or equal to buy_price")
        return self

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.type, self.base_currency, self.target_currency)


class HistoricalRate(BaseModel):
    """Immutable snapshot of a rate observation."""

    id: str = Field(default_factory=_new_id)
    rate_type: RateType
    base_currency: str
    target_currency: str
    buy_price: float
    sell_price: float
    average_price: float
    recorded_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_rate(cls, rate: ExchangeRate) -> "HistoricalRate":
        return cls(
            rate_type=rate.type,
            base_currency=rate.base_currency,
            target_currency=rate.target_currency,
            buy_price=rate.buy_price,
            sell_price=rate.sell_price,
            average_price=rate.average_price,
            recorded_at=rate.last_updated,
        )


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscription(BaseModel):
    """Browser push subscription (endpoint plus encryption keys)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    endpoint: str
    keys: PushKeys
    expiration_time: Optional[int] = Field(None, alias="expirationTime")

    def as_webpush_info(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "keys": self.keys.model_dump()}


DeliveryTarget = Union[str, PushSubscription]


class NotificationSubscriber(BaseModel):
    """A subscriber registered by the external registration flow.

    ``platform`` is kept as a plain string so rows written with a platform this
    service does not know can still be loaded and skipped at dispatch time.
    """

    id: str = Field(default_factory=_new_id)
    user_identifier: Optional[str] = None
    platform: str
    push_subscription: Optional[PushSubscription] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _push_only_for_web_push(self) -> "NotificationSubscriber":
        if self.platform != PLATFORM_WEB_PUSH and self.push_subscription is not None:
            self.push_subscription = None
        return self

    def delivery_target(self) -> Optional[DeliveryTarget]:
        """Return the channel-specific target, or None when nothing is registered."""
        if self.platform == PLATFORM_WEB_PUSH:
            return self.push_subscription
        if self.user_identifier and self.user_identifier.strip():
            return self.user_identifier
        return None


class AlertNotification(BaseModel):
    """Append-only record of one delivery attempt."""

    id: str = Field(default_factory=_new_id)
    subscriber_id: str
    type: NotificationType
    message: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value
