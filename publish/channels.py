"""Delivery channel adapters.

Every adapter exposes one capability, ``deliver(target, message)``, and raises
``DeliveryError`` when the message could not be handed to the channel. The
fan-out picks an adapter by subscriber platform and never looks further in.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

import httpx
from pywebpush import WebPushException, webpush

from ingestion.errors import DeliveryError
from ingestion.models.domain import PLATFORM_TELEGRAM, PLATFORM_WEB_PUSH, DeliveryTarget, PushSubscription
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

WEB_PUSH_TTL_SECONDS = 24 * 60 * 60


class ChannelAdapter(Protocol):
    """Delivers one message to one target.

    Adapters may expose a boolean ``enabled``; when it is false the fan-out
    skips ``deliver`` and reports the recipient as not delivered.
    """

    def deliver(self, target: DeliveryTarget, message: str) -> None: ...  # noqa: D401


class TelegramChannel:
    """Sends chat messages through the Telegram Bot HTTP API."""

    def __init__(
        self,
        token: Optional[str],
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.enabled = bool(token)
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        if not self.enabled:
            logger.warning("telegram.disabled", extra={"reason": "no token configured"})

    def deliver(self, target: DeliveryTarget, message: str) -> None:
        if not isinstance(target, str):
            raise DeliveryError("telegram target must be a chat id")
        if not self.enabled:
            logger.warning("telegram.skipped", extra={"chat_id": target})
            return
        payload = {
            "chat_id": target,
            "text": message,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            resp = self._client.post(f"{self._api_base}/bot{self._token}/sendMessage", json=payload)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"telegram request to {target} failed: {exc}") from exc
        body = _json_or_empty(resp)
        if resp.status_code >= 400 or not body.get("ok", False):
            raise DeliveryError(
                f"telegram rejected message to {target}: {resp.status_code} {body.get('description', '')}".rstrip()
            )


def build_push_payload(message: str) -> Dict[str, Any]:
    return {
        "title": "DollarAlert 🇧🇴",
        "body": message,
        "icon": "/icon-192x192.png",
        "badge": "/badge-72x72.png",
        "tag": "dollar-alert",
        "requireInteraction": True,
        "actions": [
            {"action": "view", "title": "Ver tasas"},
            {"action": "dismiss", "title": "Cerrar"},
        ],
    }


PushSender = Callable[..., Any]


class WebPushChannel:
    """Sends browser push notifications signed with the VAPID key pair."""

    def __init__(
        self,
        private_key: Optional[str],
        *,
        public_key: Optional[str] = None,
        claims_email: str = "mailto:contact@dollaralert.bo",
        sender: PushSender = webpush,
    ) -> None:
        self.enabled = bool(private_key and public_key)
        self.public_key = public_key if self.enabled else None
        self._private_key = private_key
        self._claims = {"sub": claims_email}
        self._sender = sender
        if not self.enabled:
            logger.warning("web_push.disabled", extra={"reason": "VAPID keys not configured"})

    def deliver(self, target: DeliveryTarget, message: str) -> None:
        if not isinstance(target, PushSubscription):
            raise DeliveryError("web push target must be a push subscription")
        if not self.enabled:
            logger.warning("web_push.skipped", extra={"endpoint": target.endpoint})
            return
        try:
            self._sender(
                subscription_info=target.as_webpush_info(),
                data=json.dumps(build_push_payload(message), ensure_ascii=False),
                vapid_private_key=self._private_key,
                vapid_claims=dict(self._claims),
                ttl=WEB_PUSH_TTL_SECONDS,
                headers={"Urgency": "high"},
            )
        except WebPushException as exc:
            raise DeliveryError(f"web push to {target.endpoint} failed: {exc}") from exc


def default_channels(settings: Optional[Settings] = None) -> Mapping[str, ChannelAdapter]:
    """Build the platform → adapter table from settings."""
    cfg = settings or get_settings()
    token = cfg.telegram_token.get_secret_value() if cfg.telegram_token else None
    private_key = cfg.vapid_private_key.get_secret_value() if cfg.vapid_private_key else None
    return {
        PLATFORM_TELEGRAM: TelegramChannel(
            token, api_base=cfg.telegram_api_base, timeout=float(cfg.telegram_timeout_seconds)
        ),
        PLATFORM_WEB_PUSH: WebPushChannel(
            private_key, public_key=cfg.vapid_public_key, claims_email=cfg.vapid_claims_email
        ),
    }


def _json_or_empty(resp: httpx.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
