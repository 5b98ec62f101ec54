"""Passive Telegram command responder.

Runs its own long-polling loop and answers a handful of chat commands. It is
started and stopped by the hosting process and shares nothing with the rate
pipeline except the Bot API token.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

import httpx

from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

WELCOME_TEXT = (
    "¡Bienvenido a DollarAlert 🇧🇴!\n\n"
    "Te enviaré alertas cuando el dólar cambie significativamente.\n\n"
    "Comandos disponibles:\n"
    "/status - Ver tasas actuales\n"
    "/unsubscribe - Cancelar notificaciones\n"
    "/help - Ayuda"
)
HELP_TEXT = (
    "🤖 Comandos de DollarAlert:\n\n"
    "/start - Inicia el bot\n"
    "/help - Muestra esta ayuda\n"
    "/status - Tasas de cambio actuales\n"
    "/unsubscribe - Cancelar suscripción"
)
STATUS_PENDING_TEXT = "📊 Consultando las tasas más recientes..."
STATUS_ERROR_TEXT = "❌ Error al obtener las tasas. Inténtalo más tarde."
UNSUBSCRIBED_TEXT = "🔕 Has sido desuscrito de las notificaciones."
FALLBACK_TEXT = "Usa /help para ver los comandos disponibles."

StatusProvider = Callable[[], str]


class TelegramCommandResponder:
    def __init__(
        self,
        token: str,
        *,
        api_base: str = "https://api.telegram.org",
        status_provider: Optional[StatusProvider] = None,
        poll_timeout: int = 25,
        retry_delay: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._base = f"{api_base.rstrip('/')}/bot{token}"
        self._status_provider = status_provider
        self._poll_timeout = poll_timeout
        self._retry_delay = retry_delay
        self._client = client or httpx.Client(timeout=poll_timeout + 5)
        self._offset: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def reply_for(self, text: str) -> str:
        command = text.strip().split(maxsplit=1)[0].split("@", 1)[0].lower() if text.strip() else ""
        if command == "/start":
            return WELCOME_TEXT
        if command == "/help":
            return HELP_TEXT
        if command == "/status":
            if self._status_provider is None:
                return STATUS_PENDING_TEXT
            try:
                return self._status_provider()
            except Exception:
                logger.exception("bot.status_failed")
                return STATUS_ERROR_TEXT
        if command == "/unsubscribe":
            return UNSUBSCRIBED_TEXT
        return FALLBACK_TEXT

    def poll_once(self) -> int:
        """Fetch one batch of updates and answer them. Returns the number handled."""
        params: Dict[str, Any] = {"timeout": self._poll_timeout, "allowed_updates": '["message"]'}
        if self._offset is not None:
            params["offset"] = self._offset
        resp = self._client.get(f"{self._base}/getUpdates", params=params)
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError("getUpdates returned a non-object body")
        updates: List[Any] = body.get("result") or []
        for update in updates:
            update_id = update.get("update_id") if isinstance(update, dict) else None
            if not isinstance(update_id, int):
                logger.warning("bot.update_without_id", extra={"update": str(update)[:120]})
                continue
            self._offset = update_id + 1
            message = update.get("message") or {}
            chat_id = (message.get("chat") or {}).get("id")
            if chat_id is None or "text" not in message:
                continue
            self._client.post(
                f"{self._base}/sendMessage",
                json={"chat_id": chat_id, "text": self.reply_for(message["text"])},
            )
        return len(updates)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="telegram-bot", daemon=True)
        self._thread.start()
        logger.info("bot.started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("bot.stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except httpx.HTTPError as exc:
                logger.warning("bot.poll_failed", extra={"error": str(exc)})
                self._stop.wait(self._retry_delay)
            except Exception:
                # malformed Bot API payloads must not end the polling thread
                logger.exception("bot.poll_error")
                self._stop.wait(self._retry_delay)
