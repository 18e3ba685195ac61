"""
Admin Notification Service - operator alerts through a Telegram chat

Notifications are best-effort: notify() and notify_error() never raise, so a
Telegram outage cannot change the outcome of a cron run or a chat flow.
"""
import traceback
from typing import Any, Optional, Protocol

import httpx

from conditions.core.circuit_breaker import get_admin_alert_circuit_breaker
from conditions.core.config import settings
from conditions.core.exceptions import TelegramError
from conditions.core.logging import get_logger

logger = get_logger(__name__)

MAX_TRACE_CHARS = 500
MAX_MESSAGE_CHARS = 4000


class AdminNotifier(Protocol):
    async def notify(self, message: str, metadata: Optional[dict[str, Any]] = None) -> None: ...

    async def notify_error(self, error: BaseException | str, context: Optional[str] = None) -> None: ...


def format_notification(message: str, metadata: Optional[dict[str, Any]] = None) -> str:
    text = f"📊 {message}"
    if metadata:
        text += "\n\nMetadata:"
        for key, value in metadata.items():
            text += f"\n• {key}: {value}"
    return text[:MAX_MESSAGE_CHARS]


def format_error(error: BaseException | str, context: Optional[str] = None) -> str:
    text = f"🚨 Error Alert\n\n{error}"
    if context:
        text += f"\n\nContext: {context}"
    if isinstance(error, BaseException) and error.__traceback__ is not None:
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        text += f"\n\nStack trace:\n{trace[:MAX_TRACE_CHARS]}"
    return text


class TelegramAdminNotifier:
    """Sends operator messages to TELEGRAM_ADMIN_CHAT_ID"""

    def __init__(self, bot_token: Optional[str] = None, chat_id: Optional[str] = None):
        self.bot_token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_ADMIN_CHAT_ID

    async def notify(self, message: str, metadata: Optional[dict[str, Any]] = None) -> None:
        await self._send(format_notification(message, metadata))

    async def notify_error(self, error: BaseException | str, context: Optional[str] = None) -> None:
        await self._send(format_error(error, context)[:MAX_MESSAGE_CHARS])

    async def _send(self, text: str) -> None:
        if not self.bot_token or not self.chat_id:
            logger.debug("Admin notification skipped, no admin chat configured")
            return

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": self.chat_id, "text": text}
        circuit_breaker = get_admin_alert_circuit_breaker()

        async def _post():
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, timeout=30.0)
                if response.status_code != 200:
                    raise TelegramError.from_response("sendMessage", response)

        try:
            await circuit_breaker.execute(_post)
        except Exception as e:
            logger.error(
                "Failed to send admin notification",
                extra_data={"error": str(e)},
                exc_info=True
            )


class LoggingAdminNotifier:
    """Notifier for environments without an admin chat: log only"""

    async def notify(self, message: str, metadata: Optional[dict[str, Any]] = None) -> None:
        logger.info(message, extra_data=metadata or {})

    async def notify_error(self, error: BaseException | str, context: Optional[str] = None) -> None:
        logger.error(f"{context or 'error'}: {error}")


def get_admin_notifier() -> AdminNotifier:
    if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_ADMIN_CHAT_ID:
        return TelegramAdminNotifier()
    return LoggingAdminNotifier()
