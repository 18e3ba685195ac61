"""
Telegram delivery channel - Bot API over httpx
"""
import json
from typing import Optional, Sequence

import httpx

from conditions.core.circuit_breaker import get_telegram_circuit_breaker
from conditions.core.config import settings
from conditions.core.exceptions import TelegramError
from conditions.core.logging import get_logger
from conditions.domain.models import Massif, Platform
from conditions.domain.services.delivery_dispatcher import DeliveryItem
from conditions.domain.services.formatters import bulletin_caption
from conditions.domain.services.image_service import BulletinImage, ImageCache
from conditions.state_machine import messages

logger = get_logger(__name__)

# sendMediaGroup accepts at most 10 items
MAX_MEDIA_GROUP = 10


class TelegramChannel:
    platform = Platform.TELEGRAM

    def __init__(
        self,
        images: ImageCache,
        bot_token: Optional[str] = None,
        batch_size: Optional[int] = None,
    ):
        self.images = images
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.batch_size = batch_size or settings.TELEGRAM_BATCH_SIZE
        self._circuit_breaker = get_telegram_circuit_breaker()

    def _url(self, method: str) -> str:
        return f"https://api.telegram.org/bot{self.bot_token}/{method}"

    async def _post(self, method: str, **kwargs) -> None:
        async def _send():
            async with httpx.AsyncClient() as client:
                response = await client.post(self._url(method), timeout=30.0, **kwargs)
                if response.status_code != 200:
                    raise TelegramError.from_response(method, response)

        await self._circuit_breaker.execute(_send)

    async def send_document(self, chat_id: str, item: DeliveryItem) -> None:
        await self._post("sendDocument", json={
            "chat_id": chat_id,
            "document": item.bulletin.public_url,
            "caption": bulletin_caption(item.massif.name, item.bulletin.valid_to, item.bulletin.risk_level),
        })

    async def send_media_group(self, chat_id: str, images: Sequence[BulletinImage]) -> None:
        media = []
        files = {}
        for index, image in enumerate(images[:MAX_MEDIA_GROUP]):
            attach = f"photo{index}"
            media.append({"type": "photo", "media": f"attach://{attach}", "caption": image.caption})
            files[attach] = (image.filename, image.data, "image/jpeg")

        await self._post(
            "sendMediaGroup",
            data={"chat_id": chat_id, "media": json.dumps(media, ensure_ascii=False)},
            files=files,
        )

    async def send(self, item: DeliveryItem) -> None:
        sent_something = False
        if item.preferences.bulletin:
            await self.send_document(item.recipient, item)
            sent_something = True

        image_types = item.preferences.image_types()
        if image_types:
            images = await self.images.get(item.massif, image_types, item.bulletin.valid_to)
            if images:
                await self.send_media_group(item.recipient, images)
                sent_something = True

        if not sent_something:
            await self._post("sendMessage", json={
                "chat_id": item.recipient,
                "text": messages.no_content(item.massif.name).replace("*", ""),
            })

    async def send_follow_up(self, recipient: str, massifs: Sequence[Massif]) -> None:
        """Telegram is delivery only: subscriptions are managed from WhatsApp"""
        return None
