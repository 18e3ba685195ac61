"""
WhatsApp delivery channel - bulletin document, images and follow-up prompt
"""
import asyncio
from typing import Optional, Sequence

from conditions.core.config import settings
from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.domain.models import BulletinRecord, ContentPreferences, ContentType, Massif, Platform
from conditions.domain.services.delivery_dispatcher import DeliveryItem
from conditions.domain.services.formatters import bulletin_caption
from conditions.domain.services.image_service import BulletinImage, ImageCache
from conditions.domain.services.whatsapp.base_provider import BaseWhatsAppProvider, ReplyButton
from conditions.state_machine import messages

logger = get_logger(__name__)


class WhatsAppChannel:
    """
    Sends through a BaseWhatsAppProvider.

    Uploaded image media ids are remembered for the lifetime of the channel
    (one cron run or one chat request), so an image is uploaded once however
    many recipients get it.
    """

    platform = Platform.WHATSAPP

    def __init__(
        self,
        provider: BaseWhatsAppProvider,
        images: ImageCache,
        batch_size: Optional[int] = None,
    ):
        self.provider = provider
        self.images = images
        self.batch_size = batch_size or settings.WHATSAPP_BATCH_SIZE
        self._media_ids: dict[tuple[int, ContentType], asyncio.Task] = {}

    async def _media_id(self, massif_code: int, image: BulletinImage) -> str:
        key = (massif_code, image.content_type)
        task = self._media_ids.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self.provider.upload_media(image.data, "image/jpeg", image.filename)
            )
            self._media_ids[key] = task
        try:
            return await task
        except Exception:
            # evict so the next recipient retries the upload
            if self._media_ids.get(key) is task:
                del self._media_ids[key]
            raise

    async def send_content(
        self,
        to: str,
        massif: Massif,
        bulletin: BulletinRecord,
        preferences: ContentPreferences,
    ) -> None:
        """
        Document first, then each image on its own.

        A failed document send raises; a failed image is logged and skipped.
        """
        sent_something = False
        if preferences.bulletin:
            await self.provider.send_document(
                to,
                bulletin.public_url,
                filename=bulletin.filename,
                caption=bulletin_caption(massif.name, bulletin.valid_to, bulletin.risk_level),
            )
            sent_something = True

        image_types = preferences.image_types()
        if image_types:
            for image in await self.images.get(massif, image_types, bulletin.valid_to):
                try:
                    media_id = await self._media_id(massif.code, image)
                    await self.provider.send_image(to, media_id, caption=image.caption)
                    sent_something = True
                except Exception as e:
                    logger.warning(
                        "Image send failed",
                        extra_data={
                            "recipient": mask_recipient(to),
                            "massif": massif.code,
                            "content_type": image.content_type.value,
                            "error": str(e),
                        }
                    )

        if not sent_something:
            await self.provider.send_text(to, messages.no_content(massif.name))

    async def send(self, item: DeliveryItem) -> None:
        await self.send_content(item.recipient, item.massif, item.bulletin, item.preferences)

    async def send_follow_up(self, recipient: str, massifs: Sequence[Massif]) -> None:
        if len(massifs) == 1:
            massif = massifs[0]
            await self.provider.send_text(
                recipient,
                messages.bulletin_update(massif.name),
                buttons=[ReplyButton(id=f"unsub:{massif.code}", title="Unsubscribe")],
            )
            return

        await self.provider.send_text(
            recipient,
            messages.bulletin_updates([m.name for m in massifs]),
            buttons=[ReplyButton(id="manage:subs", title="Manage subscriptions")],
        )
