"""
Conversation Context - everything a WhatsApp handler needs for one request
"""
from dataclasses import dataclass
from typing import Optional

from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.db.repositories import DeliveryRepository, SubscriptionRepository
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.models import ContentPreferences, Massif, Platform
from conditions.domain.services.bulletin_service import BulletinService
from conditions.domain.services.geocoding_service import GeocodingService
from conditions.domain.services.notification_service import AdminNotifier
from conditions.domain.services.whatsapp.base_provider import BaseWhatsAppProvider
from conditions.domain.services.whatsapp_channel import WhatsAppChannel
from conditions.state_machine import messages
from conditions.state_machine.session_store import ConversationSessionStore

logger = get_logger(__name__)


@dataclass
class ConversationContext:
    provider: BaseWhatsAppProvider
    directory: MassifDirectory
    sessions: ConversationSessionStore
    subscriptions: SubscriptionRepository
    deliveries: DeliveryRepository
    bulletins: BulletinService
    geocoding: GeocodingService
    notifier: AdminNotifier
    channel: WhatsAppChannel

    async def massif_or_reply(self, to: str, code: int) -> Optional[Massif]:
        massif = self.directory.by_code(code)
        if massif is None:
            await self.provider.send_text(to, messages.MASSIF_NOT_FOUND)
        return massif

    async def send_bulletin(self, to: str, massif: Massif, preferences: ContentPreferences) -> bool:
        """
        Send the current bulletin and record the delivery.

        Returns False when no bulletin could be obtained (the user is told).
        """
        bulletin = await self.bulletins.get_current(massif.code)
        if bulletin is None:
            await self.provider.send_text(to, messages.no_bulletin(massif.name))
            return False

        await self.channel.send_content(to, massif, bulletin, preferences)
        try:
            await self.deliveries.record(to, massif.code, bulletin.valid_from, Platform.WHATSAPP)
        except Exception as e:
            # the user has the bulletin; only the ledger is behind
            logger.error(
                "Bulletin sent on request but not recorded",
                extra_data={
                    "recipient": mask_recipient(to),
                    "massif": massif.code,
                    "valid_from": bulletin.valid_from.isoformat(),
                    "error": str(e),
                },
                exc_info=True
            )
            await self.notifier.notify_error(e, f"Delivery record for massif {massif.code} ({mask_recipient(to)})")
            return True

        logger.info(
            "Bulletin sent on request",
            extra_data={
                "recipient": mask_recipient(to),
                "massif": massif.code,
                "valid_from": bulletin.valid_from.isoformat(),
            }
        )
        return True
