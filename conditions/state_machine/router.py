"""
Conversation Router - entry point for WhatsApp Cloud API webhook payloads

Each inbound message is marked as read, decoded into text, location or a
callback command, and routed to the browse/download or subscription flow.
A failure while handling one message is reported to the operator and the
user gets an apology plus the welcome menu; it never reaches the webhook.
"""
import re
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.db.repositories import (
    BulletinRepository,
    DeliveryRepository,
    GeocodeCacheRepository,
    SubscriptionRepository,
)
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.services.bulletin_fetcher import BulletinFetcher
from conditions.domain.services.bulletin_service import BulletinService
from conditions.domain.services.geocoding_service import GeocodingService
from conditions.domain.services.image_service import ImageCache, ImageService
from conditions.domain.services.meteofrance_client import MeteoFranceClient
from conditions.domain.services.notification_service import AdminNotifier, get_admin_notifier
from conditions.domain.services.object_storage import ObjectStorage
from conditions.domain.services.whatsapp.base_provider import BaseWhatsAppProvider
from conditions.domain.services.whatsapp.provider_factory import get_whatsapp_provider
from conditions.domain.services.whatsapp_channel import WhatsAppChannel
from conditions.state_machine import callbacks, menus, messages
from conditions.state_machine.bulletin_handler import BulletinHandler
from conditions.state_machine.context import ConversationContext
from conditions.state_machine.session_store import ConversationSessionStore
from conditions.state_machine.states import ConversationAction
from conditions.state_machine.subscription_handler import SubscriptionHandler

logger = get_logger(__name__)

GREETING = re.compile(
    r"^\s*(hi|hello|hey|bonjour|salut|coucou|hola|yo)\b[\s!.,?;:]*",
    re.IGNORECASE,
)


def strip_greeting(text: str) -> tuple[bool, str]:
    """(was a greeting, remaining text)"""
    match = GREETING.match(text)
    if match is None:
        return False, text.strip()
    return True, text[match.end():].strip()


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    message_id: str
    kind: str  # text, location, callback or the raw Cloud API type
    text: Optional[str] = None
    callback: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


def parse_message(message: dict[str, Any]) -> Optional[InboundMessage]:
    sender = message.get("from")
    if not sender:
        return None
    message_id = message.get("id", "")
    msg_type = message.get("type")

    if msg_type == "text":
        return InboundMessage(sender, message_id, "text", text=message.get("text", {}).get("body", ""))

    if msg_type == "location":
        location = message.get("location", {})
        try:
            return InboundMessage(
                sender,
                message_id,
                "location",
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
            )
        except (KeyError, TypeError, ValueError):
            return InboundMessage(sender, message_id, "unsupported")

    if msg_type == "interactive":
        interactive = message.get("interactive", {})
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return InboundMessage(sender, message_id, "callback", callback=reply.get("id", ""))

    if msg_type == "button":
        # quick-reply buttons on template messages
        button = message.get("button", {})
        return InboundMessage(sender, message_id, "callback", callback=button.get("payload", ""))

    return InboundMessage(sender, message_id, msg_type or "unsupported")


def iter_messages(payload: dict[str, Any]):
    """Messages of a webhook payload; other objects and change fields are ignored"""
    if payload.get("object") != "whatsapp_business_account":
        return
    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            if change.get("field") != "messages":
                continue
            for message in change.get("value", {}).get("messages", []):
                parsed = parse_message(message)
                if parsed is not None:
                    yield parsed


class ConversationRouter:
    def __init__(self, context: ConversationContext):
        self.context = context
        self.provider = context.provider
        self.sessions = context.sessions
        self.bulletins = BulletinHandler(context)
        self.subscriptions = SubscriptionHandler(context)

    def sweep_sessions(self) -> None:
        swept = self.sessions.sweep()
        if swept:
            logger.debug("Expired conversation states swept", extra_data={"count": swept})

    async def handle_webhook(self, payload: dict[str, Any]) -> int:
        """Handle every message of a payload; returns how many were handled"""
        self.sweep_sessions()

        handled = 0
        for message in iter_messages(payload):
            await self.handle_message(message)
            handled += 1
        return handled

    async def handle_message(self, message: InboundMessage) -> None:
        sender = message.sender
        if message.message_id:
            try:
                await self.provider.mark_as_read(message.message_id)
            except Exception as e:
                logger.debug("mark_as_read failed", extra_data={"error": str(e)})

        logger.info(
            "WhatsApp message received",
            extra_data={
                "sender": mask_recipient(sender),
                "kind": message.kind,
                "step": self.sessions.get(sender).step.value,
            }
        )

        try:
            await self._route(message)
        except Exception as e:
            logger.error(
                "WhatsApp message handling failed",
                extra_data={"sender": mask_recipient(sender), "kind": message.kind, "error": str(e)},
                exc_info=True
            )
            await self.context.notifier.notify_error(e, f"WhatsApp message ({message.kind})")
            await self._apologise(sender)

    async def _apologise(self, sender: str) -> None:
        self.sessions.clear(sender)
        try:
            await self.provider.send_text(sender, messages.ERROR)
            await menus.send_welcome(self.provider, sender)
        except Exception as e:
            logger.warning(
                "Could not send error reply",
                extra_data={"sender": mask_recipient(sender), "error": str(e)}
            )

    async def _route(self, message: InboundMessage) -> None:
        sender = message.sender
        if message.kind == "text":
            await self._handle_text(sender, message.text or "")
        elif message.kind == "location":
            await self.bulletins.locate(sender, message.latitude, message.longitude)
        elif message.kind == "callback":
            await self.handle_callback(sender, callbacks.parse_callback(message.callback or ""))
        else:
            await menus.send_welcome(self.provider, sender)

    async def _handle_text(self, sender: str, text: str) -> None:
        greeted, remainder = strip_greeting(text)
        if not remainder:
            if not greeted:
                logger.debug("Empty text message", extra_data={"sender": mask_recipient(sender)})
            self.sessions.clear(sender)
            await menus.send_welcome(self.provider, sender)
            return
        await self.bulletins.search(sender, remainder)

    async def handle_callback(self, sender: str, command: callbacks.Command) -> None:
        bulletins = self.bulletins
        subscriptions = self.subscriptions

        if isinstance(command, callbacks.ShowMenu):
            if command.option == "download":
                await bulletins.show_mountains(sender, ConversationAction.DOWNLOAD)
            elif command.option == "subscribe":
                await bulletins.show_mountains(sender, ConversationAction.SUBSCRIBE)
            else:
                self.sessions.clear(sender)
                await self.provider.send_text(sender, messages.HELP)

        elif isinstance(command, callbacks.MountainPage):
            await bulletins.show_mountains(sender, command.flow, command.page)

        elif isinstance(command, (callbacks.SelectMountain, callbacks.MassifPage)):
            page = command.page if isinstance(command, callbacks.MassifPage) else 0
            if command.flow == ConversationAction.SUBSCRIBE:
                await subscriptions.show_massifs(sender, command.mountain, page)
            else:
                await bulletins.show_massifs(sender, command.flow, command.mountain, page)

        elif isinstance(command, callbacks.SelectMassif):
            if command.flow == ConversationAction.SUBSCRIBE:
                await subscriptions.show_massif_actions(sender, command.code)
            else:
                await bulletins.select_massif(sender, command.flow, command.code)

        elif isinstance(command, callbacks.DownloadContent):
            await bulletins.download_content(sender, command.content_type)

        elif isinstance(command, callbacks.SubscribePrompt):
            await subscriptions.show_massif_actions(sender, command.code)
        elif isinstance(command, callbacks.SubscribeAll):
            await subscriptions.subscribe_all(sender, command.code)
        elif isinstance(command, callbacks.ChooseContent):
            await subscriptions.choose_content(sender, command.code)
        elif isinstance(command, callbacks.ToggleContent):
            await subscriptions.toggle(sender, command.code, command.content_type)
        elif isinstance(command, callbacks.SaveContent):
            await subscriptions.save(sender, command.code)
        elif isinstance(command, callbacks.Unsubscribe):
            await subscriptions.unsubscribe(sender, command.code)
        elif isinstance(command, callbacks.ManageSubscription):
            await subscriptions.manage(sender, command.code)
        elif isinstance(command, callbacks.CancelSubscription):
            await subscriptions.cancel(sender)
        elif isinstance(command, callbacks.QuickSubscribe):
            if command.code is None:
                await subscriptions.decline(sender)
            else:
                await subscriptions.subscribe_all(sender, command.code)
        elif isinstance(command, callbacks.ListSubscriptions):
            await subscriptions.list_subscriptions(sender)

        else:
            logger.info("Unknown callback", extra_data={"token": getattr(command, "token", None)})
            self.sessions.clear(sender)
            await menus.send_welcome(self.provider, sender)


def build_conversation_router(
    db: AsyncSession,
    directory: MassifDirectory,
    sessions: ConversationSessionStore,
    provider: Optional[BaseWhatsAppProvider] = None,
    notifier: Optional[AdminNotifier] = None,
) -> ConversationRouter:
    """Wire a router for one webhook request"""
    provider = provider or get_whatsapp_provider()
    client = MeteoFranceClient()
    bulletin_repository = BulletinRepository(db)
    fetcher = BulletinFetcher(directory, client, ObjectStorage(), bulletin_repository)

    context = ConversationContext(
        provider=provider,
        directory=directory,
        sessions=sessions,
        subscriptions=SubscriptionRepository(db),
        deliveries=DeliveryRepository(db),
        bulletins=BulletinService(bulletin_repository, client, fetcher),
        geocoding=GeocodingService(directory, GeocodeCacheRepository(db)),
        notifier=notifier or get_admin_notifier(),
        channel=WhatsAppChannel(provider, ImageCache(ImageService(client))),
    )
    return ConversationRouter(context)
