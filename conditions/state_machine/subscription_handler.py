"""
Subscription Handler - subscribe, choose content, manage and unsubscribe
"""
from typing import Optional

from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.domain.models import ContentPreferences, ContentType, Massif, Platform
from conditions.domain.services.whatsapp.base_provider import ListRow, ListSection, ReplyButton
from conditions.state_machine import menus, messages
from conditions.state_machine.context import ConversationContext
from conditions.state_machine.states import ConversationAction, ConversationStep

logger = get_logger(__name__)


class SubscriptionHandler:
    def __init__(self, context: ConversationContext):
        self.context = context
        self.provider = context.provider
        self.sessions = context.sessions
        self.subscriptions = context.subscriptions

    async def show_massifs(self, to: str, mountain: str, page: int = 0) -> None:
        """Massif list annotated with the sender's subscription status"""
        massifs = self.context.directory.by_mountain(mountain)
        statuses = await self.subscriptions.get_statuses(to, [m.code for m in massifs], Platform.WHATSAPP)
        self.sessions.set(
            to,
            step=ConversationStep.SELECT_MASSIF,
            action=ConversationAction.SUBSCRIBE,
            mountain=mountain,
        )
        await menus.send_massifs(
            self.provider,
            to,
            mountain,
            massifs,
            ConversationAction.SUBSCRIBE,
            page,
            descriptions={
                code: "Subscribed" if subscribed else "Not subscribed"
                for code, subscribed in statuses.items()
            },
        )

    async def show_massif_actions(self, to: str, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return

        self.sessions.set(
            to,
            step=ConversationStep.SELECT_CONTENT,
            action=ConversationAction.SUBSCRIBE,
            massif_code=code,
        )
        if await self.subscriptions.is_subscribed(to, code, Platform.WHATSAPP):
            await self.provider.send_text(
                to,
                messages.subscribed_actions(massif.name),
                buttons=[
                    ReplyButton(id=f"sub:manage:{code}", title="Manage"),
                    ReplyButton(id=f"sub:unsub:{code}", title="Unsubscribe"),
                    ReplyButton(id="sub:cancel", title="Cancel"),
                ],
            )
            return

        await self.provider.send_text(
            to,
            messages.subscribe_prompt(massif.name),
            buttons=[
                ReplyButton(id=f"sub:all:{code}", title="Subscribe (all)"),
                ReplyButton(id=f"sub:choose:{code}", title="Choose content"),
                ReplyButton(id="sub:cancel", title="Cancel"),
            ],
        )

    async def _send_content_toggles(self, to: str, massif: Massif, preferences: ContentPreferences) -> None:
        self.sessions.set(
            to,
            step=ConversationStep.SELECT_SUB_CONTENT,
            action=ConversationAction.SUBSCRIBE,
            massif_code=massif.code,
            content_types=preferences,
        )
        rows = [
            ListRow(
                id=f"sub:toggle:{massif.code}:{ct.value}",
                title=f"{'☑' if preferences.enabled(ct) else '☐'} {ct.label}",
            )
            for ct in ContentType
        ]
        rows.append(ListRow(
            id=f"sub:done:{massif.code}",
            title="Done - Save",
            description="Save your content preferences",
        ))
        await self.provider.send_list(
            to,
            messages.select_content_types(massif.name),
            button_title="Select",
            sections=[ListSection(title="Content types", rows=rows)],
            header=massif.name,
        )

    def _pending_preferences(self, to: str, code: int) -> Optional[ContentPreferences]:
        state = self.sessions.get(to)
        if state.massif_code == code and state.content_types is not None:
            return state.content_types
        return None

    async def choose_content(self, to: str, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        current = await self.subscriptions.get_preferences(to, code, Platform.WHATSAPP)
        await self._send_content_toggles(to, massif, current or ContentPreferences())

    async def manage(self, to: str, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        current = await self.subscriptions.get_preferences(to, code, Platform.WHATSAPP)
        if current is None:
            self.sessions.clear(to)
            await self.provider.send_text(to, messages.SUBSCRIPTION_NOT_FOUND)
            return
        await self._send_content_toggles(to, massif, current)

    async def toggle(self, to: str, code: int, content_type: ContentType) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        preferences = self._pending_preferences(to, code)
        if preferences is None:
            preferences = (
                await self.subscriptions.get_preferences(to, code, Platform.WHATSAPP)
                or ContentPreferences()
            )
        await self._send_content_toggles(to, massif, preferences.toggled(content_type))

    async def save(self, to: str, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        preferences = self._pending_preferences(to, code) or ContentPreferences()
        if not preferences.any_enabled():
            await self.provider.send_text(to, messages.SELECT_AT_LEAST_ONE)
            await self._send_content_toggles(to, massif, preferences)
            return

        await self._subscribe(to, massif, preferences, messages.subscribed_with_preferences(massif.name))

    async def subscribe_all(self, to: str, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        await self._subscribe(to, massif, ContentPreferences.everything(), messages.subscribed(massif.name))

    async def _subscribe(
        self,
        to: str,
        massif: Massif,
        preferences: ContentPreferences,
        confirmation: str,
    ) -> None:
        self.sessions.clear(to)
        await self.subscriptions.subscribe(to, massif.code, Platform.WHATSAPP, preferences)
        await self.provider.send_text(to, confirmation)

        # the current bulletin right away; the subscription stands even if this fails
        try:
            await self.context.send_bulletin(to, massif, preferences)
        except Exception as e:
            logger.warning(
                "Welcome bulletin failed",
                extra_data={"recipient": mask_recipient(to), "massif": massif.code, "error": str(e)}
            )

        await self.context.notifier.notify(
            f"WhatsApp {to} subscribed to {massif.name}",
            {"massif": massif.code, "content": ", ".join(
                ct.value for ct in ContentType if preferences.enabled(ct)
            )},
        )

    async def unsubscribe(self, to: str, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        self.sessions.clear(to)
        if not await self.subscriptions.unsubscribe(to, code, Platform.WHATSAPP):
            await self.provider.send_text(to, messages.SUBSCRIPTION_NOT_FOUND)
            return

        await self.provider.send_text(to, messages.unsubscribed(massif.name))
        await self.context.notifier.notify(
            f"WhatsApp {to} unsubscribed from {massif.name}",
            {"massif": massif.code},
        )

    async def cancel(self, to: str) -> None:
        self.sessions.clear(to)
        await menus.send_welcome(self.provider, to)

    async def decline(self, to: str) -> None:
        self.sessions.clear(to)
        await self.provider.send_text(to, messages.NO_THANKS)

    async def list_subscriptions(self, to: str) -> None:
        self.sessions.clear(to)
        codes = await self.subscriptions.list_for_recipient(to, Platform.WHATSAPP)
        massifs = [m for m in (self.context.directory.by_code(c) for c in codes) if m is not None]
        if not massifs:
            await self.provider.send_text(to, messages.NO_SUBSCRIPTIONS)
            return

        await self.provider.send_list(
            to,
            messages.your_subscriptions([m.name for m in massifs]),
            button_title="Manage",
            sections=[ListSection(
                title="Subscriptions",
                rows=[
                    ListRow(id=f"sub:manage:{m.code}", title=m.name, description=m.mountain)
                    for m in massifs[:10]
                ],
            )],
        )
