"""
Bulletin Handler - search, browse and download flows
"""
from typing import Optional

from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.domain.models import ContentPreferences, ContentType, Massif, Platform
from conditions.domain.services.geocoding_service import GeocodeStatus
from conditions.domain.services.whatsapp.base_provider import ListRow, ListSection, ReplyButton
from conditions.state_machine import menus, messages
from conditions.state_machine.context import ConversationContext
from conditions.state_machine.states import ConversationAction, ConversationStep

logger = get_logger(__name__)


class BulletinHandler:
    def __init__(self, context: ConversationContext):
        self.context = context
        self.provider = context.provider
        self.directory = context.directory
        self.sessions = context.sessions

    # ==================== Lists ====================

    async def show_mountains(self, to: str, flow: ConversationAction, page: int = 0) -> None:
        self.sessions.set(to, step=ConversationStep.SELECT_MOUNTAIN, action=flow)
        await menus.send_mountains(self.provider, to, self.directory.mountains(), flow, page)

    async def show_massifs(self, to: str, flow: ConversationAction, mountain: str, page: int = 0) -> None:
        self.sessions.set(to, step=ConversationStep.SELECT_MASSIF, action=flow, mountain=mountain)
        await menus.send_massifs(self.provider, to, mountain, self.directory.by_mountain(mountain), flow, page)

    async def show_content_types(self, to: str, massif: Massif) -> None:
        self.sessions.set(
            to,
            step=ConversationStep.SELECT_CONTENT,
            action=ConversationAction.DOWNLOAD,
            massif_code=massif.code,
        )
        rows = [ListRow(id="dl:cnt:all", title="All Content", description="Bulletin + all images")]
        rows += [
            ListRow(id=f"dl:cnt:{ct.value}", title=f"{ct.emoji} {ct.label}")
            for ct in ContentType
        ]
        await self.provider.send_list(
            to,
            messages.choose_content(massif.name),
            button_title="Select content",
            sections=[ListSection(title="Content", rows=rows)],
            header=massif.name,
        )

    # ==================== Delivery ====================

    async def deliver(
        self,
        to: str,
        massif: Massif,
        preferences: Optional[ContentPreferences] = None,
        preface: Optional[str] = None,
    ) -> None:
        """Send a bulletin on request, then offer a subscription"""
        self.sessions.clear(to)
        if preface:
            await self.provider.send_text(to, preface)

        if not await self.context.send_bulletin(to, massif, preferences or ContentPreferences()):
            return
        await self.prompt_subscription(to, massif)

    async def prompt_subscription(self, to: str, massif: Massif) -> None:
        if await self.context.subscriptions.is_subscribed(to, massif.code, Platform.WHATSAPP):
            await self.provider.send_text(to, messages.already_subscribed(massif.name))
            return

        await self.provider.send_text(
            to,
            messages.subscribe_prompt(massif.name),
            buttons=[
                ReplyButton(id=f"sub_quick:{massif.code}", title="Yes, subscribe"),
                ReplyButton(id=f"sub:{massif.code}", title="Options"),
                ReplyButton(id="sub_quick:no", title="No thanks"),
            ],
        )

    async def select_massif(self, to: str, flow: ConversationAction, code: int) -> None:
        massif = await self.context.massif_or_reply(to, code)
        if massif is None:
            return
        if flow == ConversationAction.DOWNLOAD:
            await self.show_content_types(to, massif)
        else:
            await self.deliver(to, massif)

    async def download_content(self, to: str, content_type: Optional[ContentType]) -> None:
        state = self.sessions.get(to)
        if state.massif_code is None:
            # the selection expired; start the download flow again
            await self.show_mountains(to, ConversationAction.DOWNLOAD)
            return

        massif = await self.context.massif_or_reply(to, state.massif_code)
        if massif is None:
            return
        preferences = (
            ContentPreferences.everything() if content_type is None
            else ContentPreferences.only(content_type)
        )
        await self.deliver(to, massif, preferences)

    # ==================== Free text and location ====================

    async def search(self, to: str, query: str) -> None:
        """Exact or fuzzy massif name first, then geocoding"""
        matches = self.directory.search_by_name(query)
        if len(matches) == 1:
            await self.deliver(to, matches[0])
            return
        if matches:
            await menus.send_massif_choices(self.provider, to, query, matches)
            return

        result = await self.context.geocoding.resolve(query)
        logger.info(
            "Free-text search resolved",
            extra_data={
                "recipient": mask_recipient(to),
                "status": result.status.value,
                "from_cache": result.from_cache,
            }
        )
        if result.status == GeocodeStatus.FOUND:
            await self.deliver(
                to,
                result.massif,
                preface=messages.geocoded_place(result.place_name or query, result.massif.name),
            )
        elif result.status == GeocodeStatus.OUTSIDE_COVERAGE:
            await self.provider.send_text(to, messages.outside_coverage(result.place_name or query))
        else:
            await self.provider.send_text(to, messages.no_results_for(query))

    async def locate(self, to: str, lat: float, lng: float) -> None:
        massif = self.directory.find_by_location(lat, lng)
        if massif is None:
            await self.provider.send_text(to, messages.LOCATION_NOT_FOUND)
            await self.show_mountains(to, ConversationAction.BROWSE)
            return
        await self.deliver(to, massif)
