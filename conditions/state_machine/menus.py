"""
Shared WhatsApp screens: welcome buttons and paginated mountain / massif lists
"""
from typing import Mapping, Optional, Sequence, TypeVar

from conditions.domain.models import Massif
from conditions.domain.services.whatsapp.base_provider import (
    BaseWhatsAppProvider,
    ListRow,
    ListSection,
    ReplyButton,
)
from conditions.state_machine import callbacks, messages
from conditions.state_machine.states import ConversationAction

T = TypeVar("T")

# Nine entries leave room for the "More" row inside the ten-row limit
PAGE_SIZE = 9

WELCOME_BUTTONS = [
    ReplyButton(id="menu:download", title="Download"),
    ReplyButton(id="menu:subscribe", title="Subscribe"),
    ReplyButton(id="menu:help", title="Help"),
]

_MOUNTAIN_PROMPTS = {
    ConversationAction.BROWSE: ("", "Mountain Ranges"),
    ConversationAction.DOWNLOAD: (" to download conditions from", "Mountain Ranges"),
    ConversationAction.SUBSCRIBE: (" to manage subscriptions", "Subscriptions"),
}


def paginate(items: Sequence[T], page: int) -> tuple[list[T], bool]:
    """One page of items and whether another page follows"""
    start = page * PAGE_SIZE
    return list(items[start:start + PAGE_SIZE]), len(items) > start + PAGE_SIZE


async def send_welcome(provider: BaseWhatsAppProvider, to: str) -> None:
    await provider.send_text(to, messages.WELCOME, buttons=WELCOME_BUTTONS)


async def send_mountains(
    provider: BaseWhatsAppProvider,
    to: str,
    mountains: Sequence[str],
    flow: ConversationAction,
    page: int = 0,
) -> None:
    purpose, header = _MOUNTAIN_PROMPTS[flow]
    shown, has_more = paginate(mountains, page)
    rows = [ListRow(id=callbacks.mountain_token(flow, m), title=m) for m in shown]
    if has_more:
        rows.append(ListRow(id=callbacks.mountain_page_token(flow, page + 1), title=messages.MORE))

    await provider.send_list(
        to,
        messages.choose_mountain(page, purpose),
        button_title="Select range",
        sections=[ListSection(title="Mountain Ranges", rows=rows)],
        header=header,
    )


async def send_massifs(
    provider: BaseWhatsAppProvider,
    to: str,
    mountain: str,
    massifs: Sequence[Massif],
    flow: ConversationAction,
    page: int = 0,
    descriptions: Optional[Mapping[int, str]] = None,
) -> None:
    if not massifs:
        await provider.send_text(to, messages.no_massifs_in_mountain(mountain))
        return

    descriptions = descriptions or {}
    shown, has_more = paginate(massifs, page)
    rows = [
        ListRow(
            id=callbacks.massif_token(flow, m.code),
            title=m.name,
            description=descriptions.get(m.code),
        )
        for m in shown
    ]
    if has_more:
        rows.append(ListRow(
            id=callbacks.massif_page_token(flow, mountain, page + 1),
            title=messages.MORE,
        ))

    await provider.send_list(
        to,
        messages.choose_massif(mountain, page),
        button_title="Select massif",
        sections=[ListSection(title="Massifs", rows=rows)],
        header=mountain,
    )


async def send_massif_choices(
    provider: BaseWhatsAppProvider,
    to: str,
    query: str,
    massifs: Sequence[Massif],
) -> None:
    """Several name matches: buttons for up to three, a list beyond"""
    text = messages.multiple_matches(len(massifs), query)
    if len(massifs) <= 3:
        await provider.send_text(
            to,
            text,
            buttons=[
                ReplyButton(id=callbacks.massif_token(ConversationAction.BROWSE, m.code), title=m.name)
                for m in massifs
            ],
        )
        return

    rows = [
        ListRow(
            id=callbacks.massif_token(ConversationAction.BROWSE, m.code),
            title=m.name,
            description=m.mountain,
        )
        for m in massifs[:10]
    ]
    await provider.send_list(
        to,
        text,
        button_title="Select massif",
        sections=[ListSection(title="Matches", rows=rows)],
    )
