"""
Callback Tokens

Interactive replies carry `namespace:action:param` ids. They are decoded once
here into a closed set of commands; handlers never look at the raw string.
"""
from dataclasses import dataclass
from typing import Optional, Union

from conditions.domain.models import ContentType
from conditions.state_machine.states import ConversationAction

# Token namespace for each list flow
FLOW_PREFIXES: dict[ConversationAction, str] = {
    ConversationAction.BROWSE: "br",
    ConversationAction.DOWNLOAD: "dl",
    ConversationAction.SUBSCRIBE: "sub",
}
_FLOWS_BY_PREFIX = {prefix: flow for flow, prefix in FLOW_PREFIXES.items()}

MENU_OPTIONS = ("download", "subscribe", "help")


@dataclass(frozen=True)
class ShowMenu:
    option: str  # one of MENU_OPTIONS


@dataclass(frozen=True)
class SelectMountain:
    flow: ConversationAction
    mountain: str


@dataclass(frozen=True)
class MountainPage:
    flow: ConversationAction
    page: int


@dataclass(frozen=True)
class MassifPage:
    flow: ConversationAction
    mountain: str
    page: int


@dataclass(frozen=True)
class SelectMassif:
    flow: ConversationAction
    code: int


@dataclass(frozen=True)
class DownloadContent:
    """content_type None means everything"""
    content_type: Optional[ContentType]


@dataclass(frozen=True)
class SubscribePrompt:
    code: int


@dataclass(frozen=True)
class SubscribeAll:
    code: int


@dataclass(frozen=True)
class ChooseContent:
    code: int


@dataclass(frozen=True)
class ToggleContent:
    code: int
    content_type: ContentType


@dataclass(frozen=True)
class SaveContent:
    code: int


@dataclass(frozen=True)
class Unsubscribe:
    code: int


@dataclass(frozen=True)
class ManageSubscription:
    code: int


@dataclass(frozen=True)
class CancelSubscription:
    pass


@dataclass(frozen=True)
class QuickSubscribe:
    """code None is the "no thanks" answer"""
    code: Optional[int]


@dataclass(frozen=True)
class ListSubscriptions:
    pass


@dataclass(frozen=True)
class Unknown:
    token: str


Command = Union[
    ShowMenu, SelectMountain, MountainPage, MassifPage, SelectMassif, DownloadContent,
    SubscribePrompt, SubscribeAll, ChooseContent, ToggleContent, SaveContent, Unsubscribe,
    ManageSubscription, CancelSubscription, QuickSubscribe, ListSubscriptions, Unknown,
]


# Token builders, used when rendering lists and buttons

def mountain_token(flow: ConversationAction, mountain: str) -> str:
    return f"{FLOW_PREFIXES[flow]}:mtn:{mountain}"


def mountain_page_token(flow: ConversationAction, page: int) -> str:
    return f"{FLOW_PREFIXES[flow]}:mtnpage:{page}"


def massif_page_token(flow: ConversationAction, mountain: str, page: int) -> str:
    return f"{FLOW_PREFIXES[flow]}:maspage:{mountain}:{page}"


def massif_token(flow: ConversationAction, code: int) -> str:
    return f"{FLOW_PREFIXES[flow]}:mas:{code}"


def _int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def _parse_list_flow(flow: ConversationAction, action: str, rest: str) -> Optional[Command]:
    if action == "mtn" and rest:
        return SelectMountain(flow, rest)
    if action == "mtnpage":
        page = _int(rest)
        return MountainPage(flow, page) if page is not None and page >= 0 else None
    if action == "maspage":
        # mountain names may hold spaces, never the page separator at the end
        mountain, _, page_text = rest.rpartition(":")
        page = _int(page_text)
        if mountain and page is not None and page >= 0:
            return MassifPage(flow, mountain, page)
        return None
    if action == "mas":
        code = _int(rest)
        return SelectMassif(flow, code) if code is not None else None
    return None


def _parse_subscription(action: str, rest: str) -> Optional[Command]:
    if action == "cancel":
        return CancelSubscription()

    if action == "toggle":
        code_text, _, key = rest.partition(":")
        code = _int(code_text)
        content_type = ContentType.parse(key)
        if code is None or content_type is None:
            return None
        return ToggleContent(code, content_type)

    code = _int(rest)
    if code is None:
        return None
    simple = {
        "all": SubscribeAll,
        "choose": ChooseContent,
        "done": SaveContent,
        "unsub": Unsubscribe,
        "manage": ManageSubscription,
    }
    command = simple.get(action)
    return command(code) if command else None


def parse_callback(token: str) -> Command:
    """Decode a reply id; anything unrecognised becomes Unknown"""
    token = (token or "").strip()
    namespace, _, remainder = token.partition(":")
    action, _, rest = remainder.partition(":")
    command: Optional[Command] = None

    if namespace == "menu" and remainder in MENU_OPTIONS:
        command = ShowMenu(remainder)

    elif namespace == "dl" and action == "cnt":
        # an unknown key falls back to the bulletin alone
        command = DownloadContent(
            None if rest == "all" else (ContentType.parse(rest) or ContentType.BULLETIN)
        )

    elif namespace in _FLOWS_BY_PREFIX and action in ("mtn", "mtnpage", "maspage", "mas"):
        command = _parse_list_flow(_FLOWS_BY_PREFIX[namespace], action, rest)

    elif namespace == "sub":
        if not rest and _int(action) is not None:
            command = SubscribePrompt(int(action))
        else:
            command = _parse_subscription(action, rest)

    elif namespace == "sub_quick":
        if remainder == "no":
            command = QuickSubscribe(None)
        elif _int(remainder) is not None:
            command = QuickSubscribe(int(remainder))

    elif namespace == "unsub":
        code = _int(remainder)
        command = Unsubscribe(code) if code is not None else None

    elif namespace == "manage" and remainder == "subs":
        command = ListSubscriptions()

    return command or Unknown(token)
