"""
Conversation Session Store

Per-sender state kept in process memory with a sliding TTL. An expired entry
reads as idle even before it is physically swept; sweep() runs on every
inbound webhook.
"""
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional

from conditions.core.config import settings
from conditions.domain.models import ContentPreferences
from conditions.state_machine.states import ConversationAction, ConversationStep


@dataclass(frozen=True)
class ConversationState:
    step: ConversationStep = ConversationStep.IDLE
    action: Optional[ConversationAction] = None
    mountain: Optional[str] = None
    massif_code: Optional[int] = None
    content_types: Optional[ContentPreferences] = None
    last_activity: float = field(default=0.0, compare=False)

    @property
    def is_idle(self) -> bool:
        return self.step == ConversationStep.IDLE


class ConversationSessionStore:
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.CONVERSATION_TTL_SECONDS
        self._clock = clock
        self._states: dict[str, ConversationState] = {}

    def _is_fresh(self, state: ConversationState) -> bool:
        return self._clock() - state.last_activity < self.ttl_seconds

    def get(self, sender: str) -> ConversationState:
        state = self._states.get(sender)
        if state is not None and self._is_fresh(state):
            return state
        return ConversationState(last_activity=self._clock())

    def set(self, sender: str, **changes: Any) -> ConversationState:
        """Merge changes into the current state and restart its TTL"""
        state = replace(self.get(sender), **changes, last_activity=self._clock())
        self._states[sender] = state
        return state

    def clear(self, sender: str) -> None:
        self._states.pop(sender, None)

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed"""
        expired = [sender for sender, state in self._states.items() if not self._is_fresh(state)]
        for sender in expired:
            del self._states[sender]
        return len(expired)

    def __contains__(self, sender: str) -> bool:
        return sender in self._states

    def __len__(self) -> int:
        return len(self._states)
