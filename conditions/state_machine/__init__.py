"""
State Machine Module for the WhatsApp conversation
"""
from conditions.state_machine.states import ConversationAction, ConversationStep
from conditions.state_machine.session_store import ConversationSessionStore, ConversationState

__all__ = [
    "ConversationAction",
    "ConversationStep",
    "ConversationSessionStore",
    "ConversationState",
]
