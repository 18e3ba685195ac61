"""
State Definitions for the WhatsApp conversation
"""
from enum import Enum


class ConversationStep(str, Enum):
    """Where the user is in a browse / download / subscribe flow"""

    IDLE = "idle"
    SELECT_MOUNTAIN = "select_mountain"
    SELECT_MASSIF = "select_massif"
    SELECT_CONTENT = "select_content"  # download content, or subscribe actions
    SELECT_SUB_CONTENT = "select_sub_content"  # subscription content toggles


class ConversationAction(str, Enum):
    BROWSE = "browse"
    DOWNLOAD = "download"
    SUBSCRIBE = "subscribe"
