"""
Base WhatsApp provider interface.

The chat flows and the delivery channel depend only on this interface; the
Cloud API implementation lives in pywa_provider.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

# Cloud API limits
MAX_REPLY_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_ROW_TITLE = 24
MAX_ROW_DESCRIPTION = 72
MAX_LIST_ROWS = 10


@dataclass(frozen=True)
class ReplyButton:
    id: str
    title: str


@dataclass(frozen=True)
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class ListSection:
    title: str
    rows: list[ListRow] = field(default_factory=list)


class BaseWhatsAppProvider(ABC):
    """
    Uniform outbound WhatsApp API.

    Implementations own retries, the circuit breaker and recipient
    normalization. Every method raises WhatsAppError on failure.
    """

    @abstractmethod
    async def send_text(
        self,
        to: str,
        text: str,
        buttons: Optional[Sequence[ReplyButton]] = None,
    ) -> None:
        """Send text, optionally with up to three reply buttons."""

    @abstractmethod
    async def send_document(
        self,
        to: str,
        document: str,
        filename: Optional[str] = None,
        caption: Optional[str] = None,
    ) -> None:
        """Send a document by public URL."""

    @abstractmethod
    async def send_image(
        self,
        to: str,
        image: str,
        caption: Optional[str] = None,
    ) -> None:
        """Send an image by public URL or uploaded media id."""

    @abstractmethod
    async def send_list(
        self,
        to: str,
        text: str,
        button_title: str,
        sections: Sequence[ListSection],
        header: Optional[str] = None,
    ) -> None:
        """Send an interactive list message."""

    @abstractmethod
    async def send_template(
        self,
        to: str,
        name: str,
        language: str = "en_US",
        body_params: Sequence[str] = (),
    ) -> None:
        """Send an approved template (reaches users outside the 24h window)."""

    @abstractmethod
    async def upload_media(self, data: bytes, mime_type: str, filename: str) -> str:
        """Upload media once and return its media id."""

    @abstractmethod
    async def react(self, to: str, message_id: str, emoji: str) -> None:
        """React to a message."""

    @abstractmethod
    async def remove_reaction(self, to: str, message_id: str) -> None:
        """Remove our reaction from a message."""

    @abstractmethod
    async def mark_as_read(self, message_id: str) -> None:
        """Mark an inbound message as read."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider name for logs."""
