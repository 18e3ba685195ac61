"""
PyWa Provider - BaseWhatsAppProvider over the Meta Cloud API.

Uses pywa_async. Every call goes through retry with exponential backoff and
the shared WhatsApp circuit breaker; client errors fail at once.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from conditions.core.circuit_breaker import CircuitBreaker, is_client_error, response_status
from conditions.core.config import settings
from conditions.core.exceptions import WhatsAppError
from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient, truncate
from conditions.domain.services.whatsapp.base_provider import (
    MAX_BUTTON_TITLE,
    MAX_REPLY_BUTTONS,
    MAX_ROW_DESCRIPTION,
    MAX_ROW_TITLE,
    BaseWhatsAppProvider,
    ListSection,
    ReplyButton,
)

logger = get_logger(__name__)

T = TypeVar("T")


class PyWaProvider(BaseWhatsAppProvider):
    """WhatsApp Cloud API provider backed by pywa"""

    def __init__(self, circuit_breaker: CircuitBreaker) -> None:
        self._circuit_breaker = circuit_breaker
        self._max_retries = settings.WHATSAPP_MAX_RETRIES

        # lazy: keeps pywa out of import paths that never send
        self._client = None

    def _get_client(self):
        if self._client is None:
            from pywa_async import WhatsApp as PyWaClient

            self._client = PyWaClient(
                phone_id=settings.WHATSAPP_CLOUD_API_PHONE_ID,
                token=settings.WHATSAPP_CLOUD_API_TOKEN,
            )
        return self._client

    @property
    def provider_name(self) -> str:
        return "pywa"

    @staticmethod
    def normalize_recipient(to: str) -> str:
        """Cloud API wants 33612345678, not +33612345678"""
        return to.strip().lstrip("+")

    async def _execute_with_retry(
        self,
        operation: str,
        phone_masked: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run func with exponential backoff; WhatsAppError once retries are exhausted.

        A client error (blocked or invalid recipient, bad parameter) is not
        retried and keeps its HTTP status in the details.
        """
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                return await func()
            except Exception as exc:
                if is_client_error(exc):
                    raise WhatsAppError(
                        message=f"Cloud API {operation} was refused",
                        details={
                            "phone": phone_masked,
                            "error": str(exc),
                            "status_code": response_status(exc),
                        },
                    ) from exc
                last_error = exc
                if attempt < self._max_retries - 1:
                    backoff = 2 ** attempt
                    logger.warning(
                        f"{operation} failed, retrying",
                        extra_data={
                            "phone": phone_masked,
                            "error": str(exc),
                            "attempt": attempt + 1,
                            "max_retries": self._max_retries,
                            "backoff_seconds": backoff,
                        },
                    )
                    await asyncio.sleep(backoff)

        raise WhatsAppError(
            message=f"Cloud API {operation} failed after {self._max_retries} attempts",
            details={
                "phone": phone_masked,
                "error": str(last_error),
                "attempts": self._max_retries,
            },
        )

    async def _call(self, operation: str, to: str, func: Callable[[], Awaitable[T]]) -> T:
        phone_masked = mask_recipient(to)

        async def _with_retry() -> T:
            return await self._execute_with_retry(operation, phone_masked, func)

        return await self._circuit_breaker.execute(_with_retry)

    @staticmethod
    def _build_buttons(buttons: Optional[Sequence[ReplyButton]]):
        if not buttons:
            return None
        if len(buttons) > MAX_REPLY_BUTTONS:
            raise WhatsAppError(
                message=f"At most {MAX_REPLY_BUTTONS} reply buttons are supported",
                details={"buttons": len(buttons)},
            )

        from pywa import types as pywa_types

        return [
            pywa_types.Button(title=truncate(b.title, MAX_BUTTON_TITLE), callback_data=b.id[:256])
            for b in buttons
        ]

    @staticmethod
    def _build_section_list(button_title: str, sections: Sequence[ListSection]):
        from pywa import types as pywa_types

        return pywa_types.SectionList(
            button_title=truncate(button_title, MAX_BUTTON_TITLE),
            sections=[
                pywa_types.Section(
                    title=truncate(section.title, MAX_ROW_TITLE),
                    rows=[
                        pywa_types.SectionRow(
                            title=truncate(row.title, MAX_ROW_TITLE),
                            callback_data=row.id[:200],
                            description=(
                                truncate(row.description, MAX_ROW_DESCRIPTION)
                                if row.description else None
                            ),
                        )
                        for row in section.rows
                    ],
                )
                for section in sections
            ],
        )

    async def send_text(
        self,
        to: str,
        text: str,
        buttons: Optional[Sequence[ReplyButton]] = None,
    ) -> None:
        to = self.normalize_recipient(to)
        pywa_buttons = self._build_buttons(buttons)
        client = self._get_client()

        async def _send() -> None:
            await client.send_message(to=to, text=text, buttons=pywa_buttons)

        await self._call("send_text", to, _send)

    async def send_document(
        self,
        to: str,
        document: str,
        filename: Optional[str] = None,
        caption: Optional[str] = None,
    ) -> None:
        if not document:
            raise WhatsAppError(
                message="No document URL to send",
                details={"phone": mask_recipient(to)},
            )
        to = self.normalize_recipient(to)
        client = self._get_client()

        async def _send() -> None:
            await client.send_document(to=to, document=document, filename=filename, caption=caption)

        await self._call("send_document", to, _send)

    async def send_image(
        self,
        to: str,
        image: str,
        caption: Optional[str] = None,
    ) -> None:
        to = self.normalize_recipient(to)
        client = self._get_client()

        async def _send() -> None:
            await client.send_image(to=to, image=image, caption=caption)

        await self._call("send_image", to, _send)

    async def send_list(
        self,
        to: str,
        text: str,
        button_title: str,
        sections: Sequence[ListSection],
        header: Optional[str] = None,
    ) -> None:
        to = self.normalize_recipient(to)
        section_list = self._build_section_list(button_title, sections)
        client = self._get_client()

        async def _send() -> None:
            await client.send_message(to=to, text=text, header=header, buttons=section_list)

        await self._call("send_list", to, _send)

    async def send_template(
        self,
        to: str,
        name: str,
        language: str = "en_US",
        body_params: Sequence[str] = (),
    ) -> None:
        from pywa.types import Template

        to = self.normalize_recipient(to)
        template = Template(
            name=name,
            language=Template.Language(language),
            body=[Template.TextValue(value=value) for value in body_params],
        )
        client = self._get_client()

        async def _send() -> None:
            await client.send_template(to=to, template=template)

        await self._call("send_template", to, _send)

    async def upload_media(self, data: bytes, mime_type: str, filename: str) -> str:
        client = self._get_client()

        async def _upload() -> str:
            result = await client.upload_media(media=data, mime_type=mime_type, filename=filename)
            # older pywa returns the id, newer returns a media object
            return str(getattr(result, "id", result))

        return await self._call("upload_media", filename, _upload)

    async def react(self, to: str, message_id: str, emoji: str) -> None:
        to = self.normalize_recipient(to)
        client = self._get_client()

        async def _send() -> None:
            await client.send_reaction(to=to, emoji=emoji, message_id=message_id)

        await self._call("react", to, _send)

    async def remove_reaction(self, to: str, message_id: str) -> None:
        to = self.normalize_recipient(to)
        client = self._get_client()

        async def _send() -> None:
            await client.remove_reaction(to=to, message_id=message_id)

        await self._call("remove_reaction", to, _send)

    async def mark_as_read(self, message_id: str) -> None:
        client = self._get_client()

        async def _send() -> None:
            await client.mark_message_as_read(message_id=message_id)

        await self._call("mark_as_read", message_id, _send)
