"""
Tests for the WhatsApp and Telegram delivery channels

Covers:
- document and image sends according to the content selection
- media uploaded once per image per run
- the fallback text when nothing could be sent
- the WhatsApp follow-up prompt
- Telegram Bot API requests
"""
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conditions.core.circuit_breaker import get_telegram_circuit_breaker
from conditions.core.exceptions import TelegramError, WhatsAppError
from conditions.domain.models import ContentPreferences, ContentType, Subscriber
from conditions.domain.services.delivery_dispatcher import DeliveryDispatcher, DeliveryItem
from conditions.domain.services.delivery_planner import Destination
from conditions.domain.services.image_service import BulletinImage
from conditions.domain.services.telegram_channel import TelegramChannel
from conditions.domain.services.whatsapp_channel import WhatsAppChannel
from tests.factories import MONT_BLANC, VANOISE, make_bulletin


def _image(content_type: ContentType) -> BulletinImage:
    return BulletinImage(
        content_type=content_type,
        data=b"jpeg",
        caption=f"{content_type.label} - Vanoise",
        filename=f"{content_type.image_endpoint}-18.jpg",
    )


def _images(*content_types: ContentType) -> AsyncMock:
    cache = AsyncMock()
    cache.get.return_value = [_image(ct) for ct in content_types]
    return cache


def _item(preferences: ContentPreferences, recipient: str = "33611111111") -> DeliveryItem:
    return DeliveryItem(recipient=recipient, massif=VANOISE, bulletin=make_bulletin(), preferences=preferences)


class TestWhatsAppChannel:
    @pytest.mark.unit
    async def test_bulletin_only(self, mock_provider) -> None:
        channel = WhatsAppChannel(mock_provider, _images())

        await channel.send(_item(ContentPreferences()))

        mock_provider.send_document.assert_awaited_once_with(
            "33611111111",
            "https://test-bucket.s3.amazonaws.com/massif-18.pdf",
            filename="massif-18_2024-01-02T0600.pdf",
            caption="Vanoise • 3rd Jan • 3 / 5",
        )
        mock_provider.send_image.assert_not_called()

    @pytest.mark.unit
    async def test_images_follow_the_document(self, mock_provider) -> None:
        images = _images(ContentType.SNOW_REPORT, ContentType.WEATHER)
        channel = WhatsAppChannel(mock_provider, images)

        await channel.send(_item(ContentPreferences.everything()))

        assert mock_provider.send_document.await_count == 1
        assert mock_provider.send_image.await_count == 2
        assert mock_provider.send_image.call_args.kwargs["caption"] == "Weather - Vanoise"
        requested = images.get.call_args.args[1]
        assert requested == ContentType.image_types()

    @pytest.mark.unit
    async def test_media_uploaded_once_per_run(self, mock_provider) -> None:
        channel = WhatsAppChannel(mock_provider, _images(ContentType.FRESH_SNOW))
        preferences = ContentPreferences.only(ContentType.FRESH_SNOW)

        await channel.send(_item(preferences, "33611111111"))
        await channel.send(_item(preferences, "33622222222"))

        mock_provider.upload_media.assert_awaited_once_with(b"jpeg", "image/jpeg", "graphe-neige-fraiche-18.jpg")
        assert mock_provider.send_image.await_count == 2
        assert mock_provider.send_image.call_args.args == ("33622222222", "media-id-1")

    @pytest.mark.unit
    async def test_failed_upload_retried_for_next_recipient(self, mock_provider) -> None:
        mock_provider.upload_media.side_effect = [WhatsAppError("upload failed"), "media-id-2"]
        channel = WhatsAppChannel(mock_provider, _images(ContentType.WEATHER))
        preferences = ContentPreferences(bulletin=True, weather=True)

        await channel.send(_item(preferences, "33611111111"))
        await channel.send(_item(preferences, "33622222222"))

        assert mock_provider.upload_media.await_count == 2
        mock_provider.send_image.assert_awaited_once_with("33622222222", "media-id-2", caption="Weather - Vanoise")

    @pytest.mark.unit
    async def test_document_failure_raises(self, mock_provider) -> None:
        mock_provider.send_document.side_effect = WhatsAppError("send failed")
        channel = WhatsAppChannel(mock_provider, _images())

        with pytest.raises(WhatsAppError):
            await channel.send(_item(ContentPreferences()))

    @pytest.mark.unit
    async def test_nothing_available_sends_notice(self, mock_provider) -> None:
        channel = WhatsAppChannel(mock_provider, _images())

        await channel.send(_item(ContentPreferences.only(ContentType.ROSE_PENTES)))

        text = mock_provider.send_text.call_args.args[1]
        assert text.startswith("No content available for *Vanoise*")

    @pytest.mark.unit
    async def test_follow_up_single_massif(self, mock_provider) -> None:
        channel = WhatsAppChannel(mock_provider, _images())

        await channel.send_follow_up("33611111111", [VANOISE])

        buttons = mock_provider.send_text.call_args.kwargs["buttons"]
        assert mock_provider.send_text.call_args.args[1] == "New *Vanoise* bulletin."
        assert [b.id for b in buttons] == ["unsub:18"]

    @pytest.mark.unit
    async def test_follow_up_several_massifs(self, mock_provider) -> None:
        channel = WhatsAppChannel(mock_provider, _images())

        await channel.send_follow_up("33611111111", [VANOISE, MONT_BLANC])

        assert mock_provider.send_text.call_args.args[1] == "New bulletins for *Vanoise*, *Mont-Blanc*."
        assert [b.id for b in mock_provider.send_text.call_args.kwargs["buttons"]] == ["manage:subs"]


class _RecordingTransport(httpx.AsyncBaseTransport):
    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code == 200, "description": "Bad Request"})


def _patch_transport(transport: httpx.AsyncBaseTransport):
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_client(*args, transport=transport, **kwargs)

    return patch("conditions.domain.services.telegram_channel.httpx.AsyncClient", side_effect=factory)


class TestTelegramChannel:
    @pytest.mark.unit
    async def test_document_with_caption(self) -> None:
        transport = _RecordingTransport()
        channel = TelegramChannel(_images(), bot_token="123:abc")

        with _patch_transport(transport):
            await channel.send(_item(ContentPreferences(), recipient="4242"))

        request = transport.requests[0]
        assert request.url.path == "/bot123:abc/sendDocument"
        body = json.loads(request.read())
        assert body["chat_id"] == "4242"
        assert body["caption"] == "Vanoise • 3rd Jan • 3 / 5"
        assert "reply_markup" not in body

    @pytest.mark.unit
    async def test_images_as_media_group(self) -> None:
        transport = _RecordingTransport()
        channel = TelegramChannel(_images(ContentType.SNOW_REPORT, ContentType.WEATHER), bot_token="123:abc")

        with _patch_transport(transport):
            await channel.send(_item(ContentPreferences(bulletin=False, snow_report=True, weather=True), "4242"))

        assert [r.url.path for r in transport.requests] == ["/bot123:abc/sendMediaGroup"]
        body = transport.requests[0].read()
        assert b'attach://photo0' in body
        assert b'attach://photo1' in body

    @pytest.mark.unit
    async def test_nothing_available_sends_plain_notice(self) -> None:
        transport = _RecordingTransport()
        channel = TelegramChannel(_images(), bot_token="123:abc")

        with _patch_transport(transport):
            await channel.send(_item(ContentPreferences.only(ContentType.WEATHER), "4242"))

        body = json.loads(transport.requests[0].read())
        assert transport.requests[0].url.path == "/bot123:abc/sendMessage"
        assert body["text"].startswith("No content available for Vanoise")

    @pytest.mark.unit
    async def test_api_error_raises(self) -> None:
        channel = TelegramChannel(_images(), bot_token="123:abc")

        with _patch_transport(_RecordingTransport(status_code=400)):
            with pytest.raises(TelegramError):
                await channel.send(_item(ContentPreferences(), "4242"))

    @pytest.mark.unit
    async def test_no_follow_up(self) -> None:
        transport = _RecordingTransport()
        channel = TelegramChannel(_images(), bot_token="123:abc")

        with _patch_transport(transport):
            await channel.send_follow_up("4242", [VANOISE])

        assert transport.requests == []


class _BlockedChatsTransport(httpx.AsyncBaseTransport):
    """403 "bot was blocked by the user" for the listed chats, 200 for the rest"""

    def __init__(self, blocked: set[str]):
        self.blocked = blocked
        self.delivered: list[str] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        chat_id = json.loads(request.read())["chat_id"]
        if chat_id in self.blocked:
            return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was blocked by the user"})
        self.delivered.append(chat_id)
        return httpx.Response(200, json={"ok": True})


class TestTelegramBlockedChats:
    """Chats that blocked the bot must not hold up the rest of the run"""

    @pytest.mark.integration
    async def test_healthy_chats_delivered_alongside_blocked_ones(self, mock_notifier) -> None:
        blocked = {f"10{i}" for i in range(5)}
        healthy = [f"20{i}" for i in range(5)]
        transport = _BlockedChatsTransport(blocked)
        channel = TelegramChannel(_images(), bot_token="123:abc", batch_size=5)
        deliveries = AsyncMock()
        deliveries.record.return_value = True
        dispatcher = DeliveryDispatcher(channel, deliveries, mock_notifier, sleep=AsyncMock())
        destination = Destination(
            massif=VANOISE,
            bulletin=make_bulletin(),
            subscribers=tuple(Subscriber(chat) for chat in [*sorted(blocked), *healthy]),
        )

        with _patch_transport(transport):
            report = await dispatcher.dispatch([destination])

        assert sorted(transport.delivered) == healthy
        assert sorted(i.recipient for i in report.sent) == healthy
        assert sorted(i.recipient for i in report.send_failed) == sorted(blocked)
        assert deliveries.record.await_count == 5
        assert get_telegram_circuit_breaker().is_closed
