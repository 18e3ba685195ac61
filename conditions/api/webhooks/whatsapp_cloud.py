"""
WhatsApp Cloud API Webhook

GET performs Meta's verification handshake. POST checks the payload
signature, claims every message id (redeliveries of a handled message are
dropped), answers at once and hands the claimed messages to the
ConversationRouter in a background task.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from typing import Sequence

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conditions.api.dependencies.app_state import get_massif_directory, get_session_store
from conditions.core.config import settings
from conditions.core.logging import get_logger
from conditions.core.validation import mask_recipient
from conditions.db.database import get_db, get_session_factory
from conditions.db.repositories import WebhookEventRepository
from conditions.domain.massif_directory import MassifDirectory
from conditions.state_machine.router import InboundMessage, build_conversation_router, iter_messages
from conditions.state_machine.session_store import ConversationSessionStore

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/webhook",
    summary="Cloud API Webhook Verification",
    description="Meta verification handshake: echoes hub.challenge.",
)
async def cloud_api_verify(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
) -> int:
    if (
        hub_mode == "subscribe"
        and hub_challenge
        and hub_challenge.isdigit()
        and hub_verify_token
        and settings.WHATSAPP_CLOUD_API_VERIFY_TOKEN
        and hmac.compare_digest(hub_verify_token, settings.WHATSAPP_CLOUD_API_VERIFY_TOKEN)
    ):
        logger.info("Cloud API webhook verified successfully")
        return int(hub_challenge)
    logger.warning(
        "Cloud API webhook verification failed",
        extra_data={"hub_mode": hub_mode},
    )
    raise HTTPException(status_code=403, detail="Verification failed")


def verify_signature(body: bytes, signature_header: str) -> bool:
    """HMAC-SHA256 of the raw body with the app secret"""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(
        settings.WHATSAPP_CLOUD_API_APP_SECRET.encode(),
        body,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(signature_header[7:], expected)


async def handle_inbound_messages(
    inbound: Sequence[InboundMessage],
    session_factory: async_sessionmaker,
    directory: MassifDirectory,
    sessions: ConversationSessionStore,
) -> None:
    """Route each claimed message, then mark it completed"""
    async with session_factory() as db:
        conversation = build_conversation_router(db, directory, sessions)
        events = WebhookEventRepository(db)
        conversation.sweep_sessions()

        for message in inbound:
            try:
                await conversation.handle_message(message)
                await events.mark_completed(message.message_id)
            except Exception as e:
                # left in processing: retryable once stale
                logger.error(
                    "Cloud API message processing failed",
                    extra_data={
                        "message_id": message.message_id,
                        "sender": mask_recipient(message.sender),
                        "error": str(e),
                    },
                    exc_info=True
                )


@router.post(
    "/webhook",
    summary="Cloud API Webhook",
    responses={
        200: {"description": "Payload accepted"},
        403: {"description": "Invalid signature"},
    },
)
async def cloud_api_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    directory: MassifDirectory = Depends(get_massif_directory),
    sessions: ConversationSessionStore = Depends(get_session_store),
) -> dict:
    body = await request.body()
    signature = request.headers.get("X-Hub-Signature-256", "")

    if not settings.WHATSAPP_CLOUD_API_APP_SECRET:
        logger.error("Cloud API webhook refused: WHATSAPP_CLOUD_API_APP_SECRET is not configured")
        raise HTTPException(status_code=403, detail="Signature cannot be verified")

    if not verify_signature(body, signature):
        logger.warning("Cloud API webhook: invalid signature")
        raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    events = WebhookEventRepository(db)
    accepted: list[InboundMessage] = []
    for message in iter_messages(payload):
        if await events.try_acquire(message.message_id):
            accepted.append(message)

    if accepted:
        background_tasks.add_task(handle_inbound_messages, accepted, session_factory, directory, sessions)
    return {"status": "ok", "accepted": len(accepted)}
