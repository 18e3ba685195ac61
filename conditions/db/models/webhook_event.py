"""
Webhook Event Model - one row per inbound WhatsApp message id

Meta redelivers a message when the webhook is slow to answer; a message
whose row is completed is never handled again. A row left in processing
(the handler died) becomes retryable once it is stale.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String

from conditions.db.database import Base


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    message_id = Column(String(200), primary_key=True)
    platform = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="processing")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_webhook_events_status_created", "status", "created_at"),
    )
