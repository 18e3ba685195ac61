"""
Database Models
"""
from conditions.db.models.massif import MassifRow
from conditions.db.models.bulletin import Bulletin
from conditions.db.models.recipient import Recipient
from conditions.db.models.subscription import Subscription
from conditions.db.models.delivery_record import DeliveryRecord
from conditions.db.models.cron_execution import CronExecution
from conditions.db.models.geocode_cache import GeocodeCacheEntry
from conditions.db.models.webhook_event import WebhookEvent

__all__ = [
    "MassifRow",
    "Bulletin",
    "Recipient",
    "Subscription",
    "DeliveryRecord",
    "CronExecution",
    "GeocodeCacheEntry",
    "WebhookEvent",
]
