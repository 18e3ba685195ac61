"""
Repositories - the relational-store operations the pipeline and chat flows use
"""
from conditions.db.repositories.massif_repository import MassifRepository
from conditions.db.repositories.subscription_repository import SubscriptionRepository
from conditions.db.repositories.bulletin_repository import BulletinRepository
from conditions.db.repositories.delivery_repository import DeliveryRepository
from conditions.db.repositories.cron_execution_repository import CronExecutionRepository
from conditions.db.repositories.geocode_cache_repository import GeocodeCacheRepository
from conditions.db.repositories.webhook_event_repository import WebhookEventRepository

__all__ = [
    "MassifRepository",
    "SubscriptionRepository",
    "BulletinRepository",
    "DeliveryRepository",
    "CronExecutionRepository",
    "GeocodeCacheRepository",
    "WebhookEventRepository",
]
