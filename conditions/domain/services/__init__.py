"""
Domain Services
"""
from conditions.domain.services.bulletin_fetcher import BulletinFetcher
from conditions.domain.services.bulletin_service import BulletinService
from conditions.domain.services.cron_orchestrator import CronOrchestrator, CronStatus
from conditions.domain.services.delivery_dispatcher import DeliveryDispatcher
from conditions.domain.services.delivery_planner import DeliveryPlanner
from conditions.domain.services.freshness_checker import BulletinFreshnessChecker
from conditions.domain.services.geocoding_service import GeocodingService
from conditions.domain.services.notification_service import TelegramAdminNotifier

__all__ = [
    "BulletinFetcher",
    "BulletinService",
    "CronOrchestrator",
    "CronStatus",
    "DeliveryDispatcher",
    "DeliveryPlanner",
    "BulletinFreshnessChecker",
    "GeocodingService",
    "TelegramAdminNotifier",
]
