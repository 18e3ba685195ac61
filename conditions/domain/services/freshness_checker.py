"""
Bulletin Freshness Checker

Compares what Météo-France currently publishes for every subscribed massif
against the latest bulletin already stored, and decides what to fetch.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from conditions.core.logging import get_logger
from conditions.domain.models import BulletinMetadata
from conditions.domain.services.notification_service import AdminNotifier

logger = get_logger(__name__)


class MetadataSource(Protocol):
    async def fetch_metadata(self, massif: int) -> BulletinMetadata: ...


class SubscribedMassifs(Protocol):
    async def get_massifs_with_subscribers(self) -> list[int]: ...


class StoredBulletins(Protocol):
    async def get_latest_valid_from_by_massif(self, massifs: list[int]) -> dict[int, datetime]: ...


@dataclass
class FreshnessReport:
    """Each checked massif lands in exactly one of new/updated/unchanged/failed"""
    checked: list[int] = field(default_factory=list)
    to_fetch: list[BulletinMetadata] = field(default_factory=list)
    new: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    unchanged: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


def classify(
    metadata: BulletinMetadata,
    stored_valid_from: Optional[datetime]
) -> str:
    """new / updated / unchanged; updated only for a strictly later valid_from"""
    if stored_valid_from is None:
        return "new"
    if metadata.valid_from > stored_valid_from:
        return "updated"
    return "unchanged"


class BulletinFreshnessChecker:
    def __init__(
        self,
        subscriptions: SubscribedMassifs,
        bulletins: StoredBulletins,
        source: MetadataSource,
        notifier: AdminNotifier,
    ):
        self.subscriptions = subscriptions
        self.bulletins = bulletins
        self.source = source
        self.notifier = notifier

    async def check(self) -> FreshnessReport:
        """
        Classify every subscribed massif.

        Per-massif failures are collected, never raised; a store failure while
        listing massifs or stored bulletins does propagate.
        """
        massifs = await self.subscriptions.get_massifs_with_subscribers()
        report = FreshnessReport(checked=list(massifs))
        if not massifs:
            return report

        stored = await self.bulletins.get_latest_valid_from_by_massif(massifs)

        results = await asyncio.gather(
            *(self.source.fetch_metadata(code) for code in massifs),
            return_exceptions=True,
        )

        for code, result in zip(massifs, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Bulletin metadata check failed",
                    extra_data={"massif": code, "error": str(result)}
                )
                report.failed[code] = str(result) or type(result).__name__
                continue

            verdict = classify(result, stored.get(code))
            if verdict == "new":
                report.new.append(code)
                report.to_fetch.append(result)
            elif verdict == "updated":
                report.updated.append(code)
                report.to_fetch.append(result)
            else:
                report.unchanged.append(code)

        logger.info(
            "Freshness check complete",
            extra_data={
                "checked": len(massifs),
                "new": report.new,
                "updated": report.updated,
                "unchanged": len(report.unchanged),
                "failed": sorted(report.failed),
            }
        )

        if report.failed:
            await self.notifier.notify(
                f"Bulletin check failed for {len(report.failed)} of {len(massifs)} massifs",
                {str(code): reason for code, reason in report.failed.items()},
            )

        return report
