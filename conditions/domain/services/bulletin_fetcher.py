"""
Bulletin Fetcher - download, upload and persist new bulletin versions
"""
import asyncio
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from conditions.core.config import settings
from conditions.core.exceptions import MassifNotFoundError
from conditions.core.logging import get_logger
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.models import BulletinMetadata, BulletinRecord
from conditions.domain.text import normalize_text

logger = get_logger(__name__)

_UNSAFE = re.compile(r"[^a-z0-9]+")


class PdfSource(Protocol):
    async def fetch_pdf(self, massif: int) -> bytes: ...


class Uploader(Protocol):
    async def upload_file(self, path: str, key: str, content_type: str = ...) -> str: ...


class BulletinStore(Protocol):
    async def insert_many(self, records: list[BulletinRecord]) -> int: ...


def bulletin_filename(massif_name: str, metadata: BulletinMetadata) -> str:
    """
    vanoise_2024-01-02T0600_risk3.pdf

    Only lowercase ASCII letters, digits, '-' and '_' so the name is safe as
    both a file name and a URL path segment.
    """
    slug = _UNSAFE.sub("-", normalize_text(massif_name)).strip("-") or f"massif-{metadata.massif}"
    name = f"{slug}_{metadata.valid_from.strftime('%Y-%m-%dT%H%M')}"
    if metadata.risk_level is not None:
        name += f"_risk{metadata.risk_level}"
    return f"{name}.pdf"


@dataclass
class FetchReport:
    bulletins: list[BulletinRecord] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)


class BulletinFetcher:
    def __init__(
        self,
        directory: MassifDirectory,
        source: PdfSource,
        storage: Uploader,
        store: BulletinStore,
        scratch_dir: Optional[str] = None,
    ):
        self.directory = directory
        self.source = source
        self.storage = storage
        self.store = store
        self.scratch_dir = Path(scratch_dir or settings.STORAGE_SCRATCH_DIR)

    async def _fetch_one(self, metadata: BulletinMetadata) -> BulletinRecord:
        massif = self.directory.by_code(metadata.massif)
        if massif is None:
            raise MassifNotFoundError(metadata.massif)

        filename = bulletin_filename(massif.name, metadata)
        pdf = await self.source.fetch_pdf(metadata.massif)

        path = self.scratch_dir / filename
        await asyncio.to_thread(path.write_bytes, pdf)
        try:
            public_url = await self.storage.upload_file(str(path), filename, "application/pdf")
        finally:
            await asyncio.to_thread(_remove_quietly, path)

        return BulletinRecord(
            massif=metadata.massif,
            valid_from=metadata.valid_from,
            valid_to=metadata.valid_to,
            risk_level=metadata.risk_level,
            filename=filename,
            public_url=public_url,
        )

    async def fetch_and_store(self, items: list[BulletinMetadata]) -> FetchReport:
        """
        Fetch every bulletin concurrently, then persist the successes in a
        single batch insert. Failed massifs are reported, not raised; a
        failure of the batch insert itself propagates.
        """
        report = FetchReport()
        if not items:
            return report

        results = await asyncio.gather(
            *(self._fetch_one(item) for item in items),
            return_exceptions=True,
        )

        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Bulletin fetch failed",
                    extra_data={"massif": item.massif, "error": str(result)}
                )
                report.failed[item.massif] = str(result) or type(result).__name__
            else:
                report.bulletins.append(result)

        if report.bulletins:
            await self.store.insert_many(report.bulletins)

        logger.info(
            "Bulletins fetched",
            extra_data={
                "stored": [b.massif for b in report.bulletins],
                "failed": sorted(report.failed),
            }
        )
        return report

    async def fetch_one(self, metadata: BulletinMetadata) -> Optional[BulletinRecord]:
        """On-demand refetch for the chat flow; None when it failed"""
        report = await self.fetch_and_store([metadata])
        return report.bulletins[0] if report.bulletins else None


def _remove_quietly(path: Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
