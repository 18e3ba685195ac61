"""
Massif Directory

In-memory index of every massif, loaded once at startup and read-only
afterwards. One instance is created by the application (or a cron run) and
passed to whoever needs lookups.
"""
from typing import Iterable, Optional, Protocol

from conditions.core.exceptions import MassifDirectoryError
from conditions.core.logging import get_logger
from conditions.domain.geometry import point_in_geometry
from conditions.domain.models import Massif
from conditions.domain.text import normalize_text

logger = get_logger(__name__)

MIN_QUERY_LENGTH = 2


class MassifSource(Protocol):
    async def list_all(self) -> list[Massif]: ...


class MassifDirectory:
    """Lookups by code, mountain, name and location"""

    def __init__(self, massifs: Iterable[Massif] | None = None):
        self._initialized = False
        self._massifs: list[Massif] = []
        self._by_code: dict[int, Massif] = {}
        self._by_mountain: dict[str, list[Massif]] = {}
        self._mountains: list[str] = []
        self._normalized_names: list[tuple[str, Massif]] = []
        if massifs is not None:
            self._load(list(massifs))

    async def initialize(self, source: MassifSource) -> None:
        """
        Load every massif from the store.

        A store failure is fatal: callers run this at startup and must not
        continue without a directory.
        """
        try:
            massifs = await source.list_all()
        except Exception as e:
            logger.error(
                "Failed to load massif directory",
                extra_data={"error": str(e)},
                exc_info=True
            )
            raise MassifDirectoryError(
                "Massif directory could not be loaded",
                details={"error": str(e)}
            ) from e
        self._load(massifs)

    def _load(self, massifs: list[Massif]) -> None:
        self._massifs = massifs
        self._by_code = {m.code: m for m in massifs}
        self._normalized_names = [(normalize_text(m.name), m) for m in massifs]

        grouped: dict[str, list[Massif]] = {}
        for massif in massifs:
            if massif.mountain:
                grouped.setdefault(massif.mountain, []).append(massif)
        self._by_mountain = {
            mountain: sorted(members, key=lambda m: m.name)
            for mountain, members in grouped.items()
        }
        self._mountains = sorted(self._by_mountain)
        self._initialized = True

        logger.info(
            "Massif directory loaded",
            extra_data={"massifs": len(massifs), "mountains": len(self._mountains)}
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MassifDirectoryError("Massif directory used before initialize()")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def __len__(self) -> int:
        return len(self._massifs)

    def all(self) -> list[Massif]:
        self._require_initialized()
        return list(self._massifs)

    def by_code(self, code: int) -> Optional[Massif]:
        self._require_initialized()
        return self._by_code.get(code)

    def by_mountain(self, mountain: str) -> list[Massif]:
        """Massifs of a mountain range, sorted by name"""
        self._require_initialized()
        return self._by_mountain.get(mountain, [])

    def mountains(self) -> list[str]:
        self._require_initialized()
        return self._mountains

    def search_by_name(self, query: str) -> list[Massif]:
        """
        Fuzzy name search.

        Exact normalized match wins outright. Otherwise any massif whose name
        contains the query, or is contained in it, matches; callers handle
        zero, one or several results.
        """
        self._require_initialized()
        needle = normalize_text(query)
        if len(needle) < MIN_QUERY_LENGTH:
            return []

        for name, massif in self._normalized_names:
            if name == needle:
                return [massif]

        return [
            massif for name, massif in self._normalized_names
            if needle in name or name in needle
        ]

    def find_by_location(self, lat: float, lng: float) -> Optional[Massif]:
        """First massif in load order whose boundary contains the point"""
        self._require_initialized()
        for massif in self._massifs:
            if massif.geometry and point_in_geometry((lng, lat), massif.geometry):
                return massif
        return None
