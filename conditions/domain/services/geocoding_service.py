"""
Geocoding Service - place name to massif

Cache-first on the normalized query; only cache misses reach the paid Google
Geocoding API, through the geocoding circuit breaker.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import httpx

from conditions.core.circuit_breaker import CircuitBreaker, get_geocoding_circuit_breaker
from conditions.core.config import settings
from conditions.core.exceptions import ExternalServiceException, GeocodingError, ServiceTimeoutError
from conditions.core.logging import get_logger
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.models import Massif
from conditions.domain.text import normalize_text

logger = get_logger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GeocodeStatus(str, Enum):
    FOUND = "found"
    NO_RESULT = "no_result"
    OUTSIDE_COVERAGE = "outside_coverage"


@dataclass(frozen=True)
class GeocodeResult:
    status: GeocodeStatus
    massif: Optional[Massif] = None
    place_name: Optional[str] = None
    from_cache: bool = False


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    place_name: str


class GeocodeCache(Protocol):
    async def get(self, query: str): ...

    async def store(
        self,
        query: str,
        massif_code: int,
        place_name: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
    ) -> None: ...


class GeocodingService:
    def __init__(
        self,
        directory: MassifDirectory,
        cache: GeocodeCache,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.directory = directory
        self.cache = cache
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout_seconds = timeout_seconds or settings.GEOCODING_TIMEOUT_SECONDS
        self.circuit_breaker = circuit_breaker or get_geocoding_circuit_breaker()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def lookup(self, query: str) -> Optional[Location]:
        """
        Raw Google lookup.

        Returns None for ZERO_RESULTS; any other non-OK status raises
        GeocodingError.
        """
        async def _get() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                return await client.get(
                    GEOCODE_URL,
                    params={"address": query, "region": "fr", "language": "fr", "key": self.api_key},
                )

        try:
            response = await self.circuit_breaker.execute(_get)
        except httpx.TimeoutException:
            raise ServiceTimeoutError("geocoding", self.timeout_seconds)
        except httpx.HTTPError as e:
            raise GeocodingError(str(e))

        if response.status_code != 200:
            raise GeocodingError(
                f"geocode returned status {response.status_code}",
                details={"status_code": response.status_code},
            )

        payload = response.json()
        status = payload.get("status")
        if status == "ZERO_RESULTS":
            return None
        if status != "OK" or not payload.get("results"):
            raise GeocodingError(f"geocode status {status}", details={"status": status})

        first = payload["results"][0]
        location = first["geometry"]["location"]
        return Location(
            lat=float(location["lat"]),
            lng=float(location["lng"]),
            place_name=first.get("formatted_address") or query,
        )

    async def resolve(self, query: str) -> GeocodeResult:
        """Find the massif containing a free-text place"""
        key = normalize_text(query)
        if not key:
            return GeocodeResult(GeocodeStatus.NO_RESULT)

        cached = await self.cache.get(key)
        if cached is not None:
            massif = self.directory.by_code(cached.massif_code)
            if massif is not None:
                logger.debug("Geocode cache hit", extra_data={"query": key, "massif": massif.code})
                return GeocodeResult(
                    GeocodeStatus.FOUND, massif, cached.place_name or query, from_cache=True
                )

        if not self.enabled:
            return GeocodeResult(GeocodeStatus.NO_RESULT)

        try:
            location = await self.lookup(query)
        except ExternalServiceException as e:
            logger.warning(
                "Geocoding failed",
                extra_data={"query": key, "error_code": e.error_code.value, "error": e.message}
            )
            return GeocodeResult(GeocodeStatus.NO_RESULT)

        if location is None:
            return GeocodeResult(GeocodeStatus.NO_RESULT)

        massif = self.directory.find_by_location(location.lat, location.lng)
        if massif is None:
            return GeocodeResult(GeocodeStatus.OUTSIDE_COVERAGE, place_name=location.place_name)

        await self.cache.store(key, massif.code, location.place_name, location.lat, location.lng)
        logger.info(
            "Geocoded place to massif",
            extra_data={"query": key, "massif": massif.code}
        )
        return GeocodeResult(GeocodeStatus.FOUND, massif, location.place_name)
