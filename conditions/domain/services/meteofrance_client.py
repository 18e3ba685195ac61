"""
Météo-France DPBRA client - bulletin metadata, PDFs and auxiliary images
"""
import re
from datetime import datetime, timezone
from typing import Optional

import httpx

from conditions.core.config import settings
from conditions.core.exceptions import BulletinSourceError, ErrorCode, ServiceTimeoutError
from conditions.core.logging import get_logger
from conditions.domain.models import BulletinMetadata

logger = get_logger(__name__)

_VALID_FROM = re.compile(r'DATEBULLETIN="(.[0-9-T:]*)"')
_VALID_TO = re.compile(r'DATEVALIDITE="(.[0-9-T:]*)"')
_RISK_LEVEL = re.compile(r'RISQUEMAXI="(\d+)"')


def _parse_timestamp(value: str) -> datetime:
    """Upstream timestamps become naive UTC, like every stored datetime"""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_bulletin_metadata(massif: int, document: str) -> BulletinMetadata:
    """
    Extract the validity window and maximum risk from the BRA XML.

    Raises:
        BulletinSourceError: when either timestamp is missing or unparsable
    """
    match_from = _VALID_FROM.search(document)
    match_to = _VALID_TO.search(document)
    if match_from is None or match_to is None:
        raise BulletinSourceError(
            "Bulletin metadata has no validity window",
            massif=massif,
            error_code=ErrorCode.BULLETIN_METADATA_INVALID,
            details={"excerpt": document[:200]},
        )

    try:
        valid_from = _parse_timestamp(match_from.group(1))
        valid_to = _parse_timestamp(match_to.group(1))
    except ValueError as e:
        raise BulletinSourceError(
            f"Unparsable bulletin timestamp: {e}",
            massif=massif,
            error_code=ErrorCode.BULLETIN_METADATA_INVALID,
        ) from e

    risk_level: Optional[int] = None
    match_risk = _RISK_LEVEL.search(document)
    if match_risk is not None:
        level = int(match_risk.group(1))
        risk_level = level if 0 <= level <= 5 else None

    return BulletinMetadata(massif=massif, valid_from=valid_from, valid_to=valid_to, risk_level=risk_level)


class MeteoFranceClient:
    """Thin async client over the DPBRA endpoints"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.METEOFRANCE_API_KEY
        self.base_url = (base_url or settings.METEOFRANCE_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.METEOFRANCE_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"apikey": self.api_key},
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def _get(self, operation: str, path: str, params: dict, massif: int) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}{path}", params=params)
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError("meteofrance", self.timeout_seconds) from e
        except httpx.HTTPError as e:
            raise BulletinSourceError(f"{operation} request failed: {e}", massif=massif) from e

        if response.status_code != 200:
            raise BulletinSourceError.from_response(operation, response, massif=massif)
        return response

    async def fetch_metadata(self, massif: int) -> BulletinMetadata:
        response = await self._get(
            "metadata",
            "/massif/BRA",
            {"id-massif": massif, "format": "xml"},
            massif,
        )
        return parse_bulletin_metadata(massif, response.text)

    async def fetch_pdf(self, massif: int) -> bytes:
        response = await self._get(
            "pdf",
            "/massif/BRA",
            {"id-massif": massif, "format": "pdf"},
            massif,
        )
        if not response.content:
            raise BulletinSourceError("Empty bulletin PDF", massif=massif)
        return response.content

    async def fetch_image(self, massif: int, endpoint: str) -> bytes:
        response = await self._get(
            f"image/{endpoint}",
            f"/massif/image/{endpoint}",
            {"id-massif": massif},
            massif,
        )
        return response.content
