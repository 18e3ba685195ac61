"""
Image Service - auxiliary bulletin images (snow report, fresh snow, weather...)
"""
import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from conditions.core.logging import get_logger
from conditions.domain.models import ContentType, Massif
from conditions.domain.services.formatters import image_caption, image_filename
from conditions.domain.services.meteofrance_client import MeteoFranceClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class BulletinImage:
    content_type: ContentType
    data: bytes
    caption: str
    filename: str


class ImageService:
    def __init__(self, client: MeteoFranceClient):
        self.client = client

    async def fetch_images(
        self,
        massif: Massif,
        content_types: Iterable[ContentType],
        valid_to: datetime
    ) -> list[BulletinImage]:
        """
        Fetch the requested images concurrently.

        A failed image is logged and left out; the others are still returned
        in request order.
        """
        wanted = [ct for ct in content_types if ct.image_endpoint]
        if not wanted:
            return []

        results = await asyncio.gather(
            *(self.client.fetch_image(massif.code, ct.image_endpoint) for ct in wanted),
            return_exceptions=True,
        )

        images: list[BulletinImage] = []
        for content_type, result in zip(wanted, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Image fetch failed",
                    extra_data={
                        "massif": massif.code,
                        "content_type": content_type.value,
                        "error": str(result),
                    }
                )
                continue
            images.append(BulletinImage(
                content_type=content_type,
                data=result,
                caption=image_caption(content_type, massif.name, valid_to),
                filename=image_filename(content_type, massif.code),
            ))
        return images


class ImageCache:
    """
    Images fetched once per massif and content type for one delivery run.

    Failed images are remembered as missing so a run does not hammer
    the upstream for every recipient.
    """

    def __init__(self, service: ImageService):
        self.service = service
        self._images: dict[tuple[int, ContentType], BulletinImage | None] = {}
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(
        self,
        massif: Massif,
        content_types: Iterable[ContentType],
        valid_to: datetime
    ) -> list[BulletinImage]:
        wanted = [ct for ct in content_types if ct.image_endpoint]
        async with self._locks[massif.code]:
            missing = [ct for ct in wanted if (massif.code, ct) not in self._images]
            if missing:
                for ct in missing:
                    self._images[(massif.code, ct)] = None
                for image in await self.service.fetch_images(massif, missing, valid_to):
                    self._images[(massif.code, image.content_type)] = image

        return [
            image for image in (self._images.get((massif.code, ct)) for ct in wanted)
            if image is not None
        ]
