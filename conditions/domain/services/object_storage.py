"""
Object Storage - durable, publicly addressable copies of bulletin PDFs

S3 or any S3-compatible endpoint through boto3. boto3 is blocking, so every
call runs in a worker thread.
"""
import asyncio
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from conditions.core.config import settings
from conditions.core.exceptions import StorageError
from conditions.core.logging import get_logger

logger = get_logger(__name__)


class ObjectStorage:
    def __init__(
        self,
        bucket: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.endpoint_url = endpoint_url if endpoint_url is not None else settings.STORAGE_ENDPOINT_URL
        self.public_base_url = public_base_url if public_base_url is not None else settings.STORAGE_PUBLIC_BASE_URL
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client("s3", endpoint_url=self.endpoint_url or None)
        return self._client

    def public_url(self, key: str) -> str:
        quoted = quote(key)
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quoted}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.amazonaws.com/{quoted}"

    async def upload_file(self, path: str, key: str, content_type: str = "application/pdf") -> str:
        """
        Upload a local file as a public object and return its URL.

        Raises:
            StorageError: on any S3 failure
        """
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.upload_file,
                path,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type, "ACL": "public-read"},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Object upload failed",
                extra_data={"bucket": self.bucket, "key": key, "error": str(e)}
            )
            raise StorageError(key, str(e)) from e

        url = self.public_url(key)
        logger.info("Object uploaded", extra_data={"bucket": self.bucket, "key": key})
        return url
