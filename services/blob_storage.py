"""
Blob Storage
Version: 1.0

Image uploads to the managed platform's object storage (REST API).

Files are never overwritten: each upload gets a timestamped random name
and a 7-day cache header. The returned URL is the bucket's public URL.

DEPENDS ON: errors.py
"""

import logging
import random
import string
import time
from typing import Dict, Optional

import httpx

from services.errors import TransientStoreError, ValidationError

logger = logging.getLogger(__name__)

CACHE_CONTROL_SECONDS = 604800
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


def random_file_name(extension: str) -> str:
    """'{epoch ms}_{random}.{ext}'"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=8))
    return f"{int(time.time() * 1000)}_{suffix}.{extension}"


class BlobStorage:

    def __init__(
        self,
        base_url: str,
        bucket: str = "images",
        service_key: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.service_key = service_key
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0))

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def _headers(self, content_type: str) -> Dict[str, str]:
        headers = {
            "Content-Type": content_type,
            "Cache-Control": f"max-age={CACHE_CONTROL_SECONDS}",
            "x-upsert": "false",
        }
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"
            headers["apikey"] = self.service_key
        return headers

    async def upload(self, data: bytes, content_type: str) -> str:
        """
        Upload an image and return its public URL.

        Raises:
            ValidationError: empty body, oversize body or non-image type
            TransientStoreError: storage unreachable or rejected the upload
        """
        content_type = (content_type or "").split(";")[0].strip().lower()
        extension = EXTENSIONS.get(content_type)
        if extension is None:
            raise ValidationError(f"Unsupported image type: {content_type or 'unknown'}")
        if not data:
            raise ValidationError("Empty upload")
        if len(data) > MAX_UPLOAD_BYTES:
            raise ValidationError("Image too large")

        path = random_file_name(extension)
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"

        try:
            response = await self.client.post(url, content=data, headers=self._headers(content_type))
        except httpx.HTTPError as e:
            logger.error(f"Storage unreachable: {e}")
            raise TransientStoreError(f"Upload failed: {e}")

        if response.status_code >= 400:
            logger.error(f"Storage rejected upload {response.status_code}: {response.text[:200]}")
            raise TransientStoreError(f"Upload failed with status {response.status_code}")

        logger.info(f"Uploaded {path} ({len(data)} bytes)")
        return self.public_url(path)

    async def close(self):
        await self.client.aclose()
