"""
Tests for BlobStorage
Version: 1.0
"""

import re

import httpx
import pytest

from services.blob_storage import BlobStorage
from services.errors import TransientStoreError, ValidationError


def _storage(handler) -> BlobStorage:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BlobStorage("https://platform.example.sc", "images", "service-key", client=client)


class TestUpload:

    @pytest.mark.asyncio
    async def test_returns_public_url(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = request.content
            return httpx.Response(200, json={"Key": "images/x"})

        url = await _storage(handler).upload(b"\x89PNG....", "image/png")

        assert re.fullmatch(
            r"https://platform\.example\.sc/storage/v1/object/public/images/\d+_[a-z0-9]{8}\.png", url
        )
        assert seen["path"].startswith("/storage/v1/object/images/")
        assert seen["headers"]["Cache-Control"] == "max-age=604800"
        assert seen["headers"]["x-upsert"] == "false"
        assert seen["body"] == b"\x89PNG...."

    @pytest.mark.asyncio
    async def test_unique_names(self):
        storage = _storage(lambda request: httpx.Response(200))
        first = await storage.upload(b"a", "image/jpeg")
        second = await storage.upload(b"a", "image/jpeg")
        assert first != second

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data,content_type", [
        (b"", "image/png"),
        (b"text", "text/plain"),
        (b"x", ""),
    ])
    async def test_rejected_input(self, data, content_type):
        storage = _storage(lambda request: httpx.Response(200))
        with pytest.raises(ValidationError):
            await storage.upload(data, content_type)

    @pytest.mark.asyncio
    async def test_storage_error(self):
        storage = _storage(lambda request: httpx.Response(409, text="exists"))
        with pytest.raises(TransientStoreError):
            await storage.upload(b"a", "image/webp")
