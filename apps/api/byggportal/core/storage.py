"""
Object Storage

Supabase Storage access for protocol attachments and avatars. The Supabase
client is synchronous, so calls run in the default executor.
"""

import asyncio
import logging
import re
import time
from typing import Any, Callable
from urllib.parse import unquote, urlparse

from supabase import Client, create_client

from byggportal.core.config import settings
from byggportal.core.errors import ExternalServiceError, ServiceNotConfiguredError

logger = logging.getLogger(__name__)


def clean_file_name(file_name: str) -> str:
    """Replace anything but letters, digits, dots and dashes."""
    return re.sub(r"[^a-zA-Z0-9.-]", "_", file_name)


def build_object_path(project_id: str, file_name: str, subfolder: str | None = None) -> str:
    """Build ``project/[subfolder/]timestamp_filename``."""
    name = f"{int(time.time() * 1000)}_{clean_file_name(file_name)}"
    if subfolder:
        return f"{project_id}/{subfolder}/{name}"
    return f"{project_id}/{name}"


def path_from_public_url(url: str, bucket: str) -> str | None:
    """Object path of a public URL in ``bucket``, or None if it points elsewhere."""
    marker = f"/object/public/{bucket}/"
    url_path = urlparse(url).path
    if marker not in url_path:
        return None
    return unquote(url_path.split(marker, 1)[1]) or None


class StorageClient:
    """Upload, delete and sign objects in storage buckets."""

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        client: Client | None = None,
    ):
        self.url = url or settings.storage_url
        self.service_key = service_key or settings.storage_service_key
        self._client = client

    @property
    def client(self) -> Client | None:
        """Get Supabase client (lazy initialization)."""
        if self._client is None:
            if not self.url or not self.service_key:
                return None
            self._client = create_client(self.url, self.service_key)
        return self._client

    def _bucket(self, bucket: str):
        client = self.client
        if client is None:
            logger.error("Storage is not configured")
            raise ServiceNotConfiguredError("Fillagringen är inte konfigurerad")
        return client.storage.from_(bucket)

    async def _run(self, call: Callable[[], Any], error_message: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, call)
        except Exception as e:
            logger.exception(f"Storage request failed: {e}")
            raise ExternalServiceError(error_message) from e

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        """Upload bytes to ``bucket/path`` and return the stored path."""
        files = self._bucket(bucket)
        file_options = {
            "content-type": content_type or "application/octet-stream",
            "cache-control": "3600",
            "upsert": "false",
        }
        await self._run(
            lambda: files.upload(path, content, file_options),
            "Kunde inte ladda upp fil",
        )
        return path

    async def delete(self, bucket: str, path: str) -> None:
        """Remove an object."""
        files = self._bucket(bucket)
        await self._run(lambda: files.remove([path]), "Kunde inte radera fil")

    async def create_signed_url(
        self,
        bucket: str,
        path: str,
        expires_in: int | None = None,
    ) -> str:
        """Get a time-limited download URL for a private object."""
        files = self._bucket(bucket)
        expires = expires_in or settings.signed_url_expires_in
        response = await self._run(
            lambda: files.create_signed_url(path, expires),
            "Kunde inte skapa filåtkomst",
        )

        signed = None
        if isinstance(response, dict):
            signed = response.get("signedURL") or response.get("signedUrl")
        if not signed:
            logger.error(f"No signed URL returned for {bucket}/{path}")
            raise ExternalServiceError("Kunde inte skapa filåtkomst")
        return signed

    def public_url(self, bucket: str, path: str) -> str:
        return self._bucket(bucket).get_public_url(path).rstrip("?")


storage_client = StorageClient()
