"""
Blob Store Client

Downloads uploaded avatar documents from Supabase Storage over its REST API.

    store = BlobStore()
    data = await store.fetch("user-123/notes.pdf")
    await store.close()

Authentication uses the service-role key, which bypasses storage policies,
so this client must only run server-side.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from chatgenius.core.config import settings
from chatgenius.core.exceptions import BlobStoreError

logger = logging.getLogger(__name__)


class BlobStore:
    """Read-only client for one storage bucket."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL or "").rstrip("/")
        self.service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.timeout = timeout or settings.STORAGE_REQUEST_TIMEOUT
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path.lstrip('/'))}"

    async def fetch(self, path: str) -> bytes:
        """
        Download an object's bytes.

        Args:
            path: Object path inside the bucket (``storage_path`` of the document)

        Returns:
            Raw file bytes

        Raises:
            BlobStoreError: If storage is not configured, the object is missing,
                or the request fails
        """
        if not self.base_url or not self.service_key:
            raise BlobStoreError("Blob storage is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")

        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

        try:
            response = await self._get_client().get(self.object_url(path), headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Storage returned {e.response.status_code} for {path}")
            raise BlobStoreError(
                f"Failed to download file {path}: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Storage request failed for {path}: {e}")
            raise BlobStoreError(f"Failed to download file {path}: {e}") from e

        logger.debug(f"Downloaded {len(response.content)} bytes from {path}")
        return response.content

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
