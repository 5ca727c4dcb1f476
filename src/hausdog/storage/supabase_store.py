"""Supabase Storage backend over the Storage REST API.

Every request authenticates with the service role key. Uploads send
`x-upsert: false`, so the server refuses to replace an existing object.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from hausdog.storage.errors import (
    ObjectExistsError,
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from hausdog.storage.filesystem_store import is_path_traversal
from hausdog.storage.models import StoredObject, StoredObjectMetadata
from hausdog.storage.object_store import ObjectStore
from hausdog.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 60.0


def _is_duplicate(response: httpx.Response) -> bool:
    """Supabase reports duplicates as 409, or as 400 with statusCode "409"."""
    if response.status_code == 409:
        return True
    if response.status_code == 400:
        try:
            body = response.json()
        except ValueError:
            return False
        return str(body.get("statusCode")) == "409" or "Duplicate" in str(body.get("error"))
    return False


def _is_not_found(response: httpx.Response) -> bool:
    if response.status_code == 404:
        return True
    if response.status_code == 400:
        try:
            body = response.json()
        except ValueError:
            return False
        return str(body.get("statusCode")) == "404"
    return False


class SupabaseObjectStore(ObjectStore):
    """Object store backed by a Supabase Storage bucket.

    Args:
        url: Project URL, e.g. "https://xyz.supabase.co".
        service_key: Service role key.
        bucket: Bucket name.
        client: Optional httpx client (tests inject a MockTransport).
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        bucket: str,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = url.rstrip("/") + "/storage/v1"
        self._bucket = bucket
        self._client = client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    @property
    def backend_name(self) -> str:
        return "supabase"

    def _object_url(self, prefix: str, key: str) -> str:
        if is_path_traversal(key):
            raise PathTraversalError(key=key)
        return f"{self._base_url}/{prefix}/{self._bucket}/{quote(key)}"

    def _request(
        self,
        method: str,
        url: str,
        key: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            return self._client.request(
                method, url, headers={**self._headers, **(headers or {})}, **kwargs
            )
        except httpx.HTTPError as e:
            raise StorageBackendError(
                message=f"Storage request failed: {type(e).__name__}",
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("put")
    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        url = self._object_url("object", key)
        response = self._request(
            "POST",
            url,
            key,
            content=data,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
            },
        )
        if _is_duplicate(response):
            raise ObjectExistsError(key=key)
        if response.is_error:
            raise StorageBackendError(
                message=f"Upload failed with HTTP {response.status_code}",
                key=key,
            )

        return StoredObjectMetadata.describe(key, data, content_type)

    @traced_storage_operation("get")
    def get(self, key: str) -> StoredObject:
        response = self._request("GET", self._object_url("object/authenticated", key), key)
        if _is_not_found(response):
            raise ObjectNotFoundError(key=key)
        if response.is_error:
            raise StorageBackendError(
                message=f"Download failed with HTTP {response.status_code}",
                key=key,
            )

        body = response.content
        return StoredObject(
            metadata=StoredObjectMetadata.describe(
                key, body, response.headers.get("content-type")
            ),
            body=body,
        )

    @traced_storage_operation("delete")
    def delete(self, key: str) -> None:
        if is_path_traversal(key):
            raise PathTraversalError(key=key)
        response = self._request(
            "DELETE",
            f"{self._base_url}/object/{self._bucket}",
            key,
            json={"prefixes": [key]},
        )
        if response.is_error:
            raise StorageBackendError(
                message=f"Delete failed with HTTP {response.status_code}",
                key=key,
            )
        removed = response.json()
        if isinstance(removed, list) and not removed:
            raise ObjectNotFoundError(key=key)

    @traced_storage_operation("signed_url")
    def signed_url(self, key: str, *, expires_in: int) -> str:
        response = self._request(
            "POST",
            self._object_url("object/sign", key),
            key,
            json={"expiresIn": expires_in},
        )
        if _is_not_found(response):
            raise ObjectNotFoundError(key=key)
        if response.is_error:
            raise StorageBackendError(
                message=f"Signing failed with HTTP {response.status_code}",
                key=key,
            )
        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageBackendError(message="Signing response missing signedURL", key=key)
        return f"{self._base_url}{signed_path}"
