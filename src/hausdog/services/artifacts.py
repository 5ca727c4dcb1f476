"""Time-limited download links for stored artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from hausdog.errors import AuthorizationError
from hausdog.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_SECONDS = 3600


@dataclass(frozen=True)
class SignedUrl:
    signed_url: str
    expires_in: int


class ArtifactService:
    """Issues signed URLs for artifacts under the caller's own prefix.

    Args:
        store: Object store holding artifacts.
        expires_in: URL lifetime in seconds.
    """

    def __init__(self, store: ObjectStore, *, expires_in: int = DEFAULT_EXPIRES_IN_SECONDS) -> None:
        self._store = store
        self._expires_in = expires_in

    def signed_url(self, owner_id: str, storage_path: str) -> SignedUrl:
        """Sign a download URL for `storage_path`.

        Raises:
            AuthorizationError: If the path is outside "{owner_id}/" or
                contains a ".." segment.
        """
        if not storage_path.startswith(f"{owner_id}/") or ".." in storage_path.split("/"):
            raise AuthorizationError("Storage path is not owned by caller", owner_id=owner_id)
        url = self._store.signed_url(storage_path, expires_in=self._expires_in)
        return SignedUrl(signed_url=url, expires_in=self._expires_in)
