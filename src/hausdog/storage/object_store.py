"""Object storage interface.

Keys are owner-scoped paths. Writes never replace an existing object.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from hausdog.storage.models import StoredObject, StoredObjectMetadata


class ObjectStore(ABC):
    """Abstract base class for artifact storage backends.

    Implementations:
    - FilesystemObjectStore: local filesystem (development and tests)
    - SupabaseObjectStore: Supabase Storage REST API (production)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @abstractmethod
    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        """Store a new object.

        Args:
            key: Object key.
            data: Object content.
            content_type: Optional MIME type.

        Returns:
            Metadata for the stored object.

        Raises:
            ObjectExistsError: If an object already exists under `key`.
            PathTraversalError: If the key is unsafe.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def get(self, key: str) -> StoredObject:
        """Retrieve an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If the key is unsafe.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If the key is unsafe.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def signed_url(self, key: str, *, expires_in: int) -> str:
        """Return a time-limited download URL for an object.

        Args:
            key: Object key.
            expires_in: Lifetime in seconds.

        Raises:
            PathTraversalError: If the key is unsafe.
            StorageBackendError: If the backend cannot sign the URL.
        """
        ...
