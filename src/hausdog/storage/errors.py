"""Object storage error types.

Backend failures are ExternalServiceErrors so the orchestrator treats them as
retryable. Rejected keys and attempts to overwrite an existing object are
ValidationErrors: retrying them cannot succeed.
"""

from __future__ import annotations

from hausdog.errors import ExternalServiceError, ValidationError


class ObjectStorageError(ExternalServiceError):
    """Base exception for object storage backend failures.

    Attributes:
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, service="storage", cause=cause)
        self.key = key

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object does not exist."""

    def __init__(self, message: str = "Object not found", *, key: str | None = None) -> None:
        super().__init__(message, key=key)


class StorageBackendError(ObjectStorageError):
    """Raised when the backend itself fails (I/O error, HTTP error, permissions)."""

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key, cause=cause)


class ObjectExistsError(ValidationError):
    """Raised when a put would replace an existing object.

    Uploads are create-never-replace.
    """

    def __init__(self, message: str = "Object already exists", *, key: str | None = None) -> None:
        super().__init__(message, field="storage_path", reason="object_exists")
        self.key = key


class PathTraversalError(ValidationError):
    """Raised when an object key contains traversal sequences or unsafe characters."""

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        key: str | None = None,
    ) -> None:
        super().__init__(message, field="storage_path", reason="unsafe_key")
        self.key = key
