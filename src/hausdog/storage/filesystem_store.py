"""Filesystem object storage backend.

Provides local storage for development and tests with:
- Path traversal protection
- Create-never-replace writes (the object directory is created exclusively)
- SHA256 content hashing
- HMAC-signed, time-limited local URLs

Environment Variables:
    HAUSDOG_OBJECT_STORE_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / hausdog_objects)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import shutil
import time
import uuid
from pathlib import Path
from urllib.parse import parse_qs, quote, unquote, urlsplit

from hausdog.storage.errors import (
    ObjectExistsError,
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from hausdog.storage.models import StoredObject, StoredObjectMetadata
from hausdog.storage.object_store import ObjectStore
from hausdog.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")

_METADATA_FILE = "meta.json"
_CONTENT_FILE = "content.data"
LOCAL_URL_SCHEME = "hausdog-local"


def is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences.

    Detects:
    - empty keys and null bytes
    - backslashes
    - absolute paths (leading / or ~, drive letters)
    - ".." or "." segments
    - characters outside the safe set
    """
    if not key or "\x00" in key or "\\" in key:
        return True

    if key.startswith("/") or key.startswith("~"):
        return True

    if len(key) >= 2 and key[1] == ":":
        return True

    segments = key.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return True

    return not _SAFE_KEY_PATTERN.match(key)


def _validate_key(key: str) -> None:
    """Validate object key and raise if invalid."""
    if is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            key=key,
        )


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage.

    Objects are stored in a directory per key:
        {base_dir}/{first key segment}/{safe_key}_{key_hash}/
            content.data   # bytes
            meta.json      # StoredObjectMetadata

    The per-key directory is created with exist_ok=False, which makes the
    put atomic with respect to a concurrent put of the same key.
    """

    def __init__(self, base_dir: str | Path, *, signing_secret: str | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage.
            signing_secret: Secret for local signed URLs. A random secret is
                generated when omitted, so URLs do not survive a restart.
        """
        self._base_dir = Path(base_dir).resolve()
        self._signing_secret = signing_secret or secrets.token_hex(32)
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _get_object_dir(self, key: str) -> Path:
        """Get the directory for an object, validating the key.

        Uses a hash of the key to create a safe filesystem path.
        """
        _validate_key(key)
        owner_segment = re.sub(r"[^a-zA-Z0-9_\-]", "_", key.split("/", 1)[0])[:64]
        key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
        safe_key = re.sub(r"[^a-zA-Z0-9_\-]", "_", key)[:64]
        obj_dir = self._base_dir / owner_segment / f"{safe_key}_{key_hash}"
        return self._ensure_resolved_within_base(obj_dir, key)

    def _ensure_resolved_within_base(self, path: Path, key: str) -> Path:
        """Ensure a path resolves within the base directory."""
        resolved = path.resolve()
        try:
            resolved.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                key=key,
            ) from e
        return resolved

    def _write_atomic(self, target: Path, data: bytes) -> None:
        """Write bytes to `target` via a temporary file and rename."""
        tmp_file = target.with_name(f"{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            tmp_file.write_bytes(data)
            tmp_file.replace(target)
        except OSError:
            tmp_file.unlink(missing_ok=True)
            raise

    @traced_storage_operation("put")
    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        obj_dir = self._get_object_dir(key)

        try:
            obj_dir.parent.mkdir(parents=True, exist_ok=True)
            obj_dir.mkdir(exist_ok=False)
        except FileExistsError as e:
            raise ObjectExistsError(key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create object directory: {e}",
                key=key,
                cause=e,
            ) from e

        metadata = StoredObjectMetadata.describe(key, data, content_type)

        try:
            self._write_atomic(obj_dir / _CONTENT_FILE, data)
            self._write_atomic(obj_dir / _METADATA_FILE, metadata.to_sidecar())
        except OSError as e:
            shutil.rmtree(obj_dir, ignore_errors=True)
            raise StorageBackendError(
                message=f"Failed to write object: {e}",
                key=key,
                cause=e,
            ) from e

        logger.debug("Stored object sha256=%s size=%d", metadata.sha256[:12], len(data))
        return metadata

    @traced_storage_operation("get")
    def get(self, key: str) -> StoredObject:
        obj_dir = self._get_object_dir(key)
        meta_file = obj_dir / _METADATA_FILE
        content_file = obj_dir / _CONTENT_FILE

        if not meta_file.exists() or not content_file.exists():
            raise ObjectNotFoundError(key=key)

        try:
            metadata = StoredObjectMetadata.from_sidecar(meta_file.read_bytes())
            body = content_file.read_bytes()
        except (OSError, ValueError, KeyError) as e:
            raise StorageBackendError(
                message=f"Failed to read object: {e}",
                key=key,
                cause=e,
            ) from e

        return StoredObject(metadata=metadata, body=body)

    @traced_storage_operation("delete")
    def delete(self, key: str) -> None:
        obj_dir = self._get_object_dir(key)
        if not obj_dir.exists():
            raise ObjectNotFoundError(key=key)

        try:
            shutil.rmtree(obj_dir)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object: {e}",
                key=key,
                cause=e,
            ) from e
        logger.debug("Deleted object in %s", obj_dir.name)

    def _sign(self, key: str, expires_at: int) -> str:
        message = f"{expires_at}.{key}".encode()
        return hmac.new(self._signing_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    @traced_storage_operation("signed_url")
    def signed_url(self, key: str, *, expires_in: int) -> str:
        _validate_key(key)
        expires_at = int(time.time()) + expires_in
        signature = self._sign(key, expires_at)
        return f"{LOCAL_URL_SCHEME}:///{quote(key)}?expires={expires_at}&signature={signature}"

    def verify_signed_url(self, url: str, *, now: float | None = None) -> str | None:
        """Check a URL produced by `signed_url`.

        Returns:
            The object key if the signature is valid and unexpired, else None.
        """
        parts = urlsplit(url)
        if parts.scheme != LOCAL_URL_SCHEME:
            return None
        query = parse_qs(parts.query)
        try:
            expires_at = int(query["expires"][0])
            signature = query["signature"][0]
        except (KeyError, IndexError, ValueError):
            return None

        key = unquote(parts.path.lstrip("/"))
        if expires_at < int(now if now is not None else time.time()):
            return None
        if not hmac.compare_digest(self._sign(key, expires_at), signature):
            return None
        return key
