"""Object storage data models."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime


@dataclass(frozen=True)
class StoredObjectMetadata:
    """What a backend knows about one stored artifact.

    Attributes:
        key: Object key, `{owner_id}/{artifact_id}/{filename}` for artifacts.
        sha256: Hex digest of the body.
        size_bytes: Body length.
        content_type: MIME type recorded at upload, if any.
        created_at: When the object was written (or fetched, for backends
            that do not report it).
    """

    key: str
    sha256: str
    size_bytes: int
    content_type: str | None
    created_at: datetime

    @classmethod
    def describe(cls, key: str, body: bytes, content_type: str | None) -> StoredObjectMetadata:
        return cls(
            key=key,
            sha256=hashlib.sha256(body).hexdigest(),
            size_bytes=len(body),
            content_type=content_type or None,
            created_at=datetime.now(UTC),
        )

    def to_sidecar(self) -> bytes:
        """Serialize for the filesystem backend's metadata file."""
        fields = asdict(self)
        fields["created_at"] = self.created_at.isoformat()
        return json.dumps(fields, indent=2).encode("utf-8")

    @classmethod
    def from_sidecar(cls, raw: bytes | str) -> StoredObjectMetadata:
        """Parse a metadata file.

        Raises:
            ValueError: If the file is not JSON or the timestamp is malformed.
            KeyError: If a required field is missing.
        """
        fields = json.loads(raw)
        return cls(
            key=str(fields["key"]),
            sha256=str(fields["sha256"]),
            size_bytes=int(fields.get("size_bytes") or 0),
            content_type=fields.get("content_type") or None,
            created_at=datetime.fromisoformat(fields["created_at"]),
        )


@dataclass(frozen=True)
class StoredObject:
    metadata: StoredObjectMetadata
    body: bytes
