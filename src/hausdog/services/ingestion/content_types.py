"""Artifact acceptance rules shared by upload and email ingress."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from hausdog.errors import ValidationError
from hausdog.models.extraction import DocumentKind

MAX_ARTIFACT_BYTES = 50 * 1024 * 1024

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/heic",
        "application/pdf",
    }
)

_CONTENT_TYPES_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".pdf": "application/pdf",
}
_UNTYPED = frozenset({"", "application/octet-stream"})

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._\-]+")
_MAX_FILENAME_LENGTH = 200
_FILENAME_KEYWORDS = ("manual", "warranty", "receipt", "invoice")


def normalize_content_type(content_type: str | None) -> str:
    """Lowercase the media type and drop parameters such as charset."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def resolve_content_type(content_type: str | None, filename: str | None) -> str:
    """Normalize the declared type, falling back to the filename extension.

    Clients often send no type, or application/octet-stream, for photos taken
    on a phone. Only those two cases consult the extension; a declared type
    is never overridden.
    """
    normalized = normalize_content_type(content_type)
    if normalized not in _UNTYPED:
        return normalized
    suffix = PurePosixPath((filename or "").replace("\\", "/")).suffix.lower()
    return _CONTENT_TYPES_BY_EXTENSION.get(suffix, normalized)


def is_allowed_content_type(content_type: str | None) -> bool:
    return normalize_content_type(content_type) in ALLOWED_CONTENT_TYPES


def validate_content_type(content_type: str | None) -> str:
    """Return the normalized content type or raise.

    Raises:
        ValidationError: If the type is not in the allow-list.
    """
    normalized = normalize_content_type(content_type)
    if normalized not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f"Unsupported content type: {normalized or 'missing'}",
            field="content_type",
            reason="unsupported_content_type",
        )
    return normalized


def validate_size(size_bytes: int) -> None:
    """Require 0 < size_bytes <= 50 MiB.

    Raises:
        ValidationError: With reason "empty" or "too_large".
    """
    if size_bytes <= 0:
        raise ValidationError("File is empty", field="file", reason="empty")
    if size_bytes > MAX_ARTIFACT_BYTES:
        raise ValidationError(
            f"File exceeds {MAX_ARTIFACT_BYTES} bytes",
            field="file",
            reason="too_large",
        )


def sanitize_filename(filename: str | None) -> str:
    """Reduce a client-supplied filename to a safe single path segment."""
    base = PurePosixPath((filename or "").replace("\\", "/")).name
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", base).lstrip(".")
    cleaned = cleaned[:_MAX_FILENAME_LENGTH]
    return cleaned or "file"


def infer_document_type(content_type: str, filename: str) -> DocumentKind:
    """Guess a document type hint from the content type and filename."""
    lowered = filename.lower()
    if normalize_content_type(content_type).startswith("image/"):
        if "receipt" in lowered:
            return DocumentKind.RECEIPT
        return DocumentKind.PRODUCT_PHOTO
    for keyword in _FILENAME_KEYWORDS:
        if keyword in lowered:
            return DocumentKind(keyword)
    return DocumentKind.OTHER
