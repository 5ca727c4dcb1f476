"""Ingress paths that create Documents: direct upload and inbound email."""

from hausdog.services.ingestion.email import (
    EmailIngestOutcome,
    EmailIngestService,
    EmailIngestStatus,
    extract_text_from_html,
    has_substantial_content,
    strip_reply_boilerplate,
)
from hausdog.services.ingestion.email_provider import (
    AttachmentInfo,
    EmailContent,
    EmailProvider,
    ResendClient,
)
from hausdog.services.ingestion.ingest_token import (
    build_ingest_address,
    extract_ingest_token,
    generate_ingest_token,
)
from hausdog.services.ingestion.upload import UploadRequest, UploadService

__all__ = [
    "AttachmentInfo",
    "EmailContent",
    "EmailIngestOutcome",
    "EmailIngestService",
    "EmailIngestStatus",
    "EmailProvider",
    "ResendClient",
    "UploadRequest",
    "UploadService",
    "build_ingest_address",
    "extract_ingest_token",
    "extract_text_from_html",
    "generate_ingest_token",
    "has_substantial_content",
    "strip_reply_boilerplate",
]
