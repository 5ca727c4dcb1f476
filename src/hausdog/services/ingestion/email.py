"""Email ingress: turn an inbound-email webhook into Documents.

Each property has an ingest address "<token>@<ingest domain>". When an
email arrives the provider posts a signed webhook. After the signature is
verified and the recipient token routed to a property:

- every attachment with an allowed content type becomes a Document and
  starts a FULL pipeline job;
- the body, if it still has at least 100 characters once HTML and
  forward/reply boilerplate are stripped, becomes one more Document that
  stores the text as extracted_text and starts a RESOLVE_ONLY job.

The HTTP caller acknowledges every webhook, so this service reports what
happened as an EmailIngestOutcome instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from hausdog.errors import ExternalServiceError, HausdogError
from hausdog.models.document import Document, DocumentSource, LinkedToProperty
from hausdog.models.extraction import DocumentKind
from hausdog.models.inventory import PropertyRef
from hausdog.persistence.repositories.documents import DocumentRepository
from hausdog.persistence.repositories.inventory import PropertyDirectory
from hausdog.pipeline.orchestrator import JobVariant, PipelineJob
from hausdog.pipeline.scheduler import Scheduler
from hausdog.services.ingestion.content_types import (
    MAX_ARTIFACT_BYTES,
    infer_document_type,
    is_allowed_content_type,
    resolve_content_type,
    sanitize_filename,
)
from hausdog.services.ingestion.email_provider import AttachmentInfo, EmailProvider
from hausdog.services.ingestion.ingest_token import extract_ingest_token
from hausdog.services.ingestion.signature import verify_webhook_signature
from hausdog.services.ingestion.upload import (
    artifact_key,
    dispatch_job,
    record_document,
    store_and_record,
)
from hausdog.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

INBOUND_EVENT_TYPE = "email.received"
MIN_BODY_CHARS = 100

_SCRIPT_BLOCK = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_BLOCK = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)
_SUBJECT_PREFIXES = re.compile(r"^(?:(?:fw|fwd|re):\s*)+", re.IGNORECASE)
_SEPARATOR_LINES = re.compile(
    r"^-+\s*(?:forwarded message|original message)\s*-+\s*$",
    re.IGNORECASE | re.MULTILINE,
)


def extract_text_from_html(html: str | None) -> str:
    """Strip tags, decode common entities and collapse whitespace."""
    if not html:
        return ""
    text = _SCRIPT_BLOCK.sub("", html)
    text = _STYLE_BLOCK.sub("", text)
    text = _TAG.sub(" ", text)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return _WHITESPACE.sub(" ", text).strip()


def strip_reply_boilerplate(text: str) -> str:
    """Remove fw/fwd/re prefixes and forwarded/original message separators."""
    cleaned = _SUBJECT_PREFIXES.sub("", text.strip())
    cleaned = _SEPARATOR_LINES.sub("", cleaned)
    return cleaned.strip()


def has_substantial_content(text: str) -> bool:
    """True if at least 100 characters remain after stripping boilerplate."""
    return len(strip_reply_boilerplate(text)) >= MIN_BODY_CHARS


class EmailIngestStatus(str, Enum):
    REJECTED = "rejected"
    IGNORED = "ignored"
    UNROUTED = "unrouted"
    PROCESSED = "processed"


@dataclass(frozen=True)
class EmailIngestOutcome:
    """What a webhook delivery produced.

    Attributes:
        status: rejected (bad signature), ignored (not an inbound email),
            unrouted (no property for the token) or processed.
        document_ids: Documents created, attachments first, body last.
        reason: Short explanation for anything but processed.
    """

    status: EmailIngestStatus
    document_ids: tuple[str, ...] = ()
    reason: str | None = None


class EmailIngestService:
    """Handles inbound email webhooks.

    Args:
        repo: Document repository.
        store: Object store for attachment artifacts.
        scheduler: Scheduler that runs the pipeline.
        properties: Resolves ingest tokens to properties.
        provider: Email provider API client; None disables ingest.
        webhook_secret: Shared webhook signing secret; None rejects everything.
    """

    def __init__(
        self,
        repo: DocumentRepository,
        store: ObjectStore,
        scheduler: Scheduler,
        properties: PropertyDirectory,
        provider: EmailProvider | None,
        *,
        webhook_secret: str | None,
    ) -> None:
        self._repo = repo
        self._store = store
        self._scheduler = scheduler
        self._properties = properties
        self._provider = provider
        self._webhook_secret = webhook_secret

    async def handle_webhook(
        self, raw_body: bytes, signature_header: str | None
    ) -> EmailIngestOutcome:
        """Verify, route and ingest one webhook delivery.

        Args:
            raw_body: Request body exactly as received.
            signature_header: Value of the signature header, if present.

        Returns:
            The outcome. Nothing is written unless the status is processed.
        """
        if not verify_webhook_signature(self._webhook_secret, raw_body, signature_header):
            logger.warning("Rejected inbound email webhook: signature verification failed")
            return EmailIngestOutcome(EmailIngestStatus.REJECTED, reason="invalid_signature")

        data = _parse_inbound_event(raw_body)
        if data is None:
            return EmailIngestOutcome(EmailIngestStatus.IGNORED, reason="not_inbound_email")

        email_id = data.get("email_id")
        recipients = data.get("to") or []
        if isinstance(recipients, str):
            recipients = [recipients]
        token = extract_ingest_token(recipients[0] if recipients else None)
        if not email_id or token is None:
            logger.warning("Inbound email webhook without email id or recipient")
            return EmailIngestOutcome(EmailIngestStatus.IGNORED, reason="missing_fields")

        prop = self._properties.find_by_ingest_token(token)
        if prop is None:
            logger.warning("No property for inbound email token")
            return EmailIngestOutcome(EmailIngestStatus.UNROUTED, reason="unknown_token")

        if self._provider is None:
            logger.error("Email provider is not configured; dropping email %s", email_id)
            return EmailIngestOutcome(EmailIngestStatus.IGNORED, reason="provider_not_configured")

        sender = data.get("from")
        logger.info("Inbound email %s routed to property %s", email_id, prop.id)

        created: list[str] = []
        if data.get("attachments"):
            created.extend(await self._ingest_attachments(self._provider, email_id, prop, sender))

        body_document_id = await self._ingest_body(self._provider, email_id, prop, sender)
        if body_document_id is not None:
            created.append(body_document_id)

        return EmailIngestOutcome(EmailIngestStatus.PROCESSED, document_ids=tuple(created))

    async def _ingest_attachments(
        self,
        provider: EmailProvider,
        email_id: str,
        prop: PropertyRef,
        sender: str | None,
    ) -> list[str]:
        try:
            attachments = await provider.list_attachments(email_id)
        except ExternalServiceError as e:
            logger.error("Listing attachments of email %s failed: %s", email_id, e)
            return []

        created: list[str] = []
        for attachment in attachments:
            document_id = await self._ingest_attachment(
                provider, email_id, attachment, prop, sender
            )
            if document_id is not None:
                created.append(document_id)
        return created

    async def _ingest_attachment(
        self,
        provider: EmailProvider,
        email_id: str,
        attachment: AttachmentInfo,
        prop: PropertyRef,
        sender: str | None,
    ) -> str | None:
        content_type = resolve_content_type(attachment.content_type, attachment.filename)
        if not is_allowed_content_type(content_type):
            logger.debug("Skipping attachment with content type %s", content_type or "missing")
            return None

        try:
            data = await provider.fetch_attachment(email_id, attachment.id)
        except ExternalServiceError as e:
            logger.warning("Fetching attachment %s failed: %s", attachment.id, e)
            return None

        if not data or len(data) > MAX_ARTIFACT_BYTES:
            logger.warning("Skipping attachment %s of %d bytes", attachment.id, len(data))
            return None

        filename = sanitize_filename(attachment.filename)
        now = datetime.now(UTC)
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=prop.owner_id,
            link=LinkedToProperty(property_id=prop.id),
            filename=filename,
            storage_path=artifact_key(prop.owner_id, str(uuid.uuid4()), filename),
            content_type=content_type,
            size_bytes=len(data),
            document_type=infer_document_type(content_type, filename),
            source=DocumentSource.EMAIL,
            source_email=sender,
            created_at=now,
            updated_at=now,
        )

        try:
            document = await store_and_record(self._repo, self._store, document, data)
        except HausdogError as e:
            logger.error("Storing attachment %s failed: %s", attachment.id, e)
            return None

        logger.info("Document %s created from email attachment", document.id)
        await dispatch_job(
            self._scheduler,
            PipelineJob(document_id=document.id, owner_id=prop.owner_id, property_id=prop.id),
        )
        return document.id

    async def _ingest_body(
        self,
        provider: EmailProvider,
        email_id: str,
        prop: PropertyRef,
        sender: str | None,
    ) -> str | None:
        try:
            content = await provider.get_email(email_id)
        except ExternalServiceError as e:
            logger.error("Fetching body of email %s failed: %s", email_id, e)
            return None

        text = content.text or extract_text_from_html(content.html)
        body = strip_reply_boilerplate(text)
        if not has_substantial_content(body):
            logger.info("Email %s body too short for a document (%d chars)", email_id, len(body))
            return None

        now = datetime.now(UTC)
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=prop.owner_id,
            link=LinkedToProperty(property_id=prop.id),
            filename=f"email-{int(now.timestamp() * 1000)}.txt",
            storage_path="",
            content_type="text/plain",
            size_bytes=len(body.encode("utf-8")),
            document_type=DocumentKind.EMAIL,
            extracted_text=body,
            source=DocumentSource.EMAIL,
            source_email=sender,
            created_at=now,
            updated_at=now,
        )
        try:
            document = record_document(self._repo, document)
        except HausdogError as e:
            logger.error("Recording body document for email %s failed: %s", email_id, e)
            return None

        logger.info("Document %s created from email body", document.id)
        await dispatch_job(
            self._scheduler,
            PipelineJob(
                document_id=document.id,
                owner_id=prop.owner_id,
                property_id=prop.id,
                variant=JobVariant.RESOLVE_ONLY,
            ),
        )
        return document.id


def _parse_inbound_event(raw_body: bytes) -> dict[str, Any] | None:
    """Return the `data` object of an email.received event, else None."""
    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Inbound email webhook body is not JSON")
        return None
    if not isinstance(payload, dict) or payload.get("type") != INBOUND_EVENT_TYPE:
        logger.debug("Ignoring webhook that is not an %s event", INBOUND_EVENT_TYPE)
        return None
    data = payload.get("data")
    return data if isinstance(data, dict) else None
