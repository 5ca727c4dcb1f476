"""Tests for inbound email ingress."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from hausdog.models.document import DocumentSource, ProcessingStatus
from hausdog.models.extraction import DocumentKind
from hausdog.pipeline.orchestrator import JobVariant
from hausdog.services.ingestion.email import (
    EmailIngestService,
    EmailIngestStatus,
    extract_text_from_html,
    has_substantial_content,
    strip_reply_boilerplate,
)
from hausdog.services.ingestion.email_provider import AttachmentInfo, EmailContent
from hausdog.services.ingestion.signature import build_signature_header
from tests.fixtures.pipeline import (
    INGEST_TOKEN,
    JPEG_BYTES,
    OWNER_ID,
    PROPERTY_ID,
    SHORT_BODY,
    WEBHOOK_SECRET,
    FakeEmailProvider,
)

LONG_BODY = (
    "Hi, this confirms your annual furnace maintenance visit on March 3rd. "
    "The technician replaced the filter and checked the heat exchanger."
)
TIMESTAMP = 1767225600


def _event(
    *,
    to: Any = None,
    attachments: list[dict[str, Any]] | None = None,
    event_type: str = "email.received",
) -> bytes:
    return json.dumps(
        {
            "type": event_type,
            "data": {
                "email_id": "em_123",
                "from": "Owner <owner@example.com>",
                "to": to if to is not None else [f"{INGEST_TOKEN}@ingest.hausdog.app"],
                "subject": "Fwd: furnace",
                "attachments": attachments or [],
            },
        }
    ).encode()


def _signed(body: bytes) -> str:
    return build_signature_header(WEBHOOK_SECRET, TIMESTAMP, body)


def _service(repo, store, scheduler, inventory, provider, secret=WEBHOOK_SECRET):
    return EmailIngestService(
        repo, store, scheduler, inventory, provider, webhook_secret=secret
    )


def _attachment(attachment_id: str, filename: str, content_type: str) -> AttachmentInfo:
    return AttachmentInfo(
        id=attachment_id, filename=filename, content_type=content_type, size=len(JPEG_BYTES)
    )


class TestEmailIngestRouting:
    """Signature, event type and token routing gate everything else."""

    def test_bad_signature_is_rejected(self, repo, store, scheduler, inventory) -> None:
        provider = FakeEmailProvider(content=EmailContent(text=LONG_BODY))
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event()

        outcome = asyncio.run(service.handle_webhook(body, "v1,1767225600 deadbeef"))

        assert outcome.status == EmailIngestStatus.REJECTED
        assert repo.list_for_owner(OWNER_ID) == []
        assert scheduler.jobs == []

    def test_unconfigured_secret_rejects(self, repo, store, scheduler, inventory) -> None:
        service = _service(repo, store, scheduler, inventory, FakeEmailProvider(), secret=None)
        body = _event()
        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))
        assert outcome.status == EmailIngestStatus.REJECTED

    def test_other_event_types_are_ignored(self, repo, store, scheduler, inventory) -> None:
        service = _service(repo, store, scheduler, inventory, FakeEmailProvider())
        body = _event(event_type="email.delivered")
        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))
        assert outcome.status == EmailIngestStatus.IGNORED

    def test_unknown_token_is_unrouted(self, repo, store, scheduler, inventory) -> None:
        """Scenario: email to an address no property owns creates nothing."""
        provider = FakeEmailProvider(content=EmailContent(text=LONG_BODY))
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(to=["nobody-000000@ingest.hausdog.app"])

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert outcome.status == EmailIngestStatus.UNROUTED
        assert outcome.document_ids == ()
        assert repo.list_for_owner(OWNER_ID) == []

    def test_display_name_recipient(self, repo, store, scheduler, inventory) -> None:
        provider = FakeEmailProvider(content=EmailContent(text=LONG_BODY))
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(to=f"Main St <{INGEST_TOKEN.upper()}@ingest.hausdog.app>")

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert outcome.status == EmailIngestStatus.PROCESSED

    def test_missing_provider(self, repo, store, scheduler, inventory) -> None:
        service = _service(repo, store, scheduler, inventory, None)
        body = _event()
        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))
        assert outcome.status == EmailIngestStatus.IGNORED
        assert outcome.reason == "provider_not_configured"


class TestEmailIngestDocuments:
    """Attachments and the body become documents on the routed property."""

    def test_attachments_and_body(self, repo, store, scheduler, inventory) -> None:
        """Scenario: two allowed attachments, one refused type, and a long body."""
        provider = FakeEmailProvider(
            attachments=[
                _attachment("att-1", "receipt.jpg", "image/jpeg"),
                _attachment("att-2", "notes.txt", "text/plain"),
                _attachment("att-3", "manual.pdf", "application/pdf"),
            ],
            payloads={"att-1": JPEG_BYTES, "att-2": b"notes", "att-3": b"%PDF-1.7"},
            content=EmailContent(text=f"Fwd: {LONG_BODY}"),
        )
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(attachments=[{"id": "att-1"}, {"id": "att-2"}, {"id": "att-3"}])

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert outcome.status == EmailIngestStatus.PROCESSED
        assert len(outcome.document_ids) == 3
        assert "att-2" not in provider.fetched

        receipt, manual, email_body = (repo.get(i) for i in outcome.document_ids)
        for document in (receipt, manual, email_body):
            assert document.owner_id == OWNER_ID
            assert document.property_id == PROPERTY_ID
            assert document.source == DocumentSource.EMAIL
            assert document.source_email == "Owner <owner@example.com>"
            assert document.status == ProcessingStatus.PENDING

        assert receipt.document_type == DocumentKind.RECEIPT
        assert store.get(receipt.storage_path).body == JPEG_BYTES
        assert manual.document_type == DocumentKind.MANUAL
        assert email_body.document_type == DocumentKind.EMAIL
        assert email_body.content_type == "text/plain"
        assert email_body.storage_path == ""
        assert email_body.filename.startswith("email-")

        variants = [job.variant for job in scheduler.jobs]
        assert variants == [JobVariant.FULL, JobVariant.FULL, JobVariant.RESOLVE_ONLY]
        assert email_body.extracted_text == LONG_BODY
        assert receipt.extracted_text is None

    def test_short_body_is_not_a_document(self, repo, store, scheduler, inventory) -> None:
        """Scenario: one attachment and a body of only a few words."""
        provider = FakeEmailProvider(
            attachments=[_attachment("att-1", "plate.jpg", "image/jpeg")],
            payloads={"att-1": JPEG_BYTES},
            content=EmailContent(text=SHORT_BODY),
        )
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(attachments=[{"id": "att-1"}])

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert outcome.status == EmailIngestStatus.PROCESSED
        assert len(outcome.document_ids) == 1
        assert [job.variant for job in scheduler.jobs] == [JobVariant.FULL]

    def test_html_only_body(self, repo, store, scheduler, inventory) -> None:
        html = f"<html><style>p {{color: red}}</style><body><p>{LONG_BODY}</p></body></html>"
        provider = FakeEmailProvider(content=EmailContent(html=html))
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event()

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert len(outcome.document_ids) == 1
        assert scheduler.jobs[0].variant == JobVariant.RESOLVE_ONLY
        assert repo.get(outcome.document_ids[0]).extracted_text == LONG_BODY

    def test_failed_attachment_is_skipped(self, repo, store, scheduler, inventory) -> None:
        provider = FakeEmailProvider(
            attachments=[
                _attachment("att-1", "a.jpg", "image/jpeg"),
                _attachment("att-2", "b.jpg", "image/jpeg"),
            ],
            payloads={"att-2": JPEG_BYTES},
            failing=frozenset({"att-1"}),
        )
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(attachments=[{"id": "att-1"}, {"id": "att-2"}])

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert outcome.status == EmailIngestStatus.PROCESSED
        assert len(outcome.document_ids) == 1
        assert repo.get(outcome.document_ids[0]).filename == "b.jpg"

    def test_generic_attachment_type_uses_extension(
        self, repo, store, scheduler, inventory
    ) -> None:
        provider = FakeEmailProvider(
            attachments=[
                _attachment("att-1", "IMG_0042.HEIC", "application/octet-stream"),
                _attachment("att-2", "scan.bin", "application/octet-stream"),
            ],
            payloads={"att-1": JPEG_BYTES, "att-2": JPEG_BYTES},
        )
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(attachments=[{"id": "att-1"}, {"id": "att-2"}])

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert len(outcome.document_ids) == 1
        assert repo.get(outcome.document_ids[0]).content_type == "image/heic"
        assert "att-2" not in provider.fetched

    def test_provider_outage_still_processed(self, repo, store, scheduler, inventory) -> None:
        provider = FakeEmailProvider(failing=frozenset({"list", "body"}))
        service = _service(repo, store, scheduler, inventory, provider)
        body = _event(attachments=[{"id": "att-1"}])

        outcome = asyncio.run(service.handle_webhook(body, _signed(body)))

        assert outcome.status == EmailIngestStatus.PROCESSED
        assert outcome.document_ids == ()


class TestBodyHelpers:
    def test_extract_text_from_html(self) -> None:
        html = "<div>Filter&nbsp;size: 16x25 &amp; MERV&nbsp;8<script>x()</script></div>"
        assert extract_text_from_html(html) == "Filter size: 16x25 & MERV 8"

    def test_extract_text_from_empty_html(self) -> None:
        assert extract_text_from_html(None) == ""

    def test_strip_reply_boilerplate(self) -> None:
        text = "Fwd: Re: ---------- Forwarded message ----------\nInvoice attached"
        assert strip_reply_boilerplate(text) == "Invoice attached"

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("x" * 99, False), ("x" * 100, True), ("Fwd: " + "x" * 97, False)],
    )
    def test_substantial_content_threshold(self, text: str, expected: bool) -> None:
        assert has_substantial_content(text) is expected
