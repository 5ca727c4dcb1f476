"""Inbound email provider client (Resend REST API).

The webhook carries only metadata; attachment bytes and the message body
are fetched with follow-up API calls.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from hausdog.errors import ConfigError, ExternalServiceError

logger = logging.getLogger(__name__)

RESEND_API_BASE = "https://api.resend.com"
REQUEST_TIMEOUT_SECONDS = 30.0
SERVICE_NAME = "resend"


@dataclass(frozen=True)
class AttachmentInfo:
    """Attachment metadata as listed by the provider."""

    id: str
    filename: str
    content_type: str
    size: int


@dataclass(frozen=True)
class EmailContent:
    """Body of a received email. Either part may be missing."""

    text: str | None = None
    html: str | None = None


class EmailProvider(Protocol):
    """Follow-up calls the email ingress needs."""

    async def list_attachments(self, email_id: str) -> list[AttachmentInfo]: ...

    async def fetch_attachment(self, email_id: str, attachment_id: str) -> bytes: ...

    async def get_email(self, email_id: str) -> EmailContent: ...


class ResendClient:
    """Async Resend API client with Bearer authentication.

    Args:
        api_key: Resend API key. Fail-closed if empty.
        client: Optional httpx.AsyncClient (tests use a MockTransport).
        base_url: API base URL override.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = RESEND_API_BASE,
    ) -> None:
        if not api_key:
            raise ConfigError("RESEND_API_KEY environment variable is required for email ingest")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)

    async def _get_json(self, path: str) -> dict[str, Any]:
        try:
            response = await self._client.get(
                f"{self._base_url}{path}",
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"Resend request failed: {type(e).__name__}", service=SERVICE_NAME, cause=e
            ) from e

        if response.is_error:
            raise ExternalServiceError(
                f"Resend API error: HTTP {response.status_code}", service=SERVICE_NAME
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                "Resend response is not JSON", service=SERVICE_NAME, cause=e
            ) from e
        if not isinstance(payload, dict):
            raise ExternalServiceError("Resend response is not an object", service=SERVICE_NAME)
        return payload

    async def list_attachments(self, email_id: str) -> list[AttachmentInfo]:
        payload = await self._get_json(f"/emails/{email_id}/attachments")
        entries = payload.get("data") or []
        return [
            AttachmentInfo(
                id=str(entry["id"]),
                filename=str(entry.get("filename") or "attachment"),
                content_type=str(entry.get("content_type") or ""),
                size=int(entry.get("size") or 0),
            )
            for entry in entries
            if isinstance(entry, dict) and entry.get("id")
        ]

    async def fetch_attachment(self, email_id: str, attachment_id: str) -> bytes:
        """Download one attachment.

        Raises:
            ExternalServiceError: On API failure or undecodable content.
        """
        payload = await self._get_json(f"/emails/{email_id}/attachments/{attachment_id}")
        content = (payload.get("data") or {}).get("content")
        if not isinstance(content, str):
            raise ExternalServiceError("Attachment has no content", service=SERVICE_NAME)
        try:
            return base64.b64decode(content)
        except (binascii.Error, ValueError) as e:
            raise ExternalServiceError(
                "Attachment content is not valid base64", service=SERVICE_NAME, cause=e
            ) from e

    async def get_email(self, email_id: str) -> EmailContent:
        payload = await self._get_json(f"/emails/{email_id}")
        return EmailContent(text=payload.get("text") or None, html=payload.get("html") or None)

    async def aclose(self) -> None:
        await self._client.aclose()
