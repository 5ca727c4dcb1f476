"""Hausdog error types.

Every failure raised by the pipeline carries one of five kinds so callers can
decide what to do without inspecting messages:

- ValidationError: bad input shape, size or type. Never retried.
- AuthorizationError: the caller does not own the resource.
- NotFoundError: missing document or property.
- ExternalServiceError: a model, storage or provider call failed or returned
  output that could not be parsed. The orchestrator converts these into a
  status regression with retry bookkeeping.
- StateError: an illegal status transition was attempted.
"""

from __future__ import annotations

from typing import Any


class HausdogError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message.
        owner_id: Owner associated with the operation (if applicable).
        document_id: Document associated with the operation (if applicable).
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        owner_id: str | None = None,
        document_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.owner_id = owner_id
        self.document_id = document_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.owner_id:
            parts.append(f"owner_id={self.owner_id}")
        if self.document_id:
            parts.append(f"document_id={self.document_id}")
        return " ".join(parts)

    def to_details(self) -> dict[str, Any]:
        """Return safe, client-visible context for error envelopes."""
        details: dict[str, Any] = {}
        if self.document_id:
            details["document_id"] = self.document_id
        return details


class ValidationError(HausdogError):
    """Raised when input fails validation (content type, size, shape).

    Attributes:
        field: Name of the offending input field, if known.
        reason: Short machine-readable reason code.
    """

    kind = "validation"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        reason: str = "invalid",
        owner_id: str | None = None,
        document_id: str | None = None,
    ) -> None:
        super().__init__(message, owner_id=owner_id, document_id=document_id)
        self.field = field
        self.reason = reason

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        details["reason"] = self.reason
        if self.field:
            details["field"] = self.field
        return details


class AuthorizationError(HausdogError):
    """Raised when the caller does not own the requested resource."""

    kind = "authorization"


class NotFoundError(HausdogError):
    """Raised when a document or property does not exist."""

    kind = "not_found"

    def __init__(
        self,
        message: str = "Resource not found",
        *,
        resource: str = "document",
        owner_id: str | None = None,
        document_id: str | None = None,
    ) -> None:
        super().__init__(message, owner_id=owner_id, document_id=document_id)
        self.resource = resource

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        details["resource"] = self.resource
        return details


class ExternalServiceError(HausdogError):
    """Raised when a model, storage or provider call fails.

    Also raised when a model answers with output that cannot be parsed into
    the expected structure. Extraction and resolution are all-or-nothing, so
    a partial result is never substituted.

    Attributes:
        service: Name of the failing collaborator (e.g. "gemini", "storage").
        cause: Underlying exception, if any.
    """

    kind = "external_service"

    def __init__(
        self,
        message: str,
        *,
        service: str,
        cause: Exception | None = None,
        owner_id: str | None = None,
        document_id: str | None = None,
    ) -> None:
        super().__init__(message, owner_id=owner_id, document_id=document_id)
        self.service = service
        self.cause = cause

    def __str__(self) -> str:
        return f"{super().__str__()} service={self.service}"

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        details["service"] = self.service
        return details


class StateError(HausdogError):
    """Raised when a status transition is not in the transition table.

    Attributes:
        current: Status the document was in.
        target: Status that was requested.
    """

    kind = "state"

    def __init__(
        self,
        message: str | None = None,
        *,
        current: str,
        target: str,
        owner_id: str | None = None,
        document_id: str | None = None,
    ) -> None:
        super().__init__(
            message or f"Illegal transition {current} -> {target}",
            owner_id=owner_id,
            document_id=document_id,
        )
        self.current = current
        self.target = target

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        details["current_status"] = self.current
        details["target_status"] = self.target
        return details


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid.

    This is a fail-closed error: a backend that needs a setting refuses to
    start without it.
    """

    pass
