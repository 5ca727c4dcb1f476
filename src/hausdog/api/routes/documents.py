"""Document routes for the Hausdog API.

- POST   /v1/documents                 upload an artifact (multipart)
- GET    /v1/documents                 list the caller's documents
- GET    /v1/documents/{id}            fetch one document
- GET    /v1/documents/{id}/review     proposal for a ready_for_review document
- POST   /v1/documents/{id}/confirm    accept the proposal
- POST   /v1/documents/{id}/discard    reject the proposal
- PATCH  /v1/documents/{id}/status     apply a status transition
- DELETE /v1/documents/{id}            delete record and artifact
- POST   /v1/documents/signed-url      time-limited artifact download link

Every endpoint is scoped to the owner resolved from the API key.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, File, Form, Query, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from hausdog.api.auth import RequireOwner
from hausdog.api.dependencies import Context
from hausdog.models.document import Document, ProcessingStatus
from hausdog.persistence.repositories.documents import DEFAULT_LIST_LIMIT
from hausdog.services.ingestion.content_types import MAX_ARTIFACT_BYTES
from hausdog.services.ingestion.upload import UploadRequest
from hausdog.services.review.gate import ReviewProposal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/documents", tags=["Documents"])

MAX_LIMIT = 500


class DocumentList(BaseModel):
    items: list[Document]


class StatusUpdateRequest(BaseModel):
    """Body for PATCH /v1/documents/{id}/status."""

    model_config = ConfigDict(extra="forbid")

    status: ProcessingStatus
    retry_count: Annotated[int | None, Field(default=None, ge=0)] = None


class SignedUrlRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    storage_path: Annotated[str, Field(min_length=1)]


class SignedUrlResponse(BaseModel):
    signed_url: str
    expires_in: int


@router.post("", response_model=Document, status_code=201)
async def upload_document(
    owner: RequireOwner,
    context: Context,
    file: Annotated[UploadFile, File()],
    property_id: Annotated[str | None, Form()] = None,
    system_id: Annotated[str | None, Form()] = None,
    component_id: Annotated[str | None, Form()] = None,
) -> Document:
    """Upload an artifact and start the pipeline.

    The response is the pending document; processing continues asynchronously
    on the configured scheduler. At most one byte past the size cap is read
    so an oversized body is rejected without buffering all of it.
    """
    data = await file.read(MAX_ARTIFACT_BYTES + 1)
    return await context.uploads.upload(
        UploadRequest(
            owner_id=owner.owner_id,
            filename=file.filename or "upload",
            content_type=file.content_type or "",
            data=data,
            property_id=property_id,
            system_id=system_id,
            component_id=component_id,
        )
    )


@router.get("", response_model=DocumentList)
def list_documents(
    owner: RequireOwner,
    context: Context,
    status: ProcessingStatus | None = None,
    property_id: str | None = None,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIST_LIMIT,
) -> DocumentList:
    items = context.review.list_documents(
        owner.owner_id, status=status, property_id=property_id, limit=limit
    )
    return DocumentList(items=items)


@router.post("/signed-url", response_model=SignedUrlResponse)
def create_signed_url(
    body: SignedUrlRequest, owner: RequireOwner, context: Context
) -> SignedUrlResponse:
    signed = context.artifacts.signed_url(owner.owner_id, body.storage_path)
    return SignedUrlResponse(signed_url=signed.signed_url, expires_in=signed.expires_in)


@router.get("/{document_id}", response_model=Document)
def get_document(document_id: str, owner: RequireOwner, context: Context) -> Document:
    return context.review.get_document(owner.owner_id, document_id)


@router.get("/{document_id}/review", response_model=ReviewProposal)
def get_review(document_id: str, owner: RequireOwner, context: Context) -> ReviewProposal:
    """Proposal for the owner to confirm or discard. 409 unless ready_for_review."""
    return context.review.proposal(owner.owner_id, document_id)


@router.post("/{document_id}/confirm", response_model=Document)
def confirm_document(document_id: str, owner: RequireOwner, context: Context) -> Document:
    return context.review.confirm(owner.owner_id, document_id)


@router.post("/{document_id}/discard", response_model=Document)
def discard_document(document_id: str, owner: RequireOwner, context: Context) -> Document:
    return context.review.discard(owner.owner_id, document_id)


@router.patch("/{document_id}/status", response_model=Document)
def update_status(
    document_id: str,
    body: StatusUpdateRequest,
    owner: RequireOwner,
    context: Context,
) -> Document:
    return context.review.update_status(
        owner.owner_id, document_id, body.status, retry_count=body.retry_count
    )


@router.delete("/{document_id}", status_code=204)
def delete_document(document_id: str, owner: RequireOwner, context: Context) -> Response:
    context.review.delete(owner.owner_id, document_id)
    return Response(status_code=204)
