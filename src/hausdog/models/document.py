"""Document model: one record per ingested artifact.

A Document is created by ingress in status PENDING and carried through the
pipeline state machine. Each stage owns disjoint fields:

- ingress: identity, link, artifact descriptors, source, and extracted_text
  for email bodies
- extraction stage: extracted_data, and extracted_text when ingress left it
  empty
- resolution stage: resolve_data
- orchestrator and review gate: status, retry_count, processed_at
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hausdog import errors
from hausdog.models.extraction import DocumentKind, ExtractionResult
from hausdog.models.resolution import ResolutionResult


class ProcessingStatus(str, Enum):
    """Pipeline status of a document."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY_FOR_REVIEW = "ready_for_review"
    CONFIRMED = "confirmed"
    DISCARDED = "discarded"
    FAILED = "failed"


PROCESSED_STATUSES = frozenset(
    {
        ProcessingStatus.READY_FOR_REVIEW,
        ProcessingStatus.CONFIRMED,
        ProcessingStatus.DISCARDED,
    }
)


class DocumentSource(str, Enum):
    """Ingress path that created the document."""

    UPLOAD = "upload"
    EMAIL = "email"


class Unlinked(BaseModel):
    """Document not yet attached to anything."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unlinked"] = "unlinked"


class LinkedToProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["property"] = "property"
    property_id: str


class LinkedToSystem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["system"] = "system"
    system_id: str


class LinkedToComponent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["component"] = "component"
    component_id: str


DocumentLink = Annotated[
    Unlinked | LinkedToProperty | LinkedToSystem | LinkedToComponent,
    Field(discriminator="kind"),
]


def link_from_ids(
    property_id: str | None = None,
    system_id: str | None = None,
    component_id: str | None = None,
) -> DocumentLink:
    """Build a link from the three optional foreign keys.

    Raises:
        ValidationError: If more than one id is given.
    """
    given = [
        (name, value)
        for name, value in (
            ("property_id", property_id),
            ("system_id", system_id),
            ("component_id", component_id),
        )
        if value
    ]
    if len(given) > 1:
        raise errors.ValidationError(
            "A document may link to at most one of property, system or component",
            field=",".join(name for name, _ in given),
            reason="ambiguous_link",
        )
    if property_id:
        return LinkedToProperty(property_id=property_id)
    if system_id:
        return LinkedToSystem(system_id=system_id)
    if component_id:
        return LinkedToComponent(component_id=component_id)
    return Unlinked()


def link_to_ids(link: DocumentLink) -> tuple[str | None, str | None, str | None]:
    """Flatten a link into (property_id, system_id, component_id) columns."""
    if isinstance(link, LinkedToProperty):
        return link.property_id, None, None
    if isinstance(link, LinkedToSystem):
        return None, link.system_id, None
    if isinstance(link, LinkedToComponent):
        return None, None, link.component_id
    return None, None, None


class Document(BaseModel):
    """Ingested artifact and its pipeline state.

    Attributes:
        id: Document identifier (UUID string).
        owner_id: Owning user.
        link: Property, system, component or nothing.
        filename: Original filename.
        storage_path: Object store key, empty for documents without an artifact.
        content_type: MIME type of the artifact.
        size_bytes: Artifact size.
        document_type: Type hint inferred at ingress.
        extracted_text: Plain text of the document. Email bodies carry it from
            ingress and are resolved from it; artifacts get the extraction
            stage's raw text.
        extracted_data: Extraction stage output.
        resolve_data: Resolution stage output.
        status: Pipeline status.
        retry_count: Failed attempts so far; never decreases.
        processed_at: Set when the pipeline finished; kept through review.
        source: Ingress path.
        source_email: Sender address for email-originated documents.
        created_at: Record creation timestamp.
        updated_at: Last mutation timestamp.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    link: DocumentLink = Field(default_factory=Unlinked)
    filename: str
    storage_path: str = ""
    content_type: str
    size_bytes: Annotated[int, Field(ge=0)]
    document_type: DocumentKind = DocumentKind.OTHER
    extracted_text: str | None = None
    extracted_data: ExtractionResult | None = None
    resolve_data: ResolutionResult | None = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    retry_count: Annotated[int, Field(ge=0)] = 0
    processed_at: datetime | None = None
    source: DocumentSource = DocumentSource.UPLOAD
    source_email: str | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_lifecycle_invariants(self) -> Document:
        if self.resolve_data is not None and self.extracted_data is None:
            raise ValueError("resolve_data cannot be set before extracted_data")
        processed = self.status in PROCESSED_STATUSES
        if processed and self.processed_at is None:
            raise ValueError(f"processed_at is required in status {self.status.value}")
        if not processed and self.processed_at is not None:
            raise ValueError(f"processed_at must be empty in status {self.status.value}")
        return self

    @property
    def property_id(self) -> str | None:
        if isinstance(self.link, LinkedToProperty):
            return self.link.property_id
        return None

    @property
    def has_artifact(self) -> bool:
        return bool(self.storage_path)
