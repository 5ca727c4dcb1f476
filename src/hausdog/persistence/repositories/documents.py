"""Document repositories: SQL persistence and in-memory fallback.

Status changes go through `transition`, a conditional update that only
applies while the stored status (and, when given, retry_count) equals the
expected one. This is the only guard against two dispatches racing into the
same pipeline attempt.

Stage writes carry the retry_count the attempt claimed the document with.
Once an abandoned attempt has been reclaimed, the retry_count has moved on
and its late writes are refused with StateError.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import delete, func, insert, select, update

from hausdog.errors import NotFoundError, StateError
from hausdog.models.document import (
    Document,
    DocumentSource,
    ProcessingStatus,
    link_from_ids,
    link_to_ids,
)
from hausdog.models.extraction import DocumentKind, ExtractionResult
from hausdog.models.resolution import ResolutionResult
from hausdog.persistence.db import begin_conn
from hausdog.persistence.schema import documents

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.engine import Row

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


class DocumentRepository(Protocol):
    """Persistence operations the pipeline needs for Document records."""

    def create(self, document: Document) -> Document: ...

    def get(self, document_id: str) -> Document | None: ...

    def list_for_owner(
        self,
        owner_id: str,
        *,
        status: ProcessingStatus | None = None,
        property_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Document]: ...

    def transition(
        self,
        document_id: str,
        *,
        expected: ProcessingStatus,
        target: ProcessingStatus,
        retry_count: int | None,
        processed_at: datetime | None,
        now: datetime,
        expected_retry_count: int | None = None,
    ) -> Document | None: ...

    def set_extracted_data(
        self,
        document_id: str,
        extraction: ExtractionResult,
        *,
        expected_retry_count: int | None = None,
        now: datetime | None = None,
    ) -> Document: ...

    def set_resolve_data(
        self,
        document_id: str,
        resolution: ResolutionResult,
        *,
        expected_retry_count: int | None = None,
        now: datetime | None = None,
    ) -> Document: ...

    def delete(self, document_id: str) -> bool: ...


def _check_stage_write(
    document: Document | None,
    document_id: str,
    stage: str,
    expected_retry_count: int | None,
) -> Document:
    """Stage outputs may only be written by the attempt that holds the document.

    Raises:
        NotFoundError: If the document does not exist.
        StateError: If it is not processing, was reclaimed since the claim,
            or (for resolution) has no extraction result yet.
    """
    if document is None:
        raise NotFoundError("Document not found", document_id=document_id)
    status = document.status.value
    if document.status != ProcessingStatus.PROCESSING:
        raise StateError(
            f"{stage} output can only be stored while processing",
            current=status,
            target=status,
            document_id=document_id,
        )
    if expected_retry_count is not None and document.retry_count != expected_retry_count:
        raise StateError(
            f"{stage} output belongs to a superseded attempt "
            f"(retry_count {expected_retry_count}, now {document.retry_count})",
            current=status,
            target=status,
            document_id=document_id,
        )
    if stage == "Resolution" and document.extracted_data is None:
        raise StateError(
            "Resolution output requires a stored extraction result",
            current=status,
            target=status,
            document_id=document_id,
        )
    return document


def _text_from_extraction(extraction: ExtractionResult) -> str | None:
    return extraction.raw_text.strip() or None


class InMemoryDocumentRepository:
    """Thread-safe in-memory repository used in tests and when no database is set."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()

    def create(self, document: Document) -> Document:
        with self._lock:
            if document.id in self._documents:
                raise StateError(
                    "Document already exists",
                    current=self._documents[document.id].status.value,
                    target=document.status.value,
                    document_id=document.id,
                )
            self._documents[document.id] = document
        return document

    def get(self, document_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def list_for_owner(
        self,
        owner_id: str,
        *,
        status: ProcessingStatus | None = None,
        property_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Document]:
        with self._lock:
            found = [
                d
                for d in self._documents.values()
                if d.owner_id == owner_id
                and (status is None or d.status == status)
                and (property_id is None or d.property_id == property_id)
            ]
        found.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return found[:limit]

    def transition(
        self,
        document_id: str,
        *,
        expected: ProcessingStatus,
        target: ProcessingStatus,
        retry_count: int | None,
        processed_at: datetime | None,
        now: datetime,
        expected_retry_count: int | None = None,
    ) -> Document | None:
        with self._lock:
            current = self._documents.get(document_id)
            if current is None or current.status != expected:
                return None
            if expected_retry_count is not None and current.retry_count != expected_retry_count:
                return None
            changes: dict[str, Any] = {
                "status": target,
                "processed_at": processed_at,
                "updated_at": now,
            }
            if retry_count is not None:
                changes["retry_count"] = retry_count
            updated = current.model_copy(update=changes)
            self._documents[document_id] = updated
            return updated

    def set_extracted_data(
        self,
        document_id: str,
        extraction: ExtractionResult,
        *,
        expected_retry_count: int | None = None,
        now: datetime | None = None,
    ) -> Document:
        with self._lock:
            current = _check_stage_write(
                self._documents.get(document_id), document_id, "Extraction", expected_retry_count
            )
            updated = current.model_copy(
                update={
                    "extracted_data": extraction,
                    "extracted_text": current.extracted_text or _text_from_extraction(extraction),
                    "updated_at": now or datetime.now(UTC),
                }
            )
            self._documents[document_id] = updated
            return updated

    def set_resolve_data(
        self,
        document_id: str,
        resolution: ResolutionResult,
        *,
        expected_retry_count: int | None = None,
        now: datetime | None = None,
    ) -> Document:
        with self._lock:
            current = _check_stage_write(
                self._documents.get(document_id), document_id, "Resolution", expected_retry_count
            )
            updated = current.model_copy(
                update={"resolve_data": resolution, "updated_at": now or datetime.now(UTC)}
            )
            self._documents[document_id] = updated
            return updated

    def delete(self, document_id: str) -> bool:
        with self._lock:
            return self._documents.pop(document_id, None) is not None


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite returns naive datetimes; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _row_to_document(row: Row[Any]) -> Document:
    """Convert a documents row to a Document."""
    data = row._mapping
    return Document(
        id=data["id"],
        owner_id=data["owner_id"],
        link=link_from_ids(data["property_id"], data["system_id"], data["component_id"]),
        filename=data["filename"],
        storage_path=data["storage_path"] or "",
        content_type=data["content_type"],
        size_bytes=data["size_bytes"],
        document_type=DocumentKind(data["document_type"]),
        extracted_text=data["extracted_text"],
        extracted_data=(
            ExtractionResult.from_record(data["extracted_data"])
            if data["extracted_data"] is not None
            else None
        ),
        resolve_data=(
            ResolutionResult.from_record(data["resolve_data"])
            if data["resolve_data"] is not None
            else None
        ),
        status=ProcessingStatus(data["status"]),
        retry_count=data["retry_count"],
        processed_at=_as_utc(data["processed_at"]),
        source=DocumentSource(data["source"]),
        source_email=data["source_email"],
        created_at=_as_utc(data["created_at"]),
        updated_at=_as_utc(data["updated_at"]),
    )


class SqlDocumentRepository:
    """Document repository over a SQLAlchemy engine.

    Each call runs in its own short transaction. The JSON stage columns are
    declared with none_as_null, so an absent stage output is SQL NULL and the
    `extracted_data IS NOT NULL` guard on resolution writes is meaningful.

    Args:
        engine: SQLAlchemy engine with the documents table migrated.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def create(self, document: Document) -> Document:
        property_id, system_id, component_id = link_to_ids(document.link)
        with begin_conn(self._engine) as conn:
            conn.execute(
                insert(documents).values(
                    id=document.id,
                    owner_id=document.owner_id,
                    property_id=property_id,
                    system_id=system_id,
                    component_id=component_id,
                    filename=document.filename,
                    storage_path=document.storage_path,
                    content_type=document.content_type,
                    size_bytes=document.size_bytes,
                    document_type=document.document_type.value,
                    extracted_text=document.extracted_text,
                    extracted_data=(
                        document.extracted_data.to_record() if document.extracted_data else None
                    ),
                    resolve_data=(
                        document.resolve_data.to_record() if document.resolve_data else None
                    ),
                    status=document.status.value,
                    retry_count=document.retry_count,
                    processed_at=document.processed_at,
                    source=document.source.value,
                    source_email=document.source_email,
                    created_at=document.created_at,
                    updated_at=document.updated_at,
                )
            )
        return document

    def get(self, document_id: str) -> Document | None:
        with self._engine.connect() as conn:
            row = conn.execute(select(documents).where(documents.c.id == document_id)).fetchone()
        if row is None:
            return None
        return _row_to_document(row)

    def list_for_owner(
        self,
        owner_id: str,
        *,
        status: ProcessingStatus | None = None,
        property_id: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[Document]:
        query = select(documents).where(documents.c.owner_id == owner_id)
        if status is not None:
            query = query.where(documents.c.status == status.value)
        if property_id is not None:
            query = query.where(documents.c.property_id == property_id)
        query = query.order_by(documents.c.created_at.desc(), documents.c.id.desc()).limit(limit)
        with self._engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_document(row) for row in rows]

    def transition(
        self,
        document_id: str,
        *,
        expected: ProcessingStatus,
        target: ProcessingStatus,
        retry_count: int | None,
        processed_at: datetime | None,
        now: datetime,
        expected_retry_count: int | None = None,
    ) -> Document | None:
        values: dict[str, Any] = {
            "status": target.value,
            "processed_at": processed_at,
            "updated_at": now,
        }
        if retry_count is not None:
            values["retry_count"] = retry_count

        query = (
            update(documents)
            .where(documents.c.id == document_id)
            .where(documents.c.status == expected.value)
            .values(**values)
        )
        if expected_retry_count is not None:
            query = query.where(documents.c.retry_count == expected_retry_count)

        with begin_conn(self._engine) as conn:
            result = conn.execute(query)
            if result.rowcount != 1:
                return None
            row = conn.execute(select(documents).where(documents.c.id == document_id)).fetchone()
        return _row_to_document(row) if row is not None else None

    def _write_stage_output(
        self,
        document_id: str,
        values: dict[str, Any],
        stage: str,
        expected_retry_count: int | None,
    ) -> Document:
        query = (
            update(documents)
            .where(documents.c.id == document_id)
            .where(documents.c.status == ProcessingStatus.PROCESSING.value)
            .values(values)
        )
        if expected_retry_count is not None:
            query = query.where(documents.c.retry_count == expected_retry_count)
        if stage == "Resolution":
            query = query.where(documents.c.extracted_data.is_not(None))

        with begin_conn(self._engine) as conn:
            result = conn.execute(query)
            row = conn.execute(select(documents).where(documents.c.id == document_id)).fetchone()

        current = _row_to_document(row) if row is not None else None
        if result.rowcount == 1 and current is not None:
            return current
        _check_stage_write(current, document_id, stage, expected_retry_count)
        raise StateError(
            f"{stage} output was not stored",
            current=ProcessingStatus.PROCESSING.value,
            target=ProcessingStatus.PROCESSING.value,
            document_id=document_id,
        )

    def set_extracted_data(
        self,
        document_id: str,
        extraction: ExtractionResult,
        *,
        expected_retry_count: int | None = None,
        now: datetime | None = None,
    ) -> Document:
        values = {
            "extracted_data": extraction.to_record(),
            "extracted_text": func.coalesce(
                documents.c.extracted_text, _text_from_extraction(extraction)
            ),
            "updated_at": now or datetime.now(UTC),
        }
        return self._write_stage_output(document_id, values, "Extraction", expected_retry_count)

    def set_resolve_data(
        self,
        document_id: str,
        resolution: ResolutionResult,
        *,
        expected_retry_count: int | None = None,
        now: datetime | None = None,
    ) -> Document:
        values = {"resolve_data": resolution.to_record(), "updated_at": now or datetime.now(UTC)}
        return self._write_stage_output(document_id, values, "Resolution", expected_retry_count)

    def delete(self, document_id: str) -> bool:
        with begin_conn(self._engine) as conn:
            result = conn.execute(delete(documents).where(documents.c.id == document_id))
        return result.rowcount == 1
