"""SQLAlchemy Core table definitions.

`documents` is owned by the pipeline. `properties` and `items` belong to the
CRUD side of the application and are only read here.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

PROCESSING_STATUS_VALUES = (
    "pending",
    "processing",
    "ready_for_review",
    "confirmed",
    "discarded",
    "failed",
)

properties = Table(
    "properties",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", String(64), nullable=False),
    Column("name", Text, nullable=False),
    Column("ingest_token", String(64), unique=True),
)

items = Table(
    "items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("property_id", String(36), ForeignKey("properties.id"), nullable=False),
    Column("name", Text, nullable=False),
    Column("manufacturer", Text),
    Column("model", Text),
    Column("category", String(32)),
    Column("notes", Text),
    Index("idx_items_property", "property_id"),
)

documents = Table(
    "documents",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", String(64), nullable=False),
    Column("property_id", String(36)),
    Column("system_id", String(36)),
    Column("component_id", String(36)),
    Column("filename", Text, nullable=False),
    Column("storage_path", Text, nullable=False, server_default=""),
    Column("content_type", String(128), nullable=False),
    Column("size_bytes", Integer, nullable=False),
    Column("document_type", String(32), nullable=False, server_default="other"),
    Column("extracted_text", Text),
    Column("extracted_data", JSON(none_as_null=True)),
    Column("resolve_data", JSON(none_as_null=True)),
    Column("status", String(32), nullable=False, server_default="pending"),
    Column("retry_count", Integer, nullable=False, server_default="0"),
    Column("processed_at", DateTime(timezone=True)),
    Column("source", String(16), nullable=False, server_default="upload"),
    Column("source_email", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint(
        "(CASE WHEN property_id IS NULL THEN 0 ELSE 1 END"
        " + CASE WHEN system_id IS NULL THEN 0 ELSE 1 END"
        " + CASE WHEN component_id IS NULL THEN 0 ELSE 1 END) <= 1",
        name="documents_single_link",
    ),
    CheckConstraint("retry_count >= 0", name="documents_retry_count_non_negative"),
    CheckConstraint(
        "status IN ({})".format(", ".join(f"'{s}'" for s in PROCESSING_STATUS_VALUES)),
        name="documents_valid_status",
    ),
    Index("idx_documents_owner_status", "owner_id", "status"),
    Index("idx_documents_property", "property_id"),
)
