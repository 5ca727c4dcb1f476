"""Documents pipeline tables.

Revision ID: 0001
Revises:
Create Date: 2026-01-25

Creates:
- properties: property rows with the inbound email ingest token
- items: inventory items per property
- documents: one row per ingested artifact with pipeline state; stage
  outputs are JSON columns where an absent output is SQL NULL

Constraints:
- documents links to at most one of property, system, component
- documents.status restricted to the pipeline states
- documents.retry_count >= 0
"""

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create properties, items and documents tables."""
    op.create_table(
        "properties",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("ingest_token", sa.String(64), unique=True),
    )

    op.create_table(
        "items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("property_id", sa.String(36), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("manufacturer", sa.Text),
        sa.Column("model", sa.Text),
        sa.Column("category", sa.String(32)),
        sa.Column("notes", sa.Text),
    )
    op.create_index("idx_items_property", "items", ["property_id"])

    op.create_table(
        "documents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("property_id", sa.String(36)),
        sa.Column("system_id", sa.String(36)),
        sa.Column("component_id", sa.String(36)),
        sa.Column("filename", sa.Text, nullable=False),
        sa.Column("storage_path", sa.Text, nullable=False, server_default=""),
        sa.Column("content_type", sa.String(128), nullable=False),
        sa.Column("size_bytes", sa.Integer, nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False, server_default="other"),
        sa.Column("extracted_text", sa.Text),
        sa.Column("extracted_data", sa.JSON(none_as_null=True)),
        sa.Column("resolve_data", sa.JSON(none_as_null=True)),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("source", sa.String(16), nullable=False, server_default="upload"),
        sa.Column("source_email", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(CASE WHEN property_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN system_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN component_id IS NULL THEN 0 ELSE 1 END) <= 1",
            name="documents_single_link",
        ),
        sa.CheckConstraint("retry_count >= 0", name="documents_retry_count_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'ready_for_review',"
            " 'confirmed', 'discarded', 'failed')",
            name="documents_valid_status",
        ),
    )
    op.create_index("idx_documents_owner_status", "documents", ["owner_id", "status"])
    op.create_index("idx_documents_property", "documents", ["property_id"])


def downgrade() -> None:
    """Drop pipeline tables."""
    op.drop_index("idx_documents_property", table_name="documents")
    op.drop_index("idx_documents_owner_status", table_name="documents")
    op.drop_table("documents")
    op.drop_index("idx_items_property", table_name="items")
    op.drop_table("items")
    op.drop_table("properties")
