"""Read-only views of the inventory and property records.

These rows are owned by the CRUD side of the application; the pipeline only
reads them to build resolution context and to route inbound email.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class InventoryItem(BaseModel):
    """A system, appliance or component recorded against a property."""

    model_config = ConfigDict(frozen=True)

    id: str
    property_id: str
    name: str
    manufacturer: str | None = None
    model: str | None = None
    category: str | None = None
    notes: str | None = None

    def search_text(self) -> str:
        """Lowercased text used for keyword relevance."""
        parts = [self.name, self.manufacturer, self.model, self.category, self.notes]
        return " ".join(p for p in parts if p).lower()


class InventorySummaryEntry(BaseModel):
    """Compact inventory row sent to the resolution model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    manufacturer: str | None = None
    model: str | None = None
    category: str | None = None

    def to_prompt_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class PropertyRef(BaseModel):
    """Property row as seen by the email router."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    name: str
    ingest_token: str | None = None
