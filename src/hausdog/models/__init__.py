"""Hausdog domain models."""

from hausdog.models.document import (
    PROCESSED_STATUSES,
    Document,
    DocumentLink,
    DocumentSource,
    LinkedToComponent,
    LinkedToProperty,
    LinkedToSystem,
    ProcessingStatus,
    Unlinked,
    link_from_ids,
    link_to_ids,
)
from hausdog.models.extraction import (
    DocumentKind,
    ExtractedFields,
    ExtractionResult,
    ItemCategory,
)
from hausdog.models.inventory import InventoryItem, InventorySummaryEntry, PropertyRef
from hausdog.models.resolution import EventType, ResolutionAction, ResolutionResult

__all__ = [
    "PROCESSED_STATUSES",
    "Document",
    "DocumentKind",
    "DocumentLink",
    "DocumentSource",
    "EventType",
    "ExtractedFields",
    "ExtractionResult",
    "InventoryItem",
    "InventorySummaryEntry",
    "ItemCategory",
    "LinkedToComponent",
    "LinkedToProperty",
    "LinkedToSystem",
    "ProcessingStatus",
    "PropertyRef",
    "ResolutionAction",
    "ResolutionResult",
    "Unlinked",
    "link_from_ids",
    "link_to_ids",
]
