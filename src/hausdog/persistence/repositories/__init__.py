"""Hausdog repositories."""

from hausdog.persistence.repositories.documents import (
    DocumentRepository,
    InMemoryDocumentRepository,
    SqlDocumentRepository,
)
from hausdog.persistence.repositories.inventory import (
    InMemoryInventory,
    InventoryReader,
    PropertyDirectory,
    SqlInventory,
)

__all__ = [
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "InMemoryInventory",
    "InventoryReader",
    "PropertyDirectory",
    "SqlDocumentRepository",
    "SqlInventory",
]
