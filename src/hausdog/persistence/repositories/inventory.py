"""Read access to inventory items and properties.

Items and properties are maintained by the CRUD side of the application.
The pipeline reads items to build resolution context and resolves inbound
email routing tokens to properties.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import select

from hausdog.models.inventory import InventoryItem, PropertyRef
from hausdog.persistence.schema import items, properties

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.engine import Row

logger = logging.getLogger(__name__)


class InventoryReader(Protocol):
    """Lists inventory items visible to an owner."""

    def list_items(self, owner_id: str, property_id: str | None = None) -> list[InventoryItem]:
        """Return items for one property, or all of the owner's items when None."""
        ...


class PropertyDirectory(Protocol):
    """Resolves properties by id or by inbound email routing token."""

    def get_property(self, property_id: str) -> PropertyRef | None: ...

    def find_by_ingest_token(self, token: str) -> PropertyRef | None: ...


class InMemoryInventory:
    """In-memory properties and items, implementing both read protocols."""

    def __init__(self) -> None:
        self._properties: dict[str, PropertyRef] = {}
        self._items: dict[str, InventoryItem] = {}
        self._lock = threading.Lock()

    def add_property(self, prop: PropertyRef) -> PropertyRef:
        with self._lock:
            self._properties[prop.id] = prop
        return prop

    def add_item(self, item: InventoryItem) -> InventoryItem:
        with self._lock:
            self._items[item.id] = item
        return item

    def get_property(self, property_id: str) -> PropertyRef | None:
        with self._lock:
            return self._properties.get(property_id)

    def find_by_ingest_token(self, token: str) -> PropertyRef | None:
        with self._lock:
            for prop in self._properties.values():
                if prop.ingest_token and prop.ingest_token == token:
                    return prop
        return None

    def list_items(self, owner_id: str, property_id: str | None = None) -> list[InventoryItem]:
        with self._lock:
            owned = {p.id for p in self._properties.values() if p.owner_id == owner_id}
            return [
                item
                for item in self._items.values()
                if item.property_id in owned
                and (property_id is None or item.property_id == property_id)
            ]


def _row_to_property(row: Row[Any]) -> PropertyRef:
    data = row._mapping
    return PropertyRef(
        id=data["id"],
        owner_id=data["owner_id"],
        name=data["name"],
        ingest_token=data["ingest_token"],
    )


def _row_to_item(row: Row[Any]) -> InventoryItem:
    data = row._mapping
    return InventoryItem(
        id=data["id"],
        property_id=data["property_id"],
        name=data["name"],
        manufacturer=data["manufacturer"],
        model=data["model"],
        category=data["category"],
        notes=data["notes"],
    )


class SqlInventory:
    """SQL implementation of InventoryReader and PropertyDirectory.

    Args:
        engine: SQLAlchemy engine with properties and items tables.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_property(self, property_id: str) -> PropertyRef | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(properties).where(properties.c.id == property_id)
            ).fetchone()
        return _row_to_property(row) if row is not None else None

    def find_by_ingest_token(self, token: str) -> PropertyRef | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(properties).where(properties.c.ingest_token == token)
            ).fetchone()
        return _row_to_property(row) if row is not None else None

    def list_items(self, owner_id: str, property_id: str | None = None) -> list[InventoryItem]:
        query = (
            select(items)
            .join(properties, properties.c.id == items.c.property_id)
            .where(properties.c.owner_id == owner_id)
        )
        if property_id is not None:
            query = query.where(items.c.property_id == property_id)
        query = query.order_by(items.c.name)
        with self._engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_item(row) for row in rows]
