"""ExtractionResult model: structured fields read off a document artifact.

Produced once per document by the extraction stage and never patched in
place. Serialized with camelCase keys, which is the shape the classifier
answers in and the shape stored in the documents.extracted_data column.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_PRICE = re.compile(r"\$?\s*(-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?)")


class DocumentKind(str, Enum):
    """Document type taxonomy shared by ingress hints and the classifier."""

    EQUIPMENT_PLATE = "equipment_plate"
    RECEIPT = "receipt"
    MANUAL = "manual"
    WARRANTY = "warranty"
    INVOICE = "invoice"
    PRODUCT_PHOTO = "product_photo"
    OTHER = "other"
    EMAIL = "email"


class ItemCategory(str, Enum):
    """Home-system categories used for suggested inventory items."""

    HVAC = "hvac"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    APPLIANCE = "appliance"
    STRUCTURE = "structure"
    TOOL = "tool"
    FIXTURE = "fixture"
    OTHER = "other"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ExtractedFields(_CamelModel):
    """Candidate attributes read from the artifact. Any of them may be absent."""

    manufacturer: str | None = None
    model: str | None = None
    serial_number: str | None = None
    product_name: str | None = None
    date: str | None = None
    price: float | None = None
    vendor: str | None = None
    warranty_expires: str | None = None
    specs: dict[str, Any] | None = None

    @field_validator("price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> Any:
        """Accept "$1,299.00" style strings from the classifier.

        Only a dollar sign, thousands commas and surrounding whitespace are
        stripped. Any other decoration ("1.5k", "1.299,00 €", "100-200") is
        ambiguous and yields None rather than a guessed number.
        """
        if isinstance(value, str):
            match = _PRICE.fullmatch(value.strip())
            return match.group(1).replace(",", "") if match else None
        return value


class ExtractionResult(_CamelModel):
    """Structured output of the extraction stage.

    Attributes:
        document_type: Classified document kind.
        confidence: Classifier confidence in [0, 1].
        raw_text: All legible text on the artifact.
        extracted: Candidate item attributes.
        suggested_item_name: Name proposed for a new inventory item.
        suggested_category: Home-system category proposed for the item.
    """

    document_type: DocumentKind
    confidence: Annotated[float, Field(ge=0.0, le=1.0)]
    raw_text: str = ""
    extracted: ExtractedFields = Field(default_factory=ExtractedFields)
    suggested_item_name: str | None = None
    suggested_category: ItemCategory = ItemCategory.OTHER

    @field_validator("document_type", "suggested_category", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("raw_text", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_record(self) -> dict[str, Any]:
        """Serialize for persistence and API responses (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> ExtractionResult:
        """Rebuild from a persisted record."""
        return cls.model_validate(data)
