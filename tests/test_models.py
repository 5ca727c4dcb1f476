"""Tests for Document, ExtractionResult and ResolutionResult models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from hausdog.errors import ValidationError
from hausdog.models.document import (
    Document,
    LinkedToComponent,
    LinkedToProperty,
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
from hausdog.models.resolution import EventType, ResolutionAction, ResolutionResult

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _document(**overrides) -> Document:
    fields = {
        "id": "doc-1",
        "owner_id": "owner-1",
        "filename": "plate.jpg",
        "storage_path": "owner-1/a/plate.jpg",
        "content_type": "image/jpeg",
        "size_bytes": 10,
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return Document(**fields)


class TestDocumentLink:
    """A document links to at most one of property, system or component."""

    def test_no_ids_is_unlinked(self) -> None:
        assert link_from_ids() == Unlinked()

    def test_single_id(self) -> None:
        assert link_from_ids(component_id="c-1") == LinkedToComponent(component_id="c-1")

    def test_two_ids_are_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            link_from_ids(property_id="p-1", system_id="s-1")
        assert exc_info.value.reason == "ambiguous_link"

    def test_flatten_to_columns(self) -> None:
        assert link_to_ids(LinkedToProperty(property_id="p-1")) == ("p-1", None, None)
        assert link_to_ids(Unlinked()) == (None, None, None)


class TestDocumentInvariants:
    """Lifecycle invariants enforced by the model."""

    def test_defaults(self) -> None:
        document = _document()
        assert document.status == ProcessingStatus.PENDING
        assert document.retry_count == 0
        assert document.property_id is None
        assert document.has_artifact

    def test_resolve_data_requires_extracted_data(self) -> None:
        resolution = ResolutionResult(action=ResolutionAction.NEW_ITEM, confidence=0.4)
        with pytest.raises(PydanticValidationError):
            _document(resolve_data=resolution)

    def test_processed_status_requires_processed_at(self) -> None:
        with pytest.raises(PydanticValidationError):
            _document(status=ProcessingStatus.CONFIRMED)

    def test_pending_must_not_carry_processed_at(self) -> None:
        with pytest.raises(PydanticValidationError):
            _document(processed_at=NOW)

    def test_negative_retry_count_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            _document(retry_count=-1)


class TestExtractionResult:
    """Classifier output parsing."""

    def test_camel_case_payload(self) -> None:
        result = ExtractionResult.model_validate(
            {
                "documentType": "Equipment_Plate",
                "confidence": 0.93,
                "rawText": "CARRIER 59SC5A",
                "extracted": {
                    "manufacturer": "Carrier",
                    "model": "59SC5A",
                    "serialNumber": "2319A12345",
                    "price": "$1,299.00",
                },
                "suggestedItemName": "Carrier Furnace",
                "suggestedCategory": "HVAC",
            }
        )

        assert result.document_type == DocumentKind.EQUIPMENT_PLATE
        assert result.suggested_category == ItemCategory.HVAC
        assert result.extracted.serial_number == "2319A12345"
        assert result.extracted.price == 1299.0

    def test_record_uses_camel_case_keys(self) -> None:
        result = ExtractionResult(document_type=DocumentKind.RECEIPT, confidence=0.7)
        record = result.to_record()
        assert record["documentType"] == "receipt"
        assert "suggestedItemName" in record
        assert ExtractionResult.from_record(record) == result

    def test_confidence_out_of_range(self) -> None:
        with pytest.raises(PydanticValidationError):
            ExtractionResult(document_type=DocumentKind.OTHER, confidence=1.5)

    def test_unknown_document_type(self) -> None:
        with pytest.raises(PydanticValidationError):
            ExtractionResult.model_validate({"documentType": "spaceship", "confidence": 0.5})

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("$1,299.00", 1299.0),
            (" $ 45 ", 45.0),
            ("12500", 12500.0),
            (89.5, 89.5),
            ("1.299,00 €", None),
            ("1.5k", None),
            ("100-200", None),
            ("about $40", None),
            ("", None),
        ],
    )
    def test_price_strings(self, raw, expected) -> None:
        """Only plainly formatted dollar amounts become prices."""
        assert ExtractedFields.model_validate({"price": raw}).price == expected


class TestResolutionResult:
    """Resolution output parsing."""

    def test_attach_requires_matched_item(self) -> None:
        with pytest.raises(PydanticValidationError):
            ResolutionResult.model_validate({"action": "ATTACH_TO_ITEM", "confidence": 0.9})

    def test_new_item_without_match(self) -> None:
        result = ResolutionResult.model_validate(
            {"action": "new_item", "matchedItemId": "", "confidence": 0.4, "reasoning": None}
        )
        assert result.action == ResolutionAction.NEW_ITEM
        assert result.matched_item_id is None
        assert result.reasoning == ""

    def test_event_type_is_normalized(self) -> None:
        result = ResolutionResult.model_validate(
            {
                "action": "ATTACH_TO_ITEM",
                "matchedItemId": "item-1",
                "confidence": 0.8,
                "suggestedEventType": "Repair",
            }
        )
        assert result.suggested_event_type == EventType.REPAIR
