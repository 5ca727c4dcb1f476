"""Resolution stage: decide how an extraction maps onto existing inventory."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import ValidationError as PydanticValidationError

from hausdog.errors import ExternalServiceError
from hausdog.models.extraction import ExtractionResult
from hausdog.models.inventory import InventoryItem, InventorySummaryEntry
from hausdog.models.resolution import ResolutionResult
from hausdog.services.llm.json_response import parse_model_object
from hausdog.services.resolution.prompts import (
    RESOLUTION_SYSTEM_PROMPT,
    build_resolution_prompt,
)
from hausdog.services.resolution.reasoners import InventoryReasoner

logger = logging.getLogger(__name__)

SERVICE_NAME = "resolution"
RELEVANT_ITEMS_LIMIT = 10


def summarize_inventory(items: Iterable[InventoryItem]) -> list[InventorySummaryEntry]:
    """Reduce inventory rows to the fields the resolution model sees."""
    return [
        InventorySummaryEntry(
            id=item.id,
            name=item.name,
            manufacturer=item.manufacturer,
            model=item.model,
            category=item.category,
        )
        for item in items
    ]


def select_relevant_items(
    items: Iterable[InventoryItem],
    message: str,
    limit: int = RELEVANT_ITEMS_LIMIT,
) -> list[InventoryItem]:
    """Narrow inventory to items mentioned by a chat message.

    An item is relevant when any whitespace-separated term of the message,
    lowercased, occurs in its name, manufacturer, model, category or notes.
    Order is preserved and at most `limit` items are returned.
    """
    terms = [t for t in message.lower().split() if t]
    if not terms:
        return []
    relevant: list[InventoryItem] = []
    for item in items:
        text = item.search_text()
        if any(term in text for term in terms):
            relevant.append(item)
            if len(relevant) >= limit:
                break
    return relevant


class ResolutionService:
    """Runs one resolution call per document.

    Args:
        reasoner: Backend that answers the resolution prompt.
    """

    def __init__(self, reasoner: InventoryReasoner) -> None:
        self._reasoner = reasoner

    def resolve(
        self,
        extraction: ExtractionResult,
        inventory: list[InventorySummaryEntry],
    ) -> ResolutionResult:
        """Propose an inventory action for an extraction.

        Args:
            extraction: Output of the extraction stage.
            inventory: Summary of the property's existing items.

        Returns:
            Validated resolution result.

        Raises:
            ExternalServiceError: If the reasoner fails, its answer does not
                parse or validate, or it names an item outside `inventory`.
        """
        prompt = build_resolution_prompt(
            [entry.to_prompt_dict() for entry in inventory],
            extraction.to_record(),
        )
        try:
            raw = self._reasoner.reason(system_prompt=RESOLUTION_SYSTEM_PROMPT, user_prompt=prompt)
        except ValueError as e:
            raise ExternalServiceError(
                f"Resolution reasoner failed: {e}", service=SERVICE_NAME, cause=e
            ) from e
        payload = parse_model_object(raw, service=SERVICE_NAME)

        try:
            result = ResolutionResult.model_validate(payload)
        except PydanticValidationError as e:
            raise ExternalServiceError(
                f"Resolution output failed validation: {e.error_count()} error(s)",
                service=SERVICE_NAME,
                cause=e,
            ) from e

        known_ids = {entry.id for entry in inventory}
        if result.matched_item_id is not None and result.matched_item_id not in known_ids:
            raise ExternalServiceError(
                "Resolution matched an item that is not in the supplied inventory",
                service=SERVICE_NAME,
            )

        logger.info(
            "Resolved action=%s confidence=%.2f inventory_size=%d",
            result.action.value,
            result.confidence,
            len(inventory),
        )
        return result
