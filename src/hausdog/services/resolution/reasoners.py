"""Inventory reasoners used by the resolution stage.

InventoryReasoner: Protocol for a text model that picks a resolution action.
AnthropicReasoner: Claude-backed reasoner.
DeterministicReasoner: Offline reasoner for tests and local runs.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import anthropic

from hausdog.services.llm.anthropic_client import AnthropicReasoningClient
from hausdog.services.resolution.prompts import (
    EXTRACTED_MARKER,
    INSTRUCTION,
    INVENTORY_MARKER,
)

logger = logging.getLogger(__name__)


class InventoryReasoner(Protocol):
    """Provider-agnostic interface for resolution calls."""

    def reason(self, *, system_prompt: str, user_prompt: str) -> str:
        """Make one call and return the raw response text."""
        ...


class AnthropicReasoner:
    """Reasoner backed by the Anthropic Messages API.

    Args:
        api_key: Anthropic API key.
        model: Claude model identifier.
        client: Optional preconstructed SDK client.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        self._client = AnthropicReasoningClient(api_key, model, client=client)

    def reason(self, *, system_prompt: str, user_prompt: str) -> str:
        return self._client.call(system_prompt=system_prompt, user_prompt=user_prompt)


class DeterministicReasoner:
    """Offline reasoner that reads the inventory and extraction from the prompt.

    Attaches to the first inventory entry whose model matches the extracted
    model exactly (case-insensitive), provided the manufacturers agree when
    both are known. Otherwise proposes a new item.
    """

    def reason(self, *, system_prompt: str = "", user_prompt: str) -> str:
        inventory, extracted = self._parse_prompt(user_prompt)
        fields = extracted.get("extracted") or {}
        model = _norm(fields.get("model"))
        manufacturer = _norm(fields.get("manufacturer"))

        if model:
            for entry in inventory:
                if _norm(entry.get("model")) != model:
                    continue
                entry_manufacturer = _norm(entry.get("manufacturer"))
                if manufacturer and entry_manufacturer and manufacturer != entry_manufacturer:
                    continue
                return json.dumps(
                    {
                        "action": "ATTACH_TO_ITEM",
                        "matchedItemId": entry["id"],
                        "confidence": 0.85,
                        "reasoning": f"Model {fields.get('model')} matches {entry.get('name')}.",
                        "suggestedEventType": None,
                    },
                    sort_keys=True,
                )

        return json.dumps(
            {
                "action": "NEW_ITEM",
                "matchedItemId": None,
                "confidence": 0.4,
                "reasoning": "No existing item matches the extracted model.",
                "suggestedEventType": None,
            },
            sort_keys=True,
        )

    def _parse_prompt(self, prompt: str) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """Split the user prompt back into its two JSON sections.

        Raises:
            ValueError: If either section is missing or not JSON (fail-closed).
        """
        inventory_start = prompt.find(INVENTORY_MARKER)
        extracted_start = prompt.find(EXTRACTED_MARKER)
        if inventory_start == -1 or extracted_start == -1:
            raise ValueError("DETERMINISTIC_RESOLUTION_PARSE_FAILED: prompt markers not found")

        inventory_text = prompt[inventory_start + len(INVENTORY_MARKER) : extracted_start]
        extracted_text = prompt[extracted_start + len(EXTRACTED_MARKER) :]
        instruction_pos = extracted_text.rfind(INSTRUCTION)
        if instruction_pos != -1:
            extracted_text = extracted_text[:instruction_pos]

        try:
            inventory = json.loads(inventory_text)
            extracted = json.loads(extracted_text)
        except json.JSONDecodeError as exc:
            raise ValueError(
                f"DETERMINISTIC_RESOLUTION_PARSE_FAILED: invalid JSON section: {exc}"
            ) from exc
        return list(inventory), dict(extracted)


def _norm(value: Any) -> str:
    return str(value).strip().lower() if value else ""
