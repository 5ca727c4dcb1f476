"""Prompts for the inventory resolution model."""

from __future__ import annotations

import json
from typing import Any

INVENTORY_MARKER = "EXISTING INVENTORY:\n"
EXTRACTED_MARKER = "\n\nEXTRACTED FROM NEW DOCUMENT:\n"
INSTRUCTION = "\n\nDetermine how to handle this document."

RESOLUTION_SYSTEM_PROMPT = """\
You decide how a newly processed home document relates to the owner's \
existing inventory of systems, appliances and components.

Choose one action:
- NEW_ITEM: the document describes something not in the inventory
- ATTACH_TO_ITEM: the document belongs to an existing item (a receipt, \
manual or warranty for it, or another photo of it)
- CHILD_OF_ITEM: the document describes a part or accessory of an existing item

Be conservative. Only choose ATTACH_TO_ITEM or CHILD_OF_ITEM when you are \
reasonably confident of a match on manufacturer, model, serial number or \
name. When in doubt, choose NEW_ITEM.

Optionally suggest an event to log against the item: installation, \
maintenance, repair, inspection, replacement, observation.

Respond with a single JSON object and nothing else:
{
  "action": "NEW_ITEM" | "ATTACH_TO_ITEM" | "CHILD_OF_ITEM",
  "matchedItemId": "<id from the inventory, or null for NEW_ITEM>",
  "confidence": <number between 0 and 1>,
  "reasoning": "<one or two sentences>",
  "suggestedEventType": "<event type or null>"
}"""


def build_resolution_prompt(
    inventory: list[dict[str, Any]],
    extracted: dict[str, Any],
) -> str:
    """Render the user message: inventory summary, then the new extraction."""
    return (
        INVENTORY_MARKER
        + json.dumps(inventory, indent=2)
        + EXTRACTED_MARKER
        + json.dumps(extracted, indent=2)
        + INSTRUCTION
    )
