"""Resolution stage: match an extraction against existing inventory."""

from hausdog.services.resolution.reasoners import (
    AnthropicReasoner,
    DeterministicReasoner,
    InventoryReasoner,
)
from hausdog.services.resolution.service import (
    ResolutionService,
    select_relevant_items,
    summarize_inventory,
)

__all__ = [
    "AnthropicReasoner",
    "DeterministicReasoner",
    "InventoryReasoner",
    "ResolutionService",
    "select_relevant_items",
    "summarize_inventory",
]
