"""ResolutionResult model: how an extracted document maps onto inventory."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ResolutionAction(str, Enum):
    """Proposed inventory action for a document."""

    NEW_ITEM = "NEW_ITEM"
    ATTACH_TO_ITEM = "ATTACH_TO_ITEM"
    CHILD_OF_ITEM = "CHILD_OF_ITEM"


class EventType(str, Enum):
    """Maintenance-log event the document suggests."""

    INSTALLATION = "installation"
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    INSPECTION = "inspection"
    REPLACEMENT = "replacement"
    OBSERVATION = "observation"


class ResolutionResult(BaseModel):
    """Structured output of the resolution stage.

    Attributes:
        action: NEW_ITEM, ATTACH_TO_ITEM or CHILD_OF_ITEM.
        matched_item_id: Existing item the document belongs to. Required for
            every action except NEW_ITEM.
        confidence: Model confidence in [0, 1].
        reasoning: Free-text explanation shown to the reviewer.
        suggested_event_type: Optional event to log against the item.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    action: ResolutionAction
    matched_item_id: str | None = None
    confidence: Annotated[float, Field(ge=0.0, le=1.0)]
    reasoning: str = ""
    suggested_event_type: EventType | None = None

    @field_validator("action", mode="before")
    @classmethod
    def _uppercase_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("suggested_event_type", mode="before")
    @classmethod
    def _lowercase_event(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @field_validator("matched_item_id", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("reasoning", mode="before")
    @classmethod
    def _null_reasoning(cls, value: Any) -> Any:
        return "" if value is None else value

    @model_validator(mode="after")
    def _require_match_for_attach(self) -> ResolutionResult:
        if self.action != ResolutionAction.NEW_ITEM and self.matched_item_id is None:
            raise ValueError(f"matchedItemId is required when action is {self.action.value}")
        return self

    def to_record(self) -> dict[str, Any]:
        """Serialize for persistence and API responses (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> ResolutionResult:
        """Rebuild from a persisted record."""
        return cls.model_validate(data)
