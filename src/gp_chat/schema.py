"""
Event schema registry and validation.

A schema lists the fields that must be present and non-null in an event's
``data``. Types without a schema are always valid so older consumers keep
working when new event types are added.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from gp_chat.models.events import ActionType, BridgeEventType

logger = logging.getLogger(__name__)


class EventSchema(BaseModel):
    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()
    description: str = ""


class ValidationResult(BaseModel):
    valid: bool
    missing: list[str] = []

    @property
    def errors(self) -> list[str]:
        return [f"Missing required field: {field}" for field in self.missing]


class EventSchemaRegistry:
    def __init__(self, schemas: Optional[dict[str, EventSchema]] = None):
        self._schemas: dict[str, EventSchema] = dict(schemas or {})

    def register(self, event_type: str, required: Iterable[str],
                 optional: Iterable[str] = (), description: str = "") -> None:
        self._schemas[event_type] = EventSchema(
            required=tuple(required), optional=tuple(optional), description=description,
        )

    def get(self, event_type: str) -> Optional[EventSchema]:
        return self._schemas.get(event_type)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._schemas

    def validate(self, event_type: str, data: Any) -> ValidationResult:
        schema = self._schemas.get(event_type)
        if schema is None:
            return ValidationResult(valid=True)
        fields = data if isinstance(data, dict) else {}
        missing = [name for name in schema.required if fields.get(name) is None]
        return ValidationResult(valid=not missing, missing=missing)

    def check(self, event_type: str, data: Any) -> ValidationResult:
        """validate() and log a warning when fields are missing. Never raises."""
        result = self.validate(event_type, data)
        if not result.valid:
            logger.warning("Invalid data for %s: %s", event_type, ", ".join(result.errors))
        return result


def default_event_schemas() -> EventSchemaRegistry:
    registry = EventSchemaRegistry()
    registry.register(
        BridgeEventType.CHAT_INITIALIZED, ["conversationHistory", "expectNewMessage"], ["timestamp"],
        "Chat system is initialized and ready",
    )
    registry.register(
        BridgeEventType.MESSAGE_RECEIVED, ["role", "message", "timestamp"],
        ["buttons", "buttonName", "userActivityMetadata", "predefinedId"],
        "A user echo or a final bot message",
    )
    registry.register(
        BridgeEventType.STREAM_CHUNK, ["chunk", "timestamp"], ["isStreaming"],
        "Cumulative bot text while generating",
    )
    registry.register(
        BridgeEventType.ERROR_OCCURRED, ["error", "timestamp"], (),
        "An error surfaced by the pipeline",
    )
    registry.register(
        BridgeEventType.CONVERSATION_HISTORY, ["history"], (),
        "Complete conversation history",
    )
    return registry


def default_action_schemas() -> EventSchemaRegistry:
    registry = EventSchemaRegistry()
    registry.register(ActionType.SEND_MESSAGE, ["message"])
    registry.register(ActionType.CLICK_BUTTON, ["buttonId"])
    registry.register(ActionType.USER_ACTIVITY, ["activityData"])
    return registry
