"""
Envelope construction and parsing for the bridge wire format.
"""

import json
from typing import Any, Optional, Union

from pydantic import ValidationError

from gp_chat.errors import BridgeError
from gp_chat.models.envelope import ActionMessage, BridgeEvent
from gp_chat.models.message import event_timestamp


def build_event(event_type: str, data: Any) -> BridgeEvent:
    return BridgeEvent(event_type=event_type, data=data)


def serialize_event(event: BridgeEvent) -> str:
    return event.model_dump_json(by_alias=True)


def parse_event(raw: Union[str, dict[str, Any]]) -> Optional[BridgeEvent]:
    """Parse a native -> frontend event. Returns None if invalid. Extra fields are ignored."""
    try:
        if isinstance(raw, str):
            return BridgeEvent.model_validate_json(raw)
        return BridgeEvent.model_validate(raw)
    except ValidationError:
        return None


def build_action(action: str, payload: Optional[dict[str, Any]] = None) -> str:
    return json.dumps(ActionMessage(action=action, payload=payload or {}).to_wire())


def decode_action(raw: Union[str, dict[str, Any]]) -> ActionMessage:
    """Parse a frontend -> native action. Raises BridgeError unless it is a JSON object with an action."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise BridgeError(f"Malformed JSON: {e}")
    if not isinstance(raw, dict) or not isinstance(raw.get("action"), str):
        raise BridgeError("Message must be a JSON object with an action")
    payload = {k: v for k, v in raw.items() if k != "action"}
    return ActionMessage(action=raw["action"], payload=payload)


def error_payload(error: str) -> dict[str, str]:
    return {"error": error, "timestamp": event_timestamp()}
