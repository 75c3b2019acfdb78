"""
Bridge wire envelopes.

BridgeEvent  (native -> frontend): {eventType, data, timestamp}
ActionMessage (frontend -> native): {action, ...payload}
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gp_chat.models.message import event_timestamp


class BridgeEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: str = Field(alias="eventType")
    data: Any = None
    timestamp: str = Field(default_factory=event_timestamp)


class ActionMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: str
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"action": self.action, **self.payload}
