"""
Chat message models and their wire form.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

MESSAGE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def event_timestamp(now: Optional[datetime] = None) -> str:
    """Millisecond timestamp used on every bridge event."""
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d}"


class Role(str, Enum):
    USER = "user"
    BOT = "bot"
    SYSTEM = "system"


class Button(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    label: str

    def to_wire(self) -> dict[str, str]:
        return {"identifier": self.identifier, "text": self.label}


class ChatMessage(BaseModel):
    """One entry of the conversation history. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str
    buttons: tuple[Button, ...] = ()
    timestamp: datetime = Field(default_factory=datetime.now)
    button_name: Optional[str] = None
    user_activity_metadata: Optional[dict[str, str]] = None
    predefined_id: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "message": self.text,
            "buttons": [b.to_wire() for b in self.buttons],
            "timestamp": self.timestamp.strftime(MESSAGE_TIME_FORMAT),
            "buttonName": self.button_name,
            "userActivityMetadata": self.user_activity_metadata,
            "predefinedId": self.predefined_id,
        }

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> ChatMessage:
        """Inverse of to_wire. Unknown roles from older stores are read as bot messages."""
        role = raw.get("role", Role.BOT.value)
        if role not in {r.value for r in Role}:
            role = Role.BOT.value
        stamp = raw.get("timestamp")
        timestamp = datetime.strptime(stamp, MESSAGE_TIME_FORMAT) if stamp else datetime.now()
        return cls(
            role=Role(role),
            text=raw.get("message", ""),
            buttons=tuple(
                Button(identifier=b["identifier"], label=b.get("text", b["identifier"]))
                for b in raw.get("buttons") or []
            ),
            timestamp=timestamp,
            button_name=raw.get("buttonName"),
            user_activity_metadata=raw.get("userActivityMetadata"),
            predefined_id=raw.get("predefinedId"),
        )


class UserActivity(BaseModel):
    """user_activity payload. Extra string fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    type: str
    name: str
    context: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    def as_metadata(self) -> dict[str, str]:
        return {k: str(v) for k, v in self.model_dump().items()}


def serialize_history(history: Sequence[ChatMessage], window: int = 10) -> str:
    """Render the last ``window`` messages one per line as ``role: text``."""
    recent = history[-window:] if window > 0 else history
    return "\n".join(f"{m.role.value}: {m.text}" for m in recent)
