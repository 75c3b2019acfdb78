"""
Results returned by the router, retrieval and generation capabilities.
"""

from typing import Optional

from pydantic import BaseModel

from gp_chat.models.message import Button


class RouterResult(BaseModel):
    agent: str
    examples: str = ""
    knowledge: str = ""


class RAGResult(BaseModel):
    examples: str = ""
    knowledge: str = ""

    @property
    def empty(self) -> bool:
        return not self.examples and not self.knowledge


class GenerationResult(BaseModel):
    text: str
    buttons: list[Button] = []


class LoginResult(BaseModel):
    success: bool
    token: Optional[str] = None
    error: Optional[str] = None


class PredefinedMessage(BaseModel):
    """Scripted backend message. Its buttons name the next predefined message."""

    identifier: str
    text: str
    buttons: list[Button] = []
