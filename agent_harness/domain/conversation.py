"""Conversation primitives exchanged with the generation collaborator.

The core never executes actions.  It only inspects whether a Generation
requested any, and whether one of them is the reserved finish action.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    role: MessageRole
    content: str = ""

    model_config = {"frozen": True}


class ActionRequest(BaseModel):
    """A tool/action call requested by the model."""

    name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None

    model_config = {"frozen": True}


class Generation(BaseModel):
    """One response from the generation collaborator."""

    text: str = ""
    requested_actions: list[ActionRequest] = Field(default_factory=list)
    tokens_used: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @property
    def has_actions(self) -> bool:
        return bool(self.requested_actions)

    def requests_action(self, name: str) -> bool:
        return any(action.name == name for action in self.requested_actions)


class Conversation:
    """Ordered message list accumulated over a loop execution.

    Owned by one loop execution.  Action collaborators append tool
    results between generation calls.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    @classmethod
    def from_prompt(cls, prompt: str, system: str | None = None) -> Conversation:
        messages = []
        if system:
            messages.append(Message(role=MessageRole.SYSTEM, content=system))
        messages.append(Message(role=MessageRole.USER, content=prompt))
        return cls(messages)

    def append(self, role: MessageRole, content: str) -> None:
        self._messages.append(Message(role=role, content=content))

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
