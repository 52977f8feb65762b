"""Collaborator contracts consumed by the loops.

These are the only seams between the orchestration core and the outside
world.  Implementations live in adapters/ or in the caller's code; tests
substitute MagicMock objects.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from agent_harness.domain.conversation import ActionRequest, Conversation, Generation
from agent_harness.domain.run_state import RunState
from agent_harness.domain.verdict import Verdict


@runtime_checkable
class Generator(Protocol):
    """Language-model invocation: conversation in, text/actions/tokens out."""

    def generate(self, conversation: Conversation, available_actions: Sequence[str]) -> Generation:
        ...


@runtime_checkable
class ActionExecutor(Protocol):
    """Executes requested actions and folds results into the conversation."""

    def execute(self, actions: Sequence[ActionRequest], conversation: Conversation) -> None:
        ...


@runtime_checkable
class Jury(Protocol):
    """Evaluation backend.  Blocking; may raise."""

    def evaluate(self, state: RunState, latest_output: str | None, workspace: Path) -> Verdict:
        ...
