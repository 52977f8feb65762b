"""AgentState — a named node in the state-machine loop.

Each state declares whether it is terminal and which state names it may
legally transition to.  Transitions outside that set are rejected by the
loop, which stays in place instead.

Typical flow of the predefined states:

    INITIAL → RUNNING → AWAITING_JUDGMENT → COMPLETED
                 ↓               ↓
              FAILED          FAILED
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AgentState(BaseModel):
    name: str = Field(..., min_length=1)
    terminal: bool = False
    valid_transitions: frozenset[str] = Field(default_factory=frozenset)
    description: str = ""

    model_config = {"frozen": True}

    @classmethod
    def of(
        cls,
        name: str,
        terminal: bool = False,
        transitions: set[str] | frozenset[str] | None = None,
        description: str | None = None,
    ) -> AgentState:
        return cls(
            name=name,
            terminal=terminal,
            valid_transitions=frozenset(transitions or ()),
            description=description or name,
        )

    def can_transition_to(self, target: AgentState | str) -> bool:
        target_name = target.name if isinstance(target, AgentState) else target
        return target_name in self.valid_transitions


# ── Predefined states ────────────────────────────────────────────────────────

INITIAL = AgentState.of(
    "INITIAL", False, {"RUNNING", "FAILED"}, "Initial state before processing begins"
)
RUNNING = AgentState.of(
    "RUNNING",
    False,
    {"AWAITING_FEEDBACK", "AWAITING_JUDGMENT", "COMPLETED", "FAILED", "PAUSED"},
    "Agent is actively executing",
)
AWAITING_FEEDBACK = AgentState.of(
    "AWAITING_FEEDBACK", False, {"RUNNING", "COMPLETED", "FAILED"},
    "Waiting for user or system feedback",
)
AWAITING_JUDGMENT = AgentState.of(
    "AWAITING_JUDGMENT", False, {"RUNNING", "COMPLETED", "FAILED"},
    "Waiting for jury evaluation",
)
PAUSED = AgentState.of("PAUSED", False, {"RUNNING", "COMPLETED", "FAILED"}, "Temporarily paused")
COMPLETED = AgentState.of("COMPLETED", True, set(), "Successfully completed")
FAILED = AgentState.of("FAILED", True, set(), "Failed with error")
CANCELLED = AgentState.of("CANCELLED", True, set(), "Cancelled by user")

PREDEFINED_STATES: dict[str, AgentState] = {
    s.name: s
    for s in (INITIAL, RUNNING, AWAITING_FEEDBACK, AWAITING_JUDGMENT, PAUSED, COMPLETED, FAILED, CANCELLED)
}

DEFAULT_STATES: dict[str, AgentState] = {
    s.name: s for s in (INITIAL, RUNNING, AWAITING_JUDGMENT, COMPLETED, FAILED, CANCELLED)
}
