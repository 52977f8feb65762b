"""Pydantic result models returned by every loop pattern.

Callers always receive one of these instead of an exception: status,
termination reason, the (possibly partial) output, and run metrics.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, Field

from agent_harness.domain.agent_state import AgentState
from agent_harness.domain.enums import LoopStatus, TerminationReason
from agent_harness.domain.run_state import RunState
from agent_harness.domain.verdict import Verdict


class LoopResult(BaseModel):
    """Fields common to all loop results."""

    run_id: str
    output: str | None = None
    status: LoopStatus
    reason: TerminationReason
    message: str | None = None
    steps_completed: int = 0
    duration: timedelta = timedelta(0)
    total_tokens: int = 0
    estimated_cost: float = 0.0

    model_config = {"frozen": True}

    @property
    def is_success(self) -> bool:
        return self.status == LoopStatus.COMPLETED

    @property
    def is_failure(self) -> bool:
        return self.status == LoopStatus.FAILED


def run_metrics(state: RunState) -> dict[str, Any]:
    """Metric fields of a LoopResult taken from a RunState."""
    return {
        "steps_completed": state.current_step,
        "duration": state.elapsed,
        "total_tokens": state.total_tokens_used,
        "estimated_cost": state.estimated_cost,
    }


# ── Turn-limited ─────────────────────────────────────────────────────────────

class TurnLimitedResult(LoopResult):
    final_state: RunState
    last_verdict: Verdict | None = None

    @property
    def final_score(self) -> float:
        return self.last_verdict.score if self.last_verdict else 0.0

    @property
    def jury_passed(self) -> bool:
        return self.last_verdict is not None and self.last_verdict.passed

    @property
    def was_stuck(self) -> bool:
        return self.reason == TerminationReason.STUCK_DETECTED

    @property
    def max_steps_reached(self) -> bool:
        return self.reason == TerminationReason.MAX_STEPS_REACHED

    @property
    def timed_out(self) -> bool:
        return self.reason == TerminationReason.TIMEOUT

    @property
    def finish_signaled(self) -> bool:
        return self.reason == TerminationReason.FINISH_SIGNALED


# ── Evaluator-optimizer ──────────────────────────────────────────────────────

class TrialRecord(BaseModel):
    """One generate → evaluate → reflect cycle."""

    trial_number: int = Field(..., ge=1)
    output: str
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    passed: bool = False
    reflection: str = Field(default="", description="Feedback produced for the next trial")
    duration: timedelta = timedelta(0)

    model_config = {"frozen": True}


class EvaluatorOptimizerResult(LoopResult):
    trials: tuple[TrialRecord, ...] = ()
    best_score: float = 0.0
    best_trial_number: int | None = None
    best_reflection: str | None = Field(
        default=None, description="Reflection that seeded the best trial"
    )
    final_state: RunState

    @property
    def trial_count(self) -> int:
        return len(self.trials)

    @property
    def score_history(self) -> list[float]:
        return [t.score for t in self.trials]

    @property
    def best_trial(self) -> TrialRecord | None:
        for trial in self.trials:
            if trial.trial_number == self.best_trial_number:
                return trial
        return None


# ── State machine ────────────────────────────────────────────────────────────

class StateTransition(BaseModel):
    """What happened during one state-machine iteration."""

    iteration: int
    from_state: AgentState
    to_state: AgentState
    output: str | None = None
    duration: timedelta = timedelta(0)
    reason: str | None = None

    model_config = {"frozen": True}


class StateMachineResult(LoopResult):
    transitions: tuple[StateTransition, ...] = ()
    final_agent_state: AgentState
    attributes: dict[str, Any] = Field(default_factory=dict)
    final_state: RunState

    @property
    def reached_terminal_state(self) -> bool:
        return self.final_agent_state.terminal and self.reason == TerminationReason.STATE_TERMINAL

    @property
    def completed_successfully(self) -> bool:
        return self.final_agent_state.name == "COMPLETED" and self.is_success

    @property
    def failed_in_state_machine(self) -> bool:
        return self.final_agent_state.name == "FAILED"

    @property
    def transition_count(self) -> int:
        return len(self.transitions)

    def state_sequence(self) -> list[str]:
        if not self.transitions:
            return []
        sequence = [self.transitions[0].from_state.name]
        sequence.extend(t.to_state.name for t in self.transitions)
        return sequence

    def visited_state(self, name: str) -> bool:
        return any(t.from_state.name == name or t.to_state.name == name for t in self.transitions)
