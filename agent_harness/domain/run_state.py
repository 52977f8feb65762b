"""RunState — immutable snapshot of one loop execution's progress.

A RunState is never mutated.  Each completed step produces a new instance
via complete_step(), which appends a StepSnapshot and recomputes the
consecutive-repeat counter used for stagnation detection.

Stagnation rule:
    - A step that performed an action resets the counter to 0 (progress
      is assumed even when the text repeats).
    - Otherwise the counter is 1 for the current step plus every
      contiguous earlier step with the same output signature AND no action.

The RunState does not store conversation messages.  Those belong to the
loop and its generation collaborator.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from agent_harness.foundation.clock import utc_now


class StepSnapshot(BaseModel):
    """Metrics captured for a single completed step."""

    step: int = Field(..., ge=0, description="Zero-based step index")
    tokens_used: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0)
    had_action: bool = Field(default=False, description="Whether the step requested an action")
    output_signature: int = Field(default=0, description="Signature of the generated output")

    model_config = {"frozen": True}


class RunState(BaseModel):
    """Progress of one loop execution at a point in time."""

    run_id: str
    current_step: int = 0
    started_at: datetime = Field(default_factory=utc_now)
    total_tokens_used: int = 0
    estimated_cost: float = 0.0
    abort_requested: bool = False
    step_history: tuple[StepSnapshot, ...] = ()
    consecutive_repeat_count: int = 0

    model_config = {"frozen": True}

    # ── Lifecycle ────────────────────────────────────────────────────────

    @classmethod
    def initial(cls, run_id: str) -> RunState:
        """Create the state for a run that has not executed any step."""
        return cls(run_id=run_id, started_at=utc_now())

    def complete_step(
        self,
        tokens_used: int,
        cost: float,
        had_action: bool,
        output_signature: int,
    ) -> RunState:
        """Return a new state with one more completed step."""
        snapshot = StepSnapshot(
            step=self.current_step,
            tokens_used=tokens_used,
            cost=cost,
            had_action=had_action,
            output_signature=output_signature,
        )
        history = self.step_history + (snapshot,)
        return self.model_copy(
            update={
                "current_step": self.current_step + 1,
                "total_tokens_used": self.total_tokens_used + tokens_used,
                "estimated_cost": self.estimated_cost + cost,
                "step_history": history,
                "consecutive_repeat_count": _repeat_count(history),
            }
        )

    def abort(self) -> RunState:
        """Return a copy flagged for termination at the next step boundary."""
        return self.model_copy(update={"abort_requested": True})

    # ── Derived values ───────────────────────────────────────────────────

    @property
    def elapsed(self) -> timedelta:
        return utc_now() - self.started_at

    @property
    def last_step(self) -> StepSnapshot | None:
        return self.step_history[-1] if self.step_history else None

    def is_stuck(self, threshold: int) -> bool:
        return self.consecutive_repeat_count >= threshold

    def cost_exceeded(self, limit: float) -> bool:
        """A non-positive limit disables the check."""
        return limit > 0 and self.estimated_cost > limit

    def timeout_exceeded(self, timeout: timedelta) -> bool:
        return self.elapsed > timeout

    def max_steps_reached(self, max_steps: int) -> bool:
        return self.current_step >= max_steps


def _repeat_count(history: tuple[StepSnapshot, ...]) -> int:
    """Count the trailing run of identical, action-free steps."""
    latest = history[-1]
    if latest.had_action:
        return 0

    count = 1
    for snapshot in reversed(history[:-1]):
        if snapshot.had_action or snapshot.output_signature != latest.output_signature:
            break
        count += 1
    return count
