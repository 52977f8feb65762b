"""TerminationDecision — the tagged result of every termination check.

A decision is either "continue" or "terminate(reason, message)".  Loops
return decisions instead of raising, so callers handle both outcomes.
"""

from __future__ import annotations

from pydantic import BaseModel

from agent_harness.domain.enums import TerminationReason


class TerminationDecision(BaseModel):
    should_terminate: bool
    reason: TerminationReason = TerminationReason.NOT_TERMINATED
    message: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def proceed(cls) -> TerminationDecision:
        return _CONTINUE

    @classmethod
    def terminate(cls, reason: TerminationReason, message: str | None = None) -> TerminationDecision:
        return cls(should_terminate=True, reason=reason, message=message or reason.value)


_CONTINUE = TerminationDecision(should_terminate=False)
