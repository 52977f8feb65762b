"""Controlled enumerations for the agent-harness domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


class TerminationReason(str, Enum):
    """Why a loop stopped.  Exactly one reason per run."""

    NOT_TERMINATED = "not_terminated"
    MAX_STEPS_REACHED = "max_steps_reached"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    STUCK_DETECTED = "stuck_detected"
    TIMEOUT = "timeout"
    COST_LIMIT_EXCEEDED = "cost_limit_exceeded"
    EXTERNAL_SIGNAL = "external_signal"
    FINISH_SIGNALED = "finish_signaled"
    SCORE_THRESHOLD_MET = "score_threshold_met"
    STATE_TERMINAL = "state_terminal"
    WORKFLOW_COMPLETE = "workflow_complete"
    ERROR = "error"


class LoopStatus(str, Enum):
    """Outcome of a loop execution as seen by the caller."""

    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class LoopType(str, Enum):
    """The loop patterns this harness implements."""

    TURN_LIMITED = "turn_limited"
    EVALUATOR_OPTIMIZER = "evaluator_optimizer"
    STATE_MACHINE = "state_machine"


class GraphStatus(str, Enum):
    """Outcome of a graph execution."""

    COMPLETED = "completed"
    STUCK_IN_NODE = "stuck_in_node"
    MAX_ITERATIONS = "max_iterations"
    ERROR = "error"
