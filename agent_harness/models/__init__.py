from agent_harness.models.results import (
    EvaluatorOptimizerResult,
    LoopResult,
    StateMachineResult,
    StateTransition,
    TrialRecord,
    TurnLimitedResult,
)

__all__ = [
    "LoopResult",
    "TurnLimitedResult",
    "TrialRecord",
    "EvaluatorOptimizerResult",
    "StateTransition",
    "StateMachineResult",
]
