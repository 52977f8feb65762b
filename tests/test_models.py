"""Tests for result models and their derived properties."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from agent_harness.domain.agent_state import AWAITING_JUDGMENT, COMPLETED, FAILED, INITIAL, RUNNING
from agent_harness.domain.enums import LoopStatus, TerminationReason
from agent_harness.domain.run_state import RunState
from agent_harness.domain.verdict import Verdict
from agent_harness.models import (
    EvaluatorOptimizerResult,
    LoopResult,
    StateMachineResult,
    StateTransition,
    TrialRecord,
    TurnLimitedResult,
)
from agent_harness.models.results import run_metrics


class TestVerdict:
    def test_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Verdict(score=1.2)
        with pytest.raises(ValidationError):
            Verdict(score=-0.1)


class TestLoopResult:
    def test_success_and_failure(self) -> None:
        ok = LoopResult(run_id="r", status=LoopStatus.COMPLETED, reason=TerminationReason.FINISH_SIGNALED)
        bad = LoopResult(run_id="r", status=LoopStatus.FAILED, reason=TerminationReason.ERROR)
        stopped = LoopResult(run_id="r", status=LoopStatus.STOPPED, reason=TerminationReason.EXTERNAL_SIGNAL)
        assert ok.is_success and not ok.is_failure
        assert bad.is_failure and not bad.is_success
        assert not stopped.is_success and not stopped.is_failure

    def test_run_metrics(self) -> None:
        state = RunState.initial("r").complete_step(40, 0.5, True, 1).complete_step(60, 0.25, True, 2)
        metrics = run_metrics(state)
        assert metrics["steps_completed"] == 2
        assert metrics["total_tokens"] == 100
        assert metrics["estimated_cost"] == pytest.approx(0.75)
        assert isinstance(metrics["duration"], timedelta)


class TestTurnLimitedResult:
    def test_reason_helpers(self) -> None:
        result = TurnLimitedResult(
            run_id="r",
            status=LoopStatus.COMPLETED,
            reason=TerminationReason.STUCK_DETECTED,
            final_state=RunState.initial("r"),
        )
        assert result.was_stuck
        assert not result.timed_out
        assert not result.finish_signaled
        assert result.final_score == 0.0
        assert not result.jury_passed


class TestEvaluatorOptimizerResult:
    def test_best_trial_lookup(self) -> None:
        result = EvaluatorOptimizerResult(
            run_id="r",
            status=LoopStatus.COMPLETED,
            reason=TerminationReason.SCORE_THRESHOLD_MET,
            trials=(
                TrialRecord(trial_number=1, output="a", score=0.3),
                TrialRecord(trial_number=2, output="b", score=0.9, passed=True),
            ),
            best_trial_number=2,
            best_score=0.9,
            final_state=RunState.initial("r"),
        )
        assert result.trial_count == 2
        assert result.score_history == [0.3, 0.9]
        assert result.best_trial.output == "b"

    def test_trial_number_starts_at_one(self) -> None:
        with pytest.raises(ValidationError):
            TrialRecord(trial_number=0, output="x")


class TestStateMachineResult:
    def _result(self, final, transitions, status=LoopStatus.COMPLETED) -> StateMachineResult:
        return StateMachineResult(
            run_id="r",
            status=status,
            reason=TerminationReason.STATE_TERMINAL,
            transitions=tuple(transitions),
            final_agent_state=final,
            final_state=RunState.initial("r"),
        )

    def test_sequence_and_visits(self) -> None:
        result = self._result(COMPLETED, [
            StateTransition(iteration=1, from_state=INITIAL, to_state=RUNNING),
            StateTransition(iteration=2, from_state=RUNNING, to_state=AWAITING_JUDGMENT),
            StateTransition(iteration=3, from_state=AWAITING_JUDGMENT, to_state=COMPLETED),
        ])
        assert result.state_sequence() == ["INITIAL", "RUNNING", "AWAITING_JUDGMENT", "COMPLETED"]
        assert result.visited_state("AWAITING_JUDGMENT")
        assert not result.visited_state("PAUSED")
        assert result.completed_successfully
        assert result.reached_terminal_state
        assert result.transition_count == 3

    def test_failed(self) -> None:
        result = self._result(FAILED, [StateTransition(iteration=1, from_state=RUNNING, to_state=FAILED)], LoopStatus.FAILED)
        assert result.failed_in_state_machine
        assert not result.completed_successfully
