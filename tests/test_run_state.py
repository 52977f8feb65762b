"""Tests for RunState: step accounting, stagnation counter and predicates."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from agent_harness.domain.run_state import RunState, StepSnapshot
from agent_harness.foundation.signatures import content_signature

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _idle(state: RunState, text: str) -> RunState:
    return state.complete_step(10, 0.0, False, content_signature(text))


class TestLifecycle:
    def test_initial_state(self) -> None:
        state = RunState.initial("r1")
        assert state.run_id == "r1"
        assert state.current_step == 0
        assert state.total_tokens_used == 0
        assert state.step_history == ()
        assert state.last_step is None
        assert not state.abort_requested

    def test_three_action_steps_accumulate(self) -> None:
        state = RunState.initial("r1")
        for _ in range(3):
            state = state.complete_step(100, 0.0006, True, 42)
        assert state.total_tokens_used == 300
        assert state.current_step == 3
        assert state.consecutive_repeat_count == 0
        assert len(state.step_history) == state.current_step
        assert state.estimated_cost == pytest.approx(0.0018)

    def test_complete_step_returns_new_instance(self) -> None:
        state = RunState.initial("r1")
        nxt = state.complete_step(5, 0.0, True, 1)
        assert state.current_step == 0
        assert nxt.current_step == 1
        assert nxt.last_step == StepSnapshot(step=0, tokens_used=5, cost=0.0, had_action=True, output_signature=1)

    def test_abort_flags_copy(self) -> None:
        state = RunState.initial("r1")
        aborted = state.abort()
        assert aborted.abort_requested
        assert not state.abort_requested

    def test_state_is_frozen(self) -> None:
        state = RunState.initial("r1")
        with pytest.raises(ValidationError):
            state.current_step = 5  # type: ignore[misc]


class TestStagnation:
    def test_three_identical_idle_outputs(self) -> None:
        state = RunState.initial("r1")
        for _ in range(3):
            state = _idle(state, "same")
        assert state.consecutive_repeat_count == 3
        assert state.is_stuck(3)
        assert not state.is_stuck(4)

    def test_interleaved_outputs_count_only_tail(self) -> None:
        state = RunState.initial("r1")
        for text in ("A", "B", "A", "A"):
            state = _idle(state, text)
        assert state.consecutive_repeat_count == 2

    def test_action_resets_counter(self) -> None:
        state = RunState.initial("r1")
        state = _idle(state, "same")
        state = _idle(state, "same")
        state = state.complete_step(10, 0.0, True, content_signature("same"))
        assert state.consecutive_repeat_count == 0

    def test_action_step_breaks_the_run(self) -> None:
        sig = content_signature("same")
        state = RunState.initial("r1")
        state = state.complete_step(10, 0.0, False, sig)
        state = state.complete_step(10, 0.0, True, sig)
        state = state.complete_step(10, 0.0, False, sig)
        assert state.consecutive_repeat_count == 1


class TestPredicates:
    def test_cost_limit_disabled_when_non_positive(self) -> None:
        state = RunState.initial("r1").complete_step(1000, 5.0, True, 0)
        assert not state.cost_exceeded(0)
        assert not state.cost_exceeded(-1)

    def test_cost_exceeded_once_over_limit(self) -> None:
        state = RunState.initial("r1").complete_step(100, 0.5, True, 0)
        assert not state.cost_exceeded(0.5)
        state = state.complete_step(100, 0.1, True, 0)
        assert state.cost_exceeded(0.5)

    def test_max_steps_reached(self) -> None:
        state = RunState.initial("r1")
        state = state.complete_step(1, 0.0, True, 0).complete_step(1, 0.0, True, 0)
        assert state.max_steps_reached(2)
        assert not state.max_steps_reached(3)

    def test_timeout_uses_clock(self) -> None:
        with patch("agent_harness.domain.run_state.utc_now", return_value=_BASE):
            state = RunState.initial("r1")
        with patch("agent_harness.domain.run_state.utc_now", return_value=_BASE + timedelta(minutes=5)):
            assert state.elapsed == timedelta(minutes=5)
            assert state.timeout_exceeded(timedelta(minutes=4))
            assert not state.timeout_exceeded(timedelta(minutes=5))


class TestSignatures:
    def test_empty_text_signature_is_zero(self) -> None:
        assert content_signature("") == 0
        assert content_signature(None) == 0

    def test_signature_is_stable(self) -> None:
        assert content_signature("hello") == content_signature("hello")
        assert content_signature("hello") != content_signature("world")


class TestClock:
    def test_utc_now_is_aware(self) -> None:
        from agent_harness.foundation.clock import utc_now

        assert utc_now().tzinfo is not None

    def test_elapsed_since(self) -> None:
        from agent_harness.foundation.clock import elapsed_since

        with patch("agent_harness.foundation.clock.utc_now", return_value=_BASE + timedelta(seconds=30)):
            assert elapsed_since(_BASE) == timedelta(seconds=30)
