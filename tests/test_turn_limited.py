"""Tests for TurnLimitedLoop.

Generation and evaluation collaborators are MagicMock objects returning
fixed Generation / Verdict models, so every run is deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from agent_harness.config import Settings
from agent_harness.core.cancellation import CancellationToken
from agent_harness.domain.conversation import ActionRequest, Generation
from agent_harness.domain.enums import LoopStatus, TerminationReason
from agent_harness.domain.verdict import Verdict
from agent_harness.loops.turn_limited import TurnLimitedConfig, TurnLimitedListener, TurnLimitedLoop

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _action(text: str = "working", name: str = "run_tests", tokens: int = 100) -> Generation:
    return Generation(text=text, requested_actions=[ActionRequest(name=name)], tokens_used=tokens)


def _generator(*generations: Generation) -> MagicMock:
    gen = MagicMock()
    if len(generations) == 1:
        gen.generate.return_value = generations[0]
    else:
        gen.generate.side_effect = list(generations)
    return gen


class TestConfig:
    def test_defaults(self) -> None:
        cfg = TurnLimitedConfig()
        assert cfg.max_steps == 50
        assert cfg.stuck_threshold == 3
        assert cfg.cost_per_token == pytest.approx(0.000006)

    def test_rejects_non_positive_max_steps(self) -> None:
        with pytest.raises(ValidationError):
            TurnLimitedConfig(max_steps=0)

    def test_rejects_score_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            TurnLimitedConfig(score_threshold=1.5)

    def test_from_settings_with_overrides(self) -> None:
        cfg = TurnLimitedConfig.from_settings(Settings(max_steps=7, stuck_threshold=2), cost_limit=1.0)
        assert cfg.max_steps == 7
        assert cfg.stuck_threshold == 2
        assert cfg.cost_limit == 1.0


class TestBudgets:
    def test_max_steps_reached(self) -> None:
        gen = _generator(_action())
        result = TurnLimitedLoop(TurnLimitedConfig(max_steps=4)).execute("do it", gen)
        assert result.reason == TerminationReason.MAX_STEPS_REACHED
        assert result.steps_completed == 4
        assert result.max_steps_reached
        assert result.status == LoopStatus.COMPLETED
        assert gen.generate.call_count == 4

    def test_cost_limit_exceeded(self) -> None:
        gen = _generator(_action(tokens=1000))
        cfg = TurnLimitedConfig(max_steps=20, cost_limit=0.01, cost_per_token=0.000006)
        result = TurnLimitedLoop(cfg).execute("do it", gen)
        assert result.reason == TerminationReason.COST_LIMIT_EXCEEDED
        # 0.006 per step: exceeded after the second step
        assert result.steps_completed == 2
        assert result.total_tokens == 2000

    def test_timeout(self) -> None:
        gen = _generator(_action())
        clock = iter([_BASE, _BASE + timedelta(seconds=10)])

        def now() -> datetime:
            return next(clock, _BASE + timedelta(hours=1))

        with patch("agent_harness.domain.run_state.utc_now", side_effect=now):
            result = TurnLimitedLoop(TurnLimitedConfig(timeout=timedelta(minutes=1))).execute("x", gen)
        assert result.reason == TerminationReason.TIMEOUT
        assert result.timed_out
        assert result.steps_completed == 1


class TestFinishing:
    def test_no_actions_is_natural_completion(self) -> None:
        gen = _generator(_action(), Generation(text="all done", tokens_used=5))
        result = TurnLimitedLoop().execute("do it", gen)
        assert result.reason == TerminationReason.FINISH_SIGNALED
        assert result.message == "natural completion"
        assert result.output == "all done"
        assert result.steps_completed == 2
        assert result.final_state.last_step.had_action is False

    def test_finish_action(self) -> None:
        gen = _generator(_action(), _action(text="finished", name="complete_task"))
        result = TurnLimitedLoop().execute("do it", gen, ["run_tests", "complete_task"])
        assert result.finish_signaled
        assert result.output == "finished"
        assert result.final_state.last_step.had_action is True

    def test_repeated_text_with_actions_is_progress(self) -> None:
        gen = _generator(_action(text="same"))
        result = TurnLimitedLoop(TurnLimitedConfig(max_steps=5, stuck_threshold=2)).execute("x", gen)
        assert result.reason == TerminationReason.MAX_STEPS_REACHED
        assert not result.was_stuck


class TestJury:
    def test_jury_pass_terminates(self) -> None:
        jury = MagicMock()
        jury.evaluate.side_effect = [Verdict(score=0.3), Verdict(score=0.9, passed=True, reasoning="good")]
        cfg = TurnLimitedConfig(max_steps=10, evaluate_every_n_steps=1)
        result = TurnLimitedLoop(cfg, jury=jury).execute("x", _generator(_action()))
        assert result.reason == TerminationReason.SCORE_THRESHOLD_MET
        assert result.steps_completed == 2
        assert result.jury_passed
        assert result.final_score == 0.9

    def test_score_threshold_terminates(self) -> None:
        jury = MagicMock()
        jury.evaluate.return_value = Verdict(score=0.75, passed=False)
        cfg = TurnLimitedConfig(max_steps=10, evaluate_every_n_steps=1, score_threshold=0.7)
        result = TurnLimitedLoop(cfg, jury=jury).execute("x", _generator(_action()))
        assert result.reason == TerminationReason.SCORE_THRESHOLD_MET
        assert result.steps_completed == 1

    def test_evaluates_every_nth_step(self) -> None:
        jury = MagicMock()
        jury.evaluate.return_value = Verdict(score=0.1)
        cfg = TurnLimitedConfig(max_steps=6, evaluate_every_n_steps=3)
        TurnLimitedLoop(cfg, jury=jury).execute("x", _generator(_action()))
        assert jury.evaluate.call_count == 2

    def test_zero_interval_never_evaluates(self) -> None:
        jury = MagicMock()
        TurnLimitedLoop(TurnLimitedConfig(max_steps=3), jury=jury).execute("x", _generator(_action()))
        jury.evaluate.assert_not_called()


class TestCollaborators:
    def test_executor_receives_actions(self) -> None:
        executor = MagicMock()
        gen = _generator(_action(), Generation(text="done"))
        TurnLimitedLoop(executor=executor).execute("x", gen)
        executor.execute.assert_called_once()
        actions, conversation = executor.execute.call_args.args
        assert actions[0].name == "run_tests"
        assert len(conversation) == 2

    def test_available_actions_passed_through(self) -> None:
        gen = _generator(Generation(text="done"))
        TurnLimitedLoop(TurnLimitedConfig(actions=("a", "b"))).execute("x", gen)
        assert gen.generate.call_args.args[1] == ("a", "b")


class TestFailures:
    def test_generator_exception_yields_error_result(self) -> None:
        gen = _generator(_action(text="first"))
        gen.generate.side_effect = [_action(text="first"), RuntimeError("model down")]
        result = TurnLimitedLoop().execute("x", gen)
        assert result.status == LoopStatus.FAILED
        assert result.reason == TerminationReason.ERROR
        assert result.is_failure
        assert result.message == "model down"
        assert result.steps_completed == 1
        assert result.output == "first"

    def test_jury_exception_keeps_completed_step(self) -> None:
        jury = MagicMock()
        jury.evaluate.side_effect = RuntimeError("bad jury")
        cfg = TurnLimitedConfig(evaluate_every_n_steps=1)
        result = TurnLimitedLoop(cfg, jury=jury).execute("x", _generator(_action(text="patched", tokens=100)))
        assert result.reason == TerminationReason.ERROR
        assert result.status == LoopStatus.FAILED
        assert result.total_tokens == 100
        assert result.steps_completed == 1
        assert result.output == "patched"
        assert result.estimated_cost == pytest.approx(100 * 0.000006)

    def test_executor_exception_keeps_completed_step(self) -> None:
        executor = MagicMock()
        executor.execute.side_effect = OSError("sandbox gone")
        result = TurnLimitedLoop(executor=executor).execute("x", _generator(_action(text="patched", tokens=100)))
        assert result.reason == TerminationReason.ERROR
        assert result.message == "sandbox gone"
        assert result.total_tokens == 100
        assert result.steps_completed == 1
        assert result.output == "patched"
        assert result.final_state.last_step.had_action is True


class TestCancellation:
    def test_cancelled_token_stops_before_first_step(self) -> None:
        token = CancellationToken()
        token.cancel()
        gen = _generator(_action())
        result = TurnLimitedLoop().execute("x", gen, cancel_token=token)
        assert result.reason == TerminationReason.EXTERNAL_SIGNAL
        assert result.steps_completed == 0
        gen.generate.assert_not_called()

    def test_cancel_mid_run(self) -> None:
        token = CancellationToken()
        calls = []

        def generate(conversation, actions):
            calls.append(1)
            if len(calls) == 2:
                token.cancel()
            return _action()

        gen = MagicMock()
        gen.generate.side_effect = generate
        result = TurnLimitedLoop().execute("x", gen, cancel_token=token)
        assert result.reason == TerminationReason.EXTERNAL_SIGNAL
        assert result.steps_completed == 2


class TestListeners:
    def test_lifecycle_events(self) -> None:
        listener = MagicMock(spec=TurnLimitedListener)
        gen = _generator(_action(), Generation(text="done"))
        loop = TurnLimitedLoop(listeners=[listener])
        result = loop.execute("x", gen, run_id="run-1")
        listener.on_loop_started.assert_called_once_with("run-1", "x")
        assert listener.on_step_started.call_count == 2
        listener.on_loop_completed.assert_called_once_with(result)

    def test_failing_listener_is_isolated(self) -> None:
        bad = MagicMock(spec=TurnLimitedListener)
        bad.on_step_started.side_effect = RuntimeError("boom")
        good = MagicMock(spec=TurnLimitedListener)
        loop = TurnLimitedLoop()
        loop.add_listener(bad)
        loop.add_listener(good)
        result = loop.execute("x", _generator(Generation(text="done")))
        assert result.is_success
        good.on_step_started.assert_called_once()

    def test_failure_event(self) -> None:
        listener = MagicMock(spec=TurnLimitedListener)
        gen = MagicMock()
        gen.generate.side_effect = RuntimeError("down")
        TurnLimitedLoop(listeners=[listener]).execute("x", gen)
        listener.on_loop_failed.assert_called_once()
        listener.on_loop_completed.assert_not_called()
