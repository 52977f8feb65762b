"""Tests for environment-driven settings and loop config construction."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

from agent_harness.config import Settings, configure_logging, settings
from agent_harness.loops.evaluator_optimizer import EvaluatorOptimizerConfig
from agent_harness.loops.state_machine import StateMachineConfig


class TestSettings:
    def test_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            s = Settings()
        assert s.max_steps == 50
        assert s.finish_action_name == "complete_task"
        assert s.graph_max_iterations == 100

    def test_env_prefix(self) -> None:
        with patch.dict("os.environ", {"HARNESS_MAX_STEPS": "12", "HARNESS_COST_LIMIT": "2.5"}, clear=True):
            s = Settings()
        assert s.max_steps == 12
        assert s.cost_limit == 2.5


class TestFromSettings:
    def test_evaluator_optimizer(self) -> None:
        cfg = EvaluatorOptimizerConfig.from_settings(
            Settings(max_trials=4, trial_score_threshold=0.6, trial_timeout_seconds=30)
        )
        assert cfg.max_trials == 4
        assert cfg.score_threshold == 0.6
        assert cfg.timeout == timedelta(seconds=30)

    def test_state_machine_override(self) -> None:
        cfg = StateMachineConfig.from_settings(Settings(state_max_iterations=9), max_iterations=3)
        assert cfg.max_iterations == 3


class TestConfigureLogging:
    def test_applies_format_and_level(self) -> None:
        with patch("agent_harness.config.logging.basicConfig") as basic:
            configure_logging("DEBUG")
        kwargs = basic.call_args.kwargs
        assert kwargs["level"] == "DEBUG"
        assert "%(levelname)-8s" in kwargs["format"]

    def test_defaults_to_settings_level(self) -> None:
        with patch("agent_harness.config.logging.basicConfig") as basic:
            configure_logging()
        assert basic.call_args.kwargs["level"] == settings.log_level
