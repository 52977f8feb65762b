"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "agent-harness"
    debug: bool = False
    log_level: str = "INFO"

    # Turn-limited loop
    max_steps: int = 50
    timeout_seconds: float = 1800.0
    stuck_threshold: int = 3
    cost_limit: float = 0.0
    cost_per_token: float = 0.000006
    evaluate_every_n_steps: int = 0
    score_threshold: float = 0.0
    finish_action_name: str = "complete_task"

    # Evaluator-optimizer loop
    max_trials: int = 10
    trial_timeout_seconds: float = 3600.0
    trial_score_threshold: float = 0.8
    require_pass: bool = False
    improvement_delta: float = 0.01

    # State machine loop
    state_max_iterations: int = 100
    state_timeout_seconds: float = 3600.0

    # Graph composition
    graph_max_iterations: int = 100

    # Gemini LLM
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.2
    gemini_max_output_tokens: int = 1024

    model_config = {"env_prefix": "HARNESS_"}


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install the root log format used across the harness."""
    logging.basicConfig(
        level=level or settings.log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
