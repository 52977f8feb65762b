"""TurnLimitedLoop — bounded generate/act turns with multi-condition stop.

Per step:
    1. Pre-step check in fixed priority order: abort → max steps →
       timeout → cost limit → stagnation.  The first match ends the loop
       without calling the model for that step.
    2. Call the generation collaborator with the conversation and the
       available actions (blocking), then record tokens, cost and output
       signature via RunState.complete_step().
    3. No requested actions → the model considers the task finished
       (FINISH_SIGNALED, "natural completion").
    4. The reserved finish action among the requests → FINISH_SIGNALED.
    5. Otherwise let the optional ActionExecutor fold results into the
       conversation.
    6. Every Nth step (0 disables) ask the jury; a pass, or a score at or
       above the configured threshold, ends the loop.

Any collaborator exception ends the run with reason ERROR.  Every step whose
generation returned is kept on the result, with its output and tokens,
even when the executor or jury then fails.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, Field

from agent_harness.config import Settings
from agent_harness.core import termination
from agent_harness.core.cancellation import CancellationToken
from agent_harness.core.collaborators import ActionExecutor, Generator, Jury
from agent_harness.core.listeners import dispatch
from agent_harness.domain.conversation import Conversation, Generation, MessageRole
from agent_harness.domain.enums import LoopStatus, LoopType, TerminationReason
from agent_harness.domain.run_state import RunState
from agent_harness.domain.termination import TerminationDecision
from agent_harness.domain.verdict import Verdict
from agent_harness.foundation.identifiers import new_run_id
from agent_harness.foundation.signatures import content_signature
from agent_harness.models.results import TurnLimitedResult, run_metrics

logger = logging.getLogger(__name__)


# ── Configuration ────────────────────────────────────────────────────────────

class TurnLimitedConfig(BaseModel):
    """Validated, immutable settings for a TurnLimitedLoop.

    cost_limit and evaluate_every_n_steps use 0 to mean "disabled";
    score_threshold of 0 means only a jury pass ends the loop.
    """

    max_steps: int = Field(default=50, gt=0)
    timeout: timedelta = Field(default=timedelta(minutes=30))
    score_threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    stuck_threshold: int = Field(default=3, ge=0)
    cost_limit: float = Field(default=0.0, ge=0.0)
    cost_per_token: float = Field(default=0.000006, ge=0.0)
    evaluate_every_n_steps: int = Field(default=0, ge=0)
    working_directory: Path = Field(default=Path("."))
    actions: tuple[str, ...] = ()
    finish_action_name: str = Field(default="complete_task", min_length=1)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> TurnLimitedConfig:
        values = {
            "max_steps": settings.max_steps,
            "timeout": timedelta(seconds=settings.timeout_seconds),
            "score_threshold": settings.score_threshold,
            "stuck_threshold": settings.stuck_threshold,
            "cost_limit": settings.cost_limit,
            "cost_per_token": settings.cost_per_token,
            "evaluate_every_n_steps": settings.evaluate_every_n_steps,
            "finish_action_name": settings.finish_action_name,
        }
        values.update(overrides)
        return cls(**values)


class TurnLimitedListener:
    """Lifecycle hooks.  Override what you need; all default to no-ops."""

    def on_loop_started(self, run_id: str, prompt: str) -> None: ...

    def on_step_started(self, run_id: str, step: int) -> None: ...

    def on_step_completed(self, run_id: str, step: int, reason: TerminationReason | None) -> None: ...

    def on_loop_completed(self, result: TurnLimitedResult) -> None: ...

    def on_loop_failed(self, result: TurnLimitedResult, error: BaseException) -> None: ...


class _RunProgress:
    """Mutable bookkeeping owned by one execute() call.

    Each step is recorded here as soon as its generation returns, before
    the executor or jury run, so a later failure keeps it.
    """

    def __init__(self, run_id: str) -> None:
        self.state = RunState.initial(run_id)
        self.last_output: str | None = None
        self.last_verdict: Verdict | None = None

    def record(self, generation: Generation, cost: float, had_action: bool) -> None:
        self.state = self.state.complete_step(
            generation.tokens_used, cost, had_action, content_signature(generation.text)
        )
        self.last_output = generation.text


# ── Loop ─────────────────────────────────────────────────────────────────────

class TurnLimitedLoop:
    """Turn-limited multi-condition loop.

    Usage:
        loop = TurnLimitedLoop(TurnLimitedConfig(max_steps=20), jury=my_jury)
        result = loop.execute("Fix the failing test", generator)
    """

    loop_type = LoopType.TURN_LIMITED

    def __init__(
        self,
        config: TurnLimitedConfig | None = None,
        *,
        jury: Jury | None = None,
        executor: ActionExecutor | None = None,
        listeners: Sequence[TurnLimitedListener] = (),
    ) -> None:
        self._config = config or TurnLimitedConfig()
        self._jury = jury
        self._executor = executor
        self._listeners: list[TurnLimitedListener] = list(listeners)

    @property
    def config(self) -> TurnLimitedConfig:
        return self._config

    def add_listener(self, listener: TurnLimitedListener) -> None:
        self._listeners.append(listener)

    @property
    def termination_strategy(self) -> termination.TerminationStrategy:
        """The pre-step checks, in the order they are applied."""
        cfg = self._config
        return termination.all_of([
            termination.abort_signal(),
            termination.max_steps(cfg.max_steps),
            termination.timeout(cfg.timeout),
            termination.cost_limit(cfg.cost_limit),
            termination.stuck_detection(cfg.stuck_threshold),
        ])

    # ── Public API ───────────────────────────────────────────────────────

    def execute(
        self,
        prompt: str,
        generator: Generator,
        actions: Sequence[str] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> TurnLimitedResult:
        """Run turns until a termination condition fires.  Never raises."""
        run_id = run_id or new_run_id()
        token = cancel_token or CancellationToken()
        available = tuple(actions if actions is not None else self._config.actions)
        conversation = Conversation.from_prompt(prompt)
        strategy = self.termination_strategy
        progress = _RunProgress(run_id)

        logger.debug(
            "Loop started: run=%s max_steps=%d timeout=%s",
            run_id, self._config.max_steps, self._config.timeout,
        )
        dispatch(self._listeners, "on_loop_started", run_id, prompt)

        try:
            while True:
                if token.cancelled and not progress.state.abort_requested:
                    progress.state = progress.state.abort()
                decision = self._execute_step(progress, conversation, generator, available, strategy)
                if decision.should_terminate:
                    break
        except Exception as exc:
            logger.error("Loop failed for run %s: %s", run_id, exc, exc_info=True)
            result = self._build_result(
                progress, LoopStatus.FAILED, TerminationReason.ERROR, str(exc) or type(exc).__name__
            )
            dispatch(self._listeners, "on_loop_failed", result, exc)
            return result

        logger.info(
            "Loop completed: %d steps, reason=%s, tokens=%d",
            progress.state.current_step, decision.reason.value, progress.state.total_tokens_used,
        )
        result = self._build_result(progress, LoopStatus.COMPLETED, decision.reason, decision.message)
        dispatch(self._listeners, "on_loop_completed", result)
        return result

    # ── Step execution ───────────────────────────────────────────────────

    def _execute_step(
        self,
        progress: _RunProgress,
        conversation: Conversation,
        generator: Generator,
        available: tuple[str, ...],
        strategy: termination.TerminationStrategy,
    ) -> TerminationDecision:
        state = progress.state
        step = state.current_step
        pre_check = strategy(state, None)
        if pre_check.should_terminate:
            logger.info("Terminating before step %d: %s", step + 1, pre_check.message)
            return pre_check

        dispatch(self._listeners, "on_step_started", state.run_id, step)
        logger.info("Step %d starting", step + 1)

        generation = generator.generate(conversation, available)
        for action in generation.requested_actions:
            logger.info("  Step %d action: %s(%s)", step + 1, action.name, _truncate(str(action.arguments), 100))

        cost = generation.tokens_used * self._config.cost_per_token
        progress.record(generation, cost, generation.has_actions)

        if not generation.has_actions:
            decision = TerminationDecision.terminate(
                TerminationReason.FINISH_SIGNALED, "natural completion"
            )
            logger.info("Step %d completed: no actions requested", step + 1)
            dispatch(self._listeners, "on_step_completed", state.run_id, step, decision.reason)
            return decision

        if generation.requests_action(self._config.finish_action_name):
            decision = TerminationDecision.terminate(
                TerminationReason.FINISH_SIGNALED,
                f"Finish action '{self._config.finish_action_name}' requested",
            )
            logger.info("Step %d completed: finish action requested", step + 1)
            dispatch(self._listeners, "on_step_completed", state.run_id, step, decision.reason)
            return decision

        conversation.append(MessageRole.ASSISTANT, generation.text)
        if self._executor is not None:
            self._executor.execute(generation.requested_actions, conversation)

        decision = self._post_step_check(progress, generation)
        dispatch(
            self._listeners, "on_step_completed", state.run_id, step,
            decision.reason if decision.should_terminate else None,
        )
        return decision

    def _post_step_check(self, progress: _RunProgress, generation: Generation) -> TerminationDecision:
        every = self._config.evaluate_every_n_steps
        state = progress.state
        if self._jury is None or every == 0 or state.current_step % every != 0:
            return TerminationDecision.proceed()

        verdict = self._jury.evaluate(state, generation.text, self._config.working_directory)
        progress.last_verdict = verdict
        logger.debug("Step %d verdict: score=%.2f passed=%s", state.current_step, verdict.score, verdict.passed)

        if verdict.passed:
            return TerminationDecision.terminate(
                TerminationReason.SCORE_THRESHOLD_MET,
                f"Jury passed with score {verdict.score:.2f}",
            )

        threshold = self._config.score_threshold
        if threshold > 0 and verdict.score >= threshold:
            return TerminationDecision.terminate(
                TerminationReason.SCORE_THRESHOLD_MET,
                f"Score {verdict.score:.2f} >= threshold {threshold:.2f}",
            )

        return TerminationDecision.proceed()

    def _build_result(
        self,
        progress: _RunProgress,
        status: LoopStatus,
        reason: TerminationReason,
        message: str | None,
    ) -> TurnLimitedResult:
        return TurnLimitedResult(
            run_id=progress.state.run_id,
            output=progress.last_output,
            status=status,
            reason=reason,
            message=message,
            final_state=progress.state,
            last_verdict=progress.last_verdict,
            **run_metrics(progress.state),
        )


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
