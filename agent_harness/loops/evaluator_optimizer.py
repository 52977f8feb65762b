"""EvaluatorOptimizerLoop — Actor → Evaluator → Reflector trials.

Each trial:
    1. Actor: generate from the prompt, seeded with the previous trial's
       reflection after the first trial.
    2. Evaluator: the jury scores the output (optional).
    3. Reflector: generate critique text for the next trial.  Skipped on
       the final trial and whenever the loop is about to stop.

Trials run strictly in sequence because each reflection seeds the next.

Termination, in check order: cancellation → timeout (at trial start) →
finish action → pass / score threshold → stagnation → trial budget
exhausted (MAX_ITERATIONS_REACHED).

Stagnation uses the score history, not content signatures: with window
``stuck_threshold``, the loop is stuck when the best score inside the last
window has not improved by at least ``improvement_delta`` over the best
score seen before the window.

Without a jury every score-based path (threshold, stagnation) is disabled
and the loop runs until its trial budget or another condition fires.
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
from agent_harness.core.collaborators import Generator, Jury
from agent_harness.core.listeners import dispatch
from agent_harness.domain.conversation import Conversation
from agent_harness.domain.enums import LoopStatus, LoopType, TerminationReason
from agent_harness.domain.run_state import RunState
from agent_harness.domain.verdict import Verdict
from agent_harness.foundation.clock import elapsed_since, utc_now
from agent_harness.foundation.identifiers import new_run_id
from agent_harness.foundation.signatures import content_signature
from agent_harness.models.results import EvaluatorOptimizerResult, TrialRecord, run_metrics

logger = logging.getLogger(__name__)

DEFAULT_REFLECTOR_PROMPT = (
    "You are a reflection agent. Analyze the previous attempt and its evaluation.\n"
    "Provide specific, actionable feedback to improve the next attempt.\n"
    "Focus on what went wrong and how to fix it."
)


# ── Configuration ────────────────────────────────────────────────────────────

class EvaluatorOptimizerConfig(BaseModel):
    max_trials: int = Field(default=10, gt=0)
    timeout: timedelta = Field(default=timedelta(minutes=60))
    score_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    require_pass: bool = Field(default=False, description="Use the jury pass flag instead of the score")
    stuck_threshold: int = Field(default=3, ge=0, description="Trials without improvement; 0 disables")
    improvement_delta: float = Field(default=0.01, ge=0.0)
    cost_per_token: float = Field(default=0.000006, ge=0.0)
    working_directory: Path = Field(default=Path("."))
    reflector_prompt: str = DEFAULT_REFLECTOR_PROMPT
    actions: tuple[str, ...] = ()
    finish_action_name: str = Field(default="complete_task", min_length=1)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> EvaluatorOptimizerConfig:
        values = {
            "max_trials": settings.max_trials,
            "timeout": timedelta(seconds=settings.trial_timeout_seconds),
            "score_threshold": settings.trial_score_threshold,
            "require_pass": settings.require_pass,
            "stuck_threshold": settings.stuck_threshold,
            "improvement_delta": settings.improvement_delta,
            "cost_per_token": settings.cost_per_token,
            "finish_action_name": settings.finish_action_name,
        }
        values.update(overrides)
        return cls(**values)


class EvaluatorOptimizerListener:
    def on_loop_started(self, run_id: str, prompt: str) -> None: ...

    def on_trial_started(self, run_id: str, trial: int) -> None: ...

    def on_actor_completed(self, run_id: str, trial: int, output: str) -> None: ...

    def on_evaluation_completed(self, run_id: str, trial: int, score: float, passed: bool) -> None: ...

    def on_reflection_completed(self, run_id: str, trial: int, reflection: str) -> None: ...

    def on_trial_completed(self, run_id: str, trial: int, record: TrialRecord) -> None: ...

    def on_loop_completed(self, result: EvaluatorOptimizerResult) -> None: ...

    def on_loop_failed(self, result: EvaluatorOptimizerResult, error: BaseException) -> None: ...


def is_stagnant(scores: Sequence[float], window: int, min_delta: float) -> bool:
    """True when the last *window* scores failed to beat the earlier best by *min_delta*."""
    if window <= 0 or len(scores) <= window:
        return False
    earlier_best = max(scores[:-window])
    recent_best = max(scores[-window:])
    return (recent_best - earlier_best) < min_delta


class _TrialProgress:
    """Mutable bookkeeping owned by one execute() call."""

    def __init__(self, run_id: str) -> None:
        self.state = RunState.initial(run_id)
        self.trials: list[TrialRecord] = []
        self.scores: list[float] = []
        self.reflection = ""
        self.best: TrialRecord | None = None
        self.best_reflection: str | None = None
        self.last_output: str | None = None

    def offer(self, record: TrialRecord, seeded_by: str) -> None:
        if self.best is None or record.score > self.best.score:
            self.best = record
            self.best_reflection = seeded_by


# ── Loop ─────────────────────────────────────────────────────────────────────

class EvaluatorOptimizerLoop:
    """Reflexion-style self-improvement loop."""

    loop_type = LoopType.EVALUATOR_OPTIMIZER

    def __init__(
        self,
        config: EvaluatorOptimizerConfig | None = None,
        *,
        jury: Jury | None = None,
        listeners: Sequence[EvaluatorOptimizerListener] = (),
    ) -> None:
        self._config = config or EvaluatorOptimizerConfig()
        self._jury = jury
        self._listeners: list[EvaluatorOptimizerListener] = list(listeners)

    @property
    def config(self) -> EvaluatorOptimizerConfig:
        return self._config

    def add_listener(self, listener: EvaluatorOptimizerListener) -> None:
        self._listeners.append(listener)

    @property
    def termination_strategy(self) -> termination.TerminationStrategy:
        return termination.all_of([
            termination.abort_signal(),
            termination.timeout(self._config.timeout),
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
    ) -> EvaluatorOptimizerResult:
        run_id = run_id or new_run_id()
        token = cancel_token or CancellationToken()
        available = tuple(actions if actions is not None else self._config.actions)
        progress = _TrialProgress(run_id)

        logger.debug(
            "Evaluator-optimizer loop started: run=%s max_trials=%d threshold=%.2f",
            run_id, self._config.max_trials, self._config.score_threshold,
        )
        dispatch(self._listeners, "on_loop_started", run_id, prompt)

        try:
            reason, message = self._run_trials(progress, prompt, generator, available, token)
        except Exception as exc:
            logger.error("Loop failed for run %s: %s", run_id, exc, exc_info=True)
            result = self._build_result(
                run_id, progress, LoopStatus.FAILED, TerminationReason.ERROR,
                str(exc) or type(exc).__name__,
            )
            dispatch(self._listeners, "on_loop_failed", result, exc)
            return result

        logger.info(
            "Evaluator-optimizer loop completed: trials=%d best_score=%.2f reason=%s",
            len(progress.trials), progress.best.score if progress.best else 0.0, reason.value,
        )
        result = self._build_result(run_id, progress, LoopStatus.COMPLETED, reason, message)
        dispatch(self._listeners, "on_loop_completed", result)
        return result

    # ── Trial loop ───────────────────────────────────────────────────────

    def _run_trials(
        self,
        progress: _TrialProgress,
        prompt: str,
        generator: Generator,
        available: tuple[str, ...],
        token: CancellationToken,
    ) -> tuple[TerminationReason, str]:
        cfg = self._config
        run_id = progress.state.run_id
        pre_trial = self.termination_strategy

        for trial in range(1, cfg.max_trials + 1):
            if token.cancelled:
                progress.state = progress.state.abort()
            decision = pre_trial(progress.state, None)
            if decision.should_terminate:
                return decision.reason, decision.message or decision.reason.value

            trial_start = utc_now()
            dispatch(self._listeners, "on_trial_started", run_id, trial)
            seeded_by = progress.reflection

            # Phase 1: actor
            actor_prompt = prompt if trial == 1 else (
                f"{prompt}\n\nReflection from previous trial:\n{progress.reflection}"
            )
            generation = generator.generate(Conversation.from_prompt(actor_prompt), available)
            output = generation.text
            progress.last_output = output
            progress.state = progress.state.complete_step(
                generation.tokens_used,
                generation.tokens_used * cfg.cost_per_token,
                generation.has_actions,
                content_signature(output),
            )
            logger.debug("Trial %d actor completed: tokens=%d", trial, generation.tokens_used)
            dispatch(self._listeners, "on_actor_completed", run_id, trial, output)

            if generation.requests_action(cfg.finish_action_name):
                return TerminationReason.FINISH_SIGNALED, (
                    f"Finish action '{cfg.finish_action_name}' requested in trial {trial}"
                )

            # Phase 2: evaluator
            verdict = self._evaluate(progress.state, output)
            score = verdict.score if verdict else 0.0
            passed = verdict.passed if verdict else False
            progress.scores.append(score)
            dispatch(self._listeners, "on_evaluation_completed", run_id, trial, score, passed)
            logger.debug("Trial %d score: %.2f passed=%s", trial, score, passed)

            stop = self._score_decision(verdict, progress.scores)

            # Phase 3: reflector
            reflection = ""
            if stop is None and trial < cfg.max_trials:
                reflection = self._reflect(progress, generator, output, verdict, trial)
                dispatch(self._listeners, "on_reflection_completed", run_id, trial, reflection)

            record = TrialRecord(
                trial_number=trial,
                output=output,
                score=score,
                passed=passed,
                reflection=reflection,
                duration=elapsed_since(trial_start),
            )
            progress.trials.append(record)
            progress.offer(record, seeded_by)
            dispatch(self._listeners, "on_trial_completed", run_id, trial, record)

            if stop is not None:
                return stop

        return TerminationReason.MAX_ITERATIONS_REACHED, f"Reached max trials: {cfg.max_trials}"

    def _evaluate(self, state: RunState, output: str) -> Verdict | None:
        if self._jury is None:
            return None
        return self._jury.evaluate(state, output, self._config.working_directory)

    def _score_decision(
        self, verdict: Verdict | None, scores: list[float]
    ) -> tuple[TerminationReason, str] | None:
        if verdict is None:
            return None
        cfg = self._config
        if cfg.require_pass and verdict.passed:
            return TerminationReason.SCORE_THRESHOLD_MET, f"Jury passed with score {verdict.score:.2f}"
        if not cfg.require_pass and verdict.score >= cfg.score_threshold:
            return TerminationReason.SCORE_THRESHOLD_MET, (
                f"Score {verdict.score:.2f} >= threshold {cfg.score_threshold:.2f}"
            )
        if is_stagnant(scores, cfg.stuck_threshold, cfg.improvement_delta):
            return TerminationReason.STUCK_DETECTED, (
                f"No improvement of {cfg.improvement_delta} over {cfg.stuck_threshold} trials"
            )
        return None

    def _reflect(
        self,
        progress: _TrialProgress,
        generator: Generator,
        output: str,
        verdict: Verdict | None,
        trial: int,
    ) -> str:
        reflection_prompt = self._build_reflection_prompt(output, verdict, trial, progress.scores)
        response = generator.generate(Conversation.from_prompt(reflection_prompt), ())
        progress.reflection = response.text
        progress.state = progress.state.complete_step(
            response.tokens_used,
            response.tokens_used * self._config.cost_per_token,
            False,
            content_signature(response.text),
        )
        logger.debug("Trial %d reflection length=%d", trial, len(response.text))
        return response.text

    def _build_reflection_prompt(
        self, output: str, verdict: Verdict | None, trial: int, scores: list[float]
    ) -> str:
        score = verdict.score if verdict else 0.0
        reasoning = verdict.reasoning if verdict else "No jury configured"
        history = ", ".join(f"{s:.2f}" for s in scores)
        lines = [
            "You are a reflector analyzing the output of an AI agent.",
            "",
            f"Trial: {trial}",
            f"Score: {score:.2f}",
            f"Score history: [{history}]",
            "",
            "Agent output:",
            output,
            "",
            "Evaluation reasoning:",
            reasoning,
            "",
            "Please provide constructive feedback for the next trial to improve the score. "
            "Focus on specific actionable improvements.",
        ]
        if self._config.reflector_prompt.strip():
            lines.extend(["", "Additional guidance:", self._config.reflector_prompt])
        return "\n".join(lines)

    def _build_result(
        self,
        run_id: str,
        progress: _TrialProgress,
        status: LoopStatus,
        reason: TerminationReason,
        message: str,
    ) -> EvaluatorOptimizerResult:
        best = progress.best
        metrics = run_metrics(progress.state)
        metrics["steps_completed"] = len(progress.trials)
        if reason == TerminationReason.FINISH_SIGNALED:
            output = progress.last_output
        else:
            output = best.output if best else progress.last_output
        return EvaluatorOptimizerResult(
            run_id=run_id,
            output=output,
            status=status,
            reason=reason,
            message=message,
            trials=tuple(progress.trials),
            best_score=best.score if best else 0.0,
            best_trial_number=best.trial_number if best else None,
            best_reflection=progress.best_reflection,
            final_state=progress.state,
            **metrics,
        )
