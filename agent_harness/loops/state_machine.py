"""StateMachineLoop — explicit named states with per-state handlers.

Each iteration:
    - abort requested → EXTERNAL_SIGNAL
    - current state terminal → STATE_TERMINAL
    - timeout or iteration budget exhausted → MAX_ITERATIONS_REACHED
    - otherwise run the registered handler, or the built-in default for
      INITIAL / RUNNING / AWAITING_JUDGMENT.  States with neither stay put.

Handlers return a TransitionResult: stay, transition_to, complete or fail.
A transition to a name outside the current state's legal set is logged
and ignored; the machine remains where it is.

Jury evaluation is resolved centrally by the loop, not by a handler, for
every state listed in ``evaluate_on_states`` (AWAITING_JUDGMENT by default).
A passing verdict turns the iteration into a completion.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from pydantic import BaseModel, Field, model_validator

from agent_harness.config import Settings
from agent_harness.core.cancellation import CancellationToken
from agent_harness.core.collaborators import Generator, Jury
from agent_harness.core.listeners import dispatch
from agent_harness.domain import agent_state as predefined
from agent_harness.domain.agent_state import AgentState
from agent_harness.domain.conversation import Conversation
from agent_harness.domain.enums import LoopStatus, LoopType, TerminationReason
from agent_harness.domain.run_state import RunState
from agent_harness.foundation.clock import elapsed_since, utc_now
from agent_harness.foundation.identifiers import new_run_id
from agent_harness.foundation.signatures import content_signature
from agent_harness.models.results import StateMachineResult, StateTransition, run_metrics

logger = logging.getLogger(__name__)


# ── Handler contract ─────────────────────────────────────────────────────────

class TransitionResult(BaseModel):
    """What a state handler decided for the current iteration."""

    next_state: str | None = None
    output: str | None = None
    should_continue: bool = True
    reason: str | None = None
    tokens_used: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def stay(cls, output: str | None = None) -> TransitionResult:
        return cls(output=output)

    @classmethod
    def transition_to(cls, state: str, output: str | None = None, reason: str | None = None) -> TransitionResult:
        return cls(next_state=state, output=output, reason=reason)

    @classmethod
    def complete(cls, output: str | None, reason: str | None = None) -> TransitionResult:
        return cls(next_state=predefined.COMPLETED.name, output=output, should_continue=False, reason=reason)

    @classmethod
    def fail(cls, output: str | None, reason: str | None = None) -> TransitionResult:
        return cls(next_state=predefined.FAILED.name, output=output, should_continue=False, reason=reason)


class StateContext:
    """Input handed to a state handler.

    ``attributes`` is shared by reference across every iteration of one
    execution, so handlers can leave notes for later states.
    """

    __slots__ = ("current_state", "input", "last_output", "iteration", "attributes")

    def __init__(
        self,
        current_state: AgentState,
        input: str,
        iteration: int,
        last_output: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self.current_state = current_state
        self.input = input
        self.iteration = iteration
        self.last_output = last_output
        self.attributes = attributes if attributes is not None else {}


StateHandler = Callable[[StateContext], TransitionResult]


# ── Configuration ────────────────────────────────────────────────────────────

class StateMachineConfig(BaseModel):
    states: dict[str, AgentState] = Field(default_factory=lambda: dict(predefined.DEFAULT_STATES))
    initial_state: str = predefined.INITIAL.name
    max_iterations: int = Field(default=100, gt=0)
    timeout: timedelta = Field(default=timedelta(minutes=60))
    working_directory: Path = Field(default=Path("."))
    evaluate_on_states: frozenset[str] = Field(
        default_factory=lambda: frozenset({predefined.AWAITING_JUDGMENT.name})
    )
    actions: tuple[str, ...] = ()
    finish_action_name: str = Field(default="complete_task", min_length=1)
    cost_per_token: float = Field(default=0.000006, ge=0.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _initial_state_is_defined(self) -> StateMachineConfig:
        if self.initial_state not in self.states:
            raise ValueError(f"Initial state not found in states: {self.initial_state}")
        return self

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> StateMachineConfig:
        values = {
            "max_iterations": settings.state_max_iterations,
            "timeout": timedelta(seconds=settings.state_timeout_seconds),
            "cost_per_token": settings.cost_per_token,
            "finish_action_name": settings.finish_action_name,
        }
        values.update(overrides)
        return cls(**values)

    def get_state(self, name: str) -> AgentState | None:
        """Look up *name* in the configured states, then the predefined ones."""
        return self.states.get(name) or predefined.PREDEFINED_STATES.get(name)


class StateMachineListener:
    def on_loop_started(self, run_id: str, prompt: str) -> None: ...

    def on_state_entered(self, run_id: str, state: AgentState, iteration: int) -> None: ...

    def on_state_exited(self, run_id: str, state: AgentState, output: str | None) -> None: ...

    def on_transition(self, run_id: str, transition: StateTransition) -> None: ...

    def on_loop_completed(self, result: StateMachineResult) -> None: ...

    def on_loop_failed(self, result: StateMachineResult, error: BaseException) -> None: ...


# ── Loop ─────────────────────────────────────────────────────────────────────

class StateMachineLoop:
    """Status-based state machine loop."""

    loop_type = LoopType.STATE_MACHINE

    def __init__(
        self,
        config: StateMachineConfig | None = None,
        *,
        handlers: Mapping[str, StateHandler] | None = None,
        jury: Jury | None = None,
        listeners: Sequence[StateMachineListener] = (),
    ) -> None:
        self._config = config or StateMachineConfig()
        self._handlers: dict[str, StateHandler] = dict(handlers or {})
        self._jury = jury
        self._listeners: list[StateMachineListener] = list(listeners)

    @property
    def config(self) -> StateMachineConfig:
        return self._config

    def register_handler(self, state_name: str, handler: StateHandler) -> None:
        self._handlers[state_name] = handler

    def add_listener(self, listener: StateMachineListener) -> None:
        self._listeners.append(listener)

    # ── Public API ───────────────────────────────────────────────────────

    def execute(
        self,
        prompt: str,
        generator: Generator,
        actions: Sequence[str] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> StateMachineResult:
        run_id = run_id or new_run_id()
        token = cancel_token or CancellationToken()
        available = tuple(actions if actions is not None else self._config.actions)

        run = _MachineRun(run_id, self._config.states[self._config.initial_state])
        logger.debug("State machine loop started: run=%s initial=%s", run_id, run.current.name)
        dispatch(self._listeners, "on_loop_started", run_id, prompt)

        try:
            reason, message = self._run_states(run, prompt, generator, available, token)
        except Exception as exc:
            logger.error("Loop failed for run %s: %s", run_id, exc, exc_info=True)
            result = run.to_result(LoopStatus.FAILED, TerminationReason.ERROR, str(exc) or type(exc).__name__)
            dispatch(self._listeners, "on_loop_failed", result, exc)
            return result

        if run.current.name == predefined.COMPLETED.name:
            status = LoopStatus.COMPLETED
        elif run.current.name == predefined.FAILED.name:
            status = LoopStatus.FAILED
        else:
            status = LoopStatus.STOPPED

        logger.info(
            "State machine loop completed: final=%s transitions=%d reason=%s",
            run.current.name, len(run.transitions), reason.value,
        )
        result = run.to_result(status, reason, message)
        dispatch(self._listeners, "on_loop_completed", result)
        return result

    # ── Iteration ────────────────────────────────────────────────────────

    def _run_states(
        self,
        run: _MachineRun,
        prompt: str,
        generator: Generator,
        available: tuple[str, ...],
        token: CancellationToken,
    ) -> tuple[TerminationReason, str]:
        cfg = self._config

        for iteration in range(1, cfg.max_iterations + 1):
            if token.cancelled:
                run.state = run.state.abort()
                return TerminationReason.EXTERNAL_SIGNAL, "Abort signal received"

            if run.current.terminal:
                return TerminationReason.STATE_TERMINAL, f"State {run.current.name} is terminal"

            if run.state.timeout_exceeded(cfg.timeout):
                logger.warning("State machine timed out after %s in state %s", cfg.timeout, run.current.name)
                return TerminationReason.MAX_ITERATIONS_REACHED, f"Timeout exceeded: {cfg.timeout}"

            started = utc_now()
            dispatch(self._listeners, "on_state_entered", run.state.run_id, run.current, iteration)

            outcome = self._handle(run, prompt, generator, available, iteration)
            run.last_output = outcome.output
            dispatch(self._listeners, "on_state_exited", run.state.run_id, run.current, run.last_output)

            run.state = run.state.complete_step(
                outcome.tokens_used,
                outcome.tokens_used * cfg.cost_per_token,
                False,
                content_signature(run.last_output),
            )

            if self._jury is not None and run.current.name in cfg.evaluate_on_states:
                verdict = self._jury.evaluate(run.state, run.last_output, cfg.working_directory)
                logger.debug("Iteration %d verdict: score=%.2f passed=%s", iteration, verdict.score, verdict.passed)
                if verdict.passed:
                    outcome = TransitionResult.complete(
                        run.last_output, f"Jury passed with score {verdict.score:.2f}"
                    )

            previous = run.current
            if outcome.next_state is not None:
                self._apply_transition(run, outcome)

            transition = StateTransition(
                iteration=iteration,
                from_state=previous,
                to_state=run.current,
                output=run.last_output,
                duration=elapsed_since(started),
                reason=outcome.reason,
            )
            run.transitions.append(transition)
            if previous.name != run.current.name:
                dispatch(self._listeners, "on_transition", run.state.run_id, transition)

            if run.current.terminal:
                return TerminationReason.STATE_TERMINAL, outcome.reason or f"Reached {run.current.name}"
            if not outcome.should_continue:
                logger.warning(
                    "Handler for %s asked to stop but %s is not reachable; staying",
                    previous.name, outcome.next_state,
                )

        return TerminationReason.MAX_ITERATIONS_REACHED, f"Reached max iterations: {cfg.max_iterations}"

    def _apply_transition(self, run: _MachineRun, outcome: TransitionResult) -> None:
        target = self._config.get_state(outcome.next_state)
        if target is None:
            logger.warning("Unknown target state %s from %s; staying", outcome.next_state, run.current.name)
            return
        if not run.current.can_transition_to(target):
            logger.warning("Invalid transition from %s to %s; staying", run.current.name, target.name)
            return
        logger.debug(
            "State transition: %s -> %s (reason: %s)", run.current.name, target.name, outcome.reason or "",
        )
        run.current = target

    def _handle(
        self,
        run: _MachineRun,
        prompt: str,
        generator: Generator,
        available: tuple[str, ...],
        iteration: int,
    ) -> TransitionResult:
        handler = self._handlers.get(run.current.name)
        if handler is not None:
            context = StateContext(
                current_state=run.current,
                input=prompt,
                last_output=run.last_output,
                iteration=iteration,
                attributes=run.attributes,
            )
            return handler(context)
        return self._default_behavior(run, prompt, generator, available)

    def _default_behavior(
        self,
        run: _MachineRun,
        prompt: str,
        generator: Generator,
        available: tuple[str, ...],
    ) -> TransitionResult:
        """Built-in behaviour for the three well-known state names only."""
        name = run.current.name

        if name == predefined.INITIAL.name:
            return TransitionResult.transition_to(predefined.RUNNING.name)

        if name == predefined.RUNNING.name:
            try:
                generation = generator.generate(Conversation.from_prompt(prompt), available)
            except Exception as exc:
                logger.error("Generation failed in state %s: %s", name, exc)
                return TransitionResult.fail(None, f"Generation failed: {exc}")

            if generation.requests_action(self._config.finish_action_name):
                return TransitionResult.complete(generation.text, "Finish action requested").model_copy(
                    update={"tokens_used": generation.tokens_used}
                )
            target = predefined.AWAITING_JUDGMENT.name if self._jury is not None else predefined.COMPLETED.name
            return TransitionResult.transition_to(target, generation.text).model_copy(
                update={"tokens_used": generation.tokens_used}
            )

        # AWAITING_JUDGMENT is resolved centrally; any other state stays put.
        return TransitionResult.stay(run.last_output)


class _MachineRun:
    """Mutable bookkeeping owned by one execute() call."""

    def __init__(self, run_id: str, initial: AgentState) -> None:
        self.state = RunState.initial(run_id)
        self.current = initial
        self.last_output: str | None = None
        self.transitions: list[StateTransition] = []
        self.attributes: dict[str, Any] = {}

    def to_result(self, status: LoopStatus, reason: TerminationReason, message: str) -> StateMachineResult:
        return StateMachineResult(
            run_id=self.state.run_id,
            output=self.last_output,
            status=status,
            reason=reason,
            message=message,
            transitions=tuple(self.transitions),
            final_agent_state=self.current,
            attributes=self.attributes,
            final_state=self.state,
            **run_metrics(self.state),
        )
