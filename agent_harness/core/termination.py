"""Termination strategies — pluggable predicates over RunState.

A strategy is any callable ``(RunState, Verdict | None) -> TerminationDecision``.
Primitives cover the common budgets; all_of() composes them so the first
strategy that decides to terminate wins.  Order is caller-controlled and
significant: there is no implicit priority.

Usage:
    strategy = all_of([abort_signal(), max_steps(20), stuck_detection(3)])
    decision = strategy(state, None)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Callable, Sequence

from agent_harness.core.collaborators import Jury
from agent_harness.domain.enums import TerminationReason
from agent_harness.domain.run_state import RunState
from agent_harness.domain.termination import TerminationDecision
from agent_harness.domain.verdict import Verdict

logger = logging.getLogger(__name__)

TerminationStrategy = Callable[[RunState, "Verdict | None"], TerminationDecision]


# ── Combinator ───────────────────────────────────────────────────────────────

def all_of(strategies: Sequence[TerminationStrategy]) -> TerminationStrategy:
    """Evaluate *strategies* in order; the first terminating decision wins."""
    chain = tuple(strategies)

    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        for strategy in chain:
            decision = strategy(state, verdict)
            if decision.should_terminate:
                return decision
        return TerminationDecision.proceed()

    return check


# ── Primitives ───────────────────────────────────────────────────────────────

def max_steps(limit: int) -> TerminationStrategy:
    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if state.max_steps_reached(limit):
            return TerminationDecision.terminate(
                TerminationReason.MAX_STEPS_REACHED, f"Reached max steps: {limit}"
            )
        return TerminationDecision.proceed()

    return check


def timeout(limit: timedelta) -> TerminationStrategy:
    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if state.timeout_exceeded(limit):
            return TerminationDecision.terminate(
                TerminationReason.TIMEOUT, f"Timeout exceeded: {limit}"
            )
        return TerminationDecision.proceed()

    return check


def cost_limit(limit: float) -> TerminationStrategy:
    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if state.cost_exceeded(limit):
            return TerminationDecision.terminate(
                TerminationReason.COST_LIMIT_EXCEEDED,
                f"Cost ${state.estimated_cost:.4f} > limit ${limit:.4f}",
            )
        return TerminationDecision.proceed()

    return check


def stuck_detection(threshold: int) -> TerminationStrategy:
    """Terminate once the same action-free output repeats *threshold* times.

    A threshold of 0 disables the check.
    """

    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if threshold > 0 and state.is_stuck(threshold):
            return TerminationDecision.terminate(
                TerminationReason.STUCK_DETECTED,
                f"Agent stuck: same output {threshold} times",
            )
        return TerminationDecision.proceed()

    return check


def abort_signal() -> TerminationStrategy:
    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if state.abort_requested:
            return TerminationDecision.terminate(
                TerminationReason.EXTERNAL_SIGNAL, "Abort signal received"
            )
        return TerminationDecision.proceed()

    return check


def verdict_threshold(threshold: float) -> TerminationStrategy:
    """Terminate when the verdict passed or its score reached *threshold*."""

    def check(state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if verdict is None:
            return TerminationDecision.proceed()
        if verdict.passed:
            return TerminationDecision.terminate(
                TerminationReason.SCORE_THRESHOLD_MET,
                f"Jury passed with score {verdict.score:.2f}",
            )
        if verdict.score >= threshold:
            return TerminationDecision.terminate(
                TerminationReason.SCORE_THRESHOLD_MET,
                f"Score {verdict.score:.2f} >= threshold {threshold:.2f}",
            )
        return TerminationDecision.proceed()

    return check


# ── Jury-backed strategy ─────────────────────────────────────────────────────

class JuryTerminationStrategy:
    """Strategy that consults a jury when no verdict is supplied.

    With ``require_pass`` the jury's pass flag decides; otherwise the score
    is compared against ``score_threshold``.  The most recent verdict is
    kept for inspection.
    """

    def __init__(
        self,
        jury: Jury,
        workspace: Path,
        *,
        score_threshold: float = 1.0,
        require_pass: bool = True,
    ) -> None:
        if not 0.0 <= score_threshold <= 1.0:
            raise ValueError("score_threshold must be between 0 and 1")
        self._jury = jury
        self._workspace = workspace
        self._score_threshold = score_threshold
        self._require_pass = require_pass
        self._last_verdict: Verdict | None = None

    @property
    def last_verdict(self) -> Verdict | None:
        return self._last_verdict

    def __call__(self, state: RunState, verdict: Verdict | None = None) -> TerminationDecision:
        if verdict is None:
            verdict = self._jury.evaluate(state, None, self._workspace)
        self._last_verdict = verdict
        if verdict is None:
            return TerminationDecision.proceed()

        if self._require_pass and verdict.passed:
            return TerminationDecision.terminate(
                TerminationReason.SCORE_THRESHOLD_MET,
                f"Jury passed with score {verdict.score:.2f}: {verdict.reasoning}",
            )
        if not self._require_pass and verdict.score >= self._score_threshold:
            return TerminationDecision.terminate(
                TerminationReason.SCORE_THRESHOLD_MET,
                f"Score {verdict.score:.2f} >= threshold {self._score_threshold:.2f}: "
                f"{verdict.reasoning}",
            )
        logger.debug("Jury verdict below bar: score=%.2f passed=%s", verdict.score, verdict.passed)
        return TerminationDecision.proceed()
