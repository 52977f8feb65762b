"""Plain-text run summaries.

Deterministic, no LLM.  Suitable for logs, CLIs and debugging:

    print(format_loop_result(result))
    print(format_graph_result(graph_result))
"""

from __future__ import annotations

from agent_harness.graph.result import GraphResult
from agent_harness.models.results import (
    EvaluatorOptimizerResult,
    LoopResult,
    StateMachineResult,
    TurnLimitedResult,
)

_RULE = "=" * 50
_PREVIEW_CHARS = 200


def _preview(text: str | None) -> str:
    if not text:
        return "(none)"
    text = text.strip().replace("\n", " ")
    return text if len(text) <= _PREVIEW_CHARS else text[:_PREVIEW_CHARS] + "..."


def format_loop_result(result: LoopResult) -> str:
    lines = [f"Run {result.run_id}", _RULE]
    lines.append(f"STATUS: {result.status.value.upper()}")
    lines.append(f"Reason: {result.reason.value}")
    if result.message:
        lines.append(f"Message: {result.message}")
    lines.append(f"Steps: {result.steps_completed}")
    lines.append(f"Duration: {result.duration.total_seconds():.2f}s")
    lines.append(f"Tokens: {result.total_tokens}")
    lines.append(f"Estimated cost: ${result.estimated_cost:.4f}")
    lines.append("")

    if isinstance(result, TurnLimitedResult) and result.last_verdict is not None:
        lines.append("--- Last verdict ---")
        lines.append(f"  • score {result.final_score:.2f}, passed={result.jury_passed}")
        if result.last_verdict.reasoning:
            lines.append(f"  • {result.last_verdict.reasoning}")
        lines.append("")

    if isinstance(result, EvaluatorOptimizerResult):
        lines.append(f"--- Trials ({result.trial_count}) ---")
        for trial in result.trials:
            marker = " *" if trial.trial_number == result.best_trial_number else ""
            lines.append(f"  • #{trial.trial_number}: score {trial.score:.2f} passed={trial.passed}{marker}")
        lines.append("")

    if isinstance(result, StateMachineResult):
        lines.append(f"--- States ({result.transition_count} transitions) ---")
        lines.append(f"  • {' -> '.join(result.state_sequence()) or result.final_agent_state.name}")
        lines.append("")

    lines.append("--- Output ---")
    lines.append(f"  {_preview(result.output)}")
    return "\n".join(lines)


def format_graph_result(result: GraphResult) -> str:
    lines = [f"Graph {result.graph_name}", _RULE]
    lines.append(f"STATUS: {result.status.value.upper()}")
    lines.append(f"Iterations: {result.iterations}")
    lines.append(f"Duration: {result.duration.total_seconds():.2f}s")
    lines.append(f"Path: {' -> '.join(result.path_taken) or '(empty)'}")
    if result.stuck_node_name:
        lines.append(f"Stuck in: {result.stuck_node_name}")
    if result.error is not None:
        lines.append(f"Error: {type(result.error).__name__}: {result.error}")
    if result.is_success:
        output = result.output
        if isinstance(output, LoopResult):
            output = output.output
        lines.append("")
        lines.append("--- Output ---")
        lines.append(f"  {_preview(None if output is None else str(output))}")
    return "\n".join(lines)
