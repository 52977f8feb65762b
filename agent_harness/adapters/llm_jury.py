"""ChatModelJury — asks a chat model to grade the latest output.

The model must answer with a JSON object {"score", "passed", "reasoning"}.
Unparseable answers produce a failing zero-score verdict; invocation
errors propagate so the calling loop records them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from agent_harness.adapters.chat_model import response_text
from agent_harness.domain.run_state import RunState
from agent_harness.domain.verdict import Verdict

logger = logging.getLogger(__name__)

_JURY_PROMPT = """You are a strict reviewer grading an autonomous agent's work.

Task criteria:
{criteria}

Run progress:
- Steps completed: {steps}
- Workspace: {workspace}

Latest output:
{output}

Respond with ONLY a JSON object, no other text:
{{"score": <0.0-1.0>, "passed": <true|false>, "reasoning": "<one or two sentences>"}}"""

_MAX_OUTPUT_CHARS = 4000


def parse_verdict(text: str) -> Verdict:
    """Parse a JSON verdict, with fallback to a failing verdict."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines).strip()

    try:
        raw = json.loads(text)
        if not isinstance(raw, dict):
            raise ValueError("Expected a JSON object")
        score = max(0.0, min(float(raw.get("score", 0.0)), 1.0))
        return Verdict(
            score=score,
            passed=bool(raw.get("passed", False)),
            reasoning=str(raw.get("reasoning", ""))[:500],
        )
    except (json.JSONDecodeError, ValueError, TypeError) as exc:
        logger.warning("Failed to parse jury response: %s; using failing verdict", exc)
        return Verdict(score=0.0, passed=False, reasoning="Unparseable jury response")


class ChatModelJury:
    """Jury backed by a langchain_core chat model."""

    def __init__(self, model: Any, criteria: str = "The task described by the user is fully and correctly done.") -> None:
        self._model = model
        self._criteria = criteria

    def evaluate(self, state: RunState, latest_output: str | None, workspace: Path) -> Verdict:
        prompt = _JURY_PROMPT.format(
            criteria=self._criteria,
            steps=state.current_step,
            workspace=workspace,
            output=(latest_output or "(no output)")[:_MAX_OUTPUT_CHARS],
        )
        response = self._model.invoke(prompt)
        verdict = parse_verdict(response_text(response))
        logger.debug("Jury verdict for run %s: score=%.2f passed=%s", state.run_id, verdict.score, verdict.passed)
        return verdict
