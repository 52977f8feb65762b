"""Verdict — the evaluation collaborator's judgment of an output."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Verdict(BaseModel):
    """Score, pass flag and reasoning produced by a jury."""

    score: float = Field(default=0.0, ge=0.0, le=1.0, description="Normalised score")
    passed: bool = Field(default=False)
    reasoning: str = Field(default="")

    model_config = {"frozen": True}
