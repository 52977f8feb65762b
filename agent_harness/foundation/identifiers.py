"""Run identifier generation."""

from __future__ import annotations

from uuid import uuid4


def new_run_id() -> str:
    """Generate a new random run identifier (UUID v4 string)."""
    return str(uuid4())
