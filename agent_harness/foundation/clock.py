"""The harness's only source of "now".

Loops, graph runs and RunState all read time through utc_now() so tests
can freeze or step the clock with ``patch(".../utc_now")``.  Values are
always timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_since(start: datetime) -> timedelta:
    """Wall time between *start* and now."""
    return utc_now() - start
