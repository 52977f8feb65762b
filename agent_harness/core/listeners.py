"""Isolated listener dispatch.

Each listener is invoked in registration order inside its own error
boundary.  A listener that raises is logged and skipped; it never affects
the loop or the remaining listeners.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

logger = logging.getLogger(__name__)


def dispatch(listeners: Iterable[Any], event: str, *args: Any) -> None:
    """Call ``listener.<event>(*args)`` on every listener that defines it."""
    for listener in listeners:
        handler = getattr(listener, event, None)
        if handler is None:
            continue
        try:
            handler(*args)
        except Exception:
            logger.warning(
                "Listener %s failed on %s", type(listener).__name__, event, exc_info=True
            )
