"""CancellationToken — cooperative abort shared with a running loop.

The token may be cancelled from any thread.  Loops check it only at step
boundaries, so a generation call already in flight always completes (or
fails) before the abort takes effect.
"""

from __future__ import annotations

import threading


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
