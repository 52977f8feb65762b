"""Content signatures used for stagnation detection.

Python's built-in ``hash()`` is salted per process, so signatures are
derived from a stable digest instead.  Two outputs with the same text always
yield the same signature, across processes and runs.
"""

from __future__ import annotations

import hashlib


def content_signature(text: str | None) -> int:
    """Return a stable 63-bit signature of *text* (0 for empty output)."""
    if not text:
        return 0
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") >> 1
