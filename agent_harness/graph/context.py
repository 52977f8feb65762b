"""GraphContext — per-execution scratch space shared by every node."""

from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar

from agent_harness.foundation.clock import utc_now
from agent_harness.foundation.identifiers import new_run_id

T = TypeVar("T")

_MISSING = object()


class GraphContext:
    """Run identity plus an open key/value map nodes can read and write.

    A fresh context is created for every GraphCompositionStrategy.execute()
    call unless the caller supplies one via execute_with_context().
    """

    def __init__(self, strategy_name: str, run_id: str | None = None) -> None:
        if not strategy_name:
            raise ValueError("strategy_name must not be empty")
        self.run_id = run_id or new_run_id()
        self.strategy_name = strategy_name
        self.started_at: datetime = utc_now()
        self._state: dict[str, Any] = {}

    def get(self, key: str, type_: type[T] | None = None) -> T | None:
        """Return the value under *key*, or None if absent or of the wrong type."""
        value = self._state.get(key)
        if value is None:
            return None
        if type_ is not None and not isinstance(value, type_):
            return None
        return value

    def get_or_default(self, key: str, type_: type[T], default: T) -> T:
        value = self.get(key, type_)
        return default if value is None else value

    def put(self, key: str, value: Any) -> None:
        self._state[key] = value

    def remove(self, key: str) -> Any:
        return self._state.pop(key, None)

    def contains(self, key: str) -> bool:
        return key in self._state

    def __contains__(self, key: object) -> bool:
        return key in self._state

    def __repr__(self) -> str:
        return f"GraphContext(run_id={self.run_id!r}, strategy={self.strategy_name!r})"
