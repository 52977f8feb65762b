"""GraphEdge — a guarded, optionally transforming link to a target node."""

from __future__ import annotations

from typing import Any, Callable

Condition = Callable[[Any], bool]
Transformer = Callable[[Any], Any]


def _always(_: Any) -> bool:
    return True


def _identity(value: Any) -> Any:
    return value


class GraphEdge:
    """Outgoing edge.  Edges leaving a node are tried in registration order."""

    __slots__ = ("target", "_condition", "_transformer")

    def __init__(
        self,
        target: str,
        condition: Condition | None = None,
        transformer: Transformer | None = None,
    ) -> None:
        if not target:
            raise ValueError("target must not be empty")
        self.target = target
        self._condition = condition or _always
        self._transformer = transformer or _identity

    @classmethod
    def to(cls, target: str) -> GraphEdge:
        return cls(target)

    def when(self, condition: Condition) -> GraphEdge:
        """Return a copy of this edge guarded by *condition*."""
        return GraphEdge(self.target, condition, self._transformer)

    def transform(self, transformer: Transformer) -> GraphEdge:
        return GraphEdge(self.target, self._condition, transformer)

    def matches(self, output: Any) -> bool:
        return bool(self._condition(output))

    def apply(self, output: Any) -> Any:
        return self._transformer(output)

    def __repr__(self) -> str:
        return f"GraphEdge(target={self.target!r})"
