"""Graph nodes: plain functions, or whole agent loops."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Protocol, Sequence

from agent_harness.core.collaborators import Generator
from agent_harness.graph.context import GraphContext
from agent_harness.models.results import LoopResult

NodeFunction = Callable[[GraphContext, Any], Any]


class GraphNode(ABC):
    """A named unit of work: (context, input) -> output."""

    def __init__(self, name: str) -> None:
        if not name:
            raise ValueError("node name must not be empty")
        self.name = name

    @abstractmethod
    def execute(self, context: GraphContext, input: Any) -> Any:
        """Run the node and return its output."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class FunctionGraphNode(GraphNode):
    def __init__(self, name: str, fn: NodeFunction) -> None:
        super().__init__(name)
        self._fn = fn

    def execute(self, context: GraphContext, input: Any) -> Any:
        return self._fn(context, input)


def passthrough(name: str) -> FunctionGraphNode:
    """A node that returns its input unchanged."""
    return FunctionGraphNode(name, lambda _context, value: value)


class AgentLoop(Protocol):
    def execute(self, prompt: str, generator: Generator, actions: Sequence[str] | None = None) -> LoopResult: ...


class LoopGraphNode(GraphNode):
    """Runs an agent loop with the node input as its prompt.

    The node output is the loop's result model, so outgoing edge conditions
    can branch on status, reason or output.
    """

    def __init__(
        self,
        name: str,
        loop: AgentLoop,
        generator: Generator,
        actions: Sequence[str] = (),
    ) -> None:
        super().__init__(name)
        self.loop = loop
        self._generator = generator
        self._actions = tuple(actions)

    def execute(self, context: GraphContext, input: Any) -> LoopResult:
        return self.loop.execute(str(input), self._generator, self._actions)

    def __repr__(self) -> str:
        loop_type = getattr(self.loop, "loop_type", None)
        label = loop_type.value if loop_type is not None else type(self.loop).__name__
        return f"LoopGraphNode({self.name!r}, loop={label})"
