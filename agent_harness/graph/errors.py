"""Graph composition errors.

InvalidGraphError is raised by GraphBuilder.build() for structural
problems.  Execution failures never raise from execute(); they are
reported on GraphResult, and GraphResult.raise_for_status() turns them
into the GraphExecutionError family on request.
"""

from __future__ import annotations

from typing import Any, Sequence


class InvalidGraphError(Exception):
    """Raised when a graph definition is structurally invalid."""

    def __init__(self, graph_name: str, message: str) -> None:
        self.graph_name = graph_name
        self.detail = message
        super().__init__(f"Invalid graph '{graph_name}': {message}")


class GraphExecutionError(Exception):
    """Base for failures that occur while a graph is running."""

    def __init__(self, message: str, graph_name: str, path_taken: Sequence[str] = ()) -> None:
        self.graph_name = graph_name
        self.path_taken = list(path_taken)
        super().__init__(message)


class StuckInNodeError(GraphExecutionError):
    """No outgoing edge accepted a node's output."""

    def __init__(self, graph_name: str, node_name: str, path_taken: Sequence[str], node_output: Any = None) -> None:
        self.node_name = node_name
        self.node_output = node_output
        super().__init__(
            f"Graph '{graph_name}' stuck in node '{node_name}' - no valid outgoing edge for output",
            graph_name,
            path_taken,
        )


class MaxIterationsExceededError(GraphExecutionError):
    def __init__(self, graph_name: str, max_iterations: int, actual_iterations: int, path_taken: Sequence[str]) -> None:
        self.max_iterations = max_iterations
        self.actual_iterations = actual_iterations
        super().__init__(
            f"Graph '{graph_name}' exceeded max iterations: {actual_iterations} (max {max_iterations})",
            graph_name,
            path_taken,
        )
