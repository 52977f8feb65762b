"""CompositionState — the LangGraph state threaded through a composed graph.

Every wrapped node receives the full state and returns a partial update.
The user-level node only ever sees the GraphContext and its own input;
the remaining fields are routing bookkeeping.
"""

from __future__ import annotations

from typing import Any, TypedDict

from agent_harness.domain.enums import GraphStatus
from agent_harness.graph.context import GraphContext


class CompositionState(TypedDict, total=False):
    """LangGraph state for a composed graph.

    Fields:
        context: The GraphContext shared by every node of this execution.
        payload: Input for the node about to run (already edge-transformed).
        cursor: Name of the next node to run.
        path: Names of the nodes run so far, in order.
        iterations: Node visits counted so far, including a refused one.
        status: None while running, otherwise the terminal GraphStatus.
        output: Finish node output once completed.
        stuck_node: Node with no matching outgoing edge.
        error: Exception raised by a node.
    """

    context: GraphContext
    payload: Any
    cursor: str
    path: list[str]
    iterations: int
    status: GraphStatus | None
    output: Any
    stuck_node: str | None
    error: BaseException | None


RESERVED_NAMES = frozenset(CompositionState.__annotations__) | {"__start__", "__end__"}
