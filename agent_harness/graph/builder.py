"""GraphBuilder — assembles and validates a GraphCompositionStrategy.

Usage:
    strategy = (
        GraphBuilder("review")
        .node("draft", draft_fn)
        .loop_node("fix", TurnLimitedLoop(), generator)
        .start_node("draft")
        .finish_node("done")
        .edge("draft", "fix", when=lambda out: "TODO" in out)
        .edge("draft", "done")
        .edge("fix", "done", transform=lambda result: result.output)
        .build()
    )

Structural checks run once, in build(), and raise InvalidGraphError.
Start and finish nodes that were never registered become pass-through
nodes at build time.
"""

from __future__ import annotations

import logging
from typing import Sequence

from agent_harness.config import settings
from agent_harness.core.collaborators import Generator
from agent_harness.graph.edge import Condition, GraphEdge, Transformer
from agent_harness.graph.errors import InvalidGraphError
from agent_harness.graph.node import AgentLoop, FunctionGraphNode, GraphNode, LoopGraphNode, NodeFunction, passthrough
from agent_harness.graph.state import RESERVED_NAMES
from agent_harness.graph.strategy import GraphCompositionStrategy

logger = logging.getLogger(__name__)

# LangGraph reserves these characters for namespaces.
_FORBIDDEN_CHARS = (":", "|")


class GraphBuilder:

    def __init__(self, name: str) -> None:
        if not name:
            raise ValueError("graph name must not be empty")
        self.name = name
        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[str, list[GraphEdge]] = {}
        self._start: str | None = None
        self._finish: str | None = None
        self._max_iterations = settings.graph_max_iterations

    # ── Nodes ────────────────────────────────────────────────────────────

    def node(self, node: GraphNode | str, fn: NodeFunction | None = None) -> GraphBuilder:
        """Register a GraphNode, or a (name, fn) pair as a FunctionGraphNode."""
        if isinstance(node, str):
            if fn is None:
                raise InvalidGraphError(self.name, f"Node '{node}' has no function")
            node = FunctionGraphNode(node, fn)
        return self._register(node)

    def loop_node(
        self,
        name: str,
        loop: AgentLoop,
        generator: Generator,
        actions: Sequence[str] = (),
    ) -> GraphBuilder:
        return self._register(LoopGraphNode(name, loop, generator, actions))

    def start_node(self, name: str) -> GraphBuilder:
        self._check_name(name)
        self._start = name
        return self

    def finish_node(self, name: str) -> GraphBuilder:
        self._check_name(name)
        self._finish = name
        return self

    # ── Edges ────────────────────────────────────────────────────────────

    def edge(
        self,
        source: str,
        target: GraphEdge | str,
        *,
        when: Condition | None = None,
        transform: Transformer | None = None,
    ) -> GraphBuilder:
        """Add an outgoing edge; edges from one source are tried in this order."""
        if isinstance(target, GraphEdge):
            if when is not None or transform is not None:
                raise InvalidGraphError(self.name, "Pass either a GraphEdge or when/transform, not both")
            edge = target
        else:
            edge = GraphEdge(target, when, transform)
        self._edges.setdefault(source, []).append(edge)
        return self

    def max_iterations(self, value: int) -> GraphBuilder:
        if value <= 0:
            raise ValueError(f"max_iterations must be positive: {value}")
        self._max_iterations = value
        return self

    # ── Build ────────────────────────────────────────────────────────────

    def build(self) -> GraphCompositionStrategy:
        if self._start is None:
            raise InvalidGraphError(self.name, "Start node not set")
        if self._finish is None:
            raise InvalidGraphError(self.name, "Finish node not set")

        nodes = dict(self._nodes)
        for name in (self._start, self._finish):
            if name not in nodes:
                logger.debug("Graph %s: creating pass-through node %s", self.name, name)
                nodes[name] = passthrough(name)

        for source, edges in self._edges.items():
            if source not in nodes:
                raise InvalidGraphError(self.name, f"Edge source node '{source}' not found in nodes")
            for edge in edges:
                if edge.target not in nodes:
                    raise InvalidGraphError(self.name, f"Edge target node '{edge.target}' not found in nodes")

        return GraphCompositionStrategy(
            self.name,
            nodes,
            self._edges,
            self._start,
            self._finish,
            self._max_iterations,
        )

    def _register(self, node: GraphNode) -> GraphBuilder:
        self._check_name(node.name)
        if node.name in self._nodes:
            raise InvalidGraphError(self.name, f"Node with name '{node.name}' already exists")
        self._nodes[node.name] = node
        return self

    def _check_name(self, name: str) -> None:
        if not name:
            raise InvalidGraphError(self.name, "Node name must not be empty")
        if name in RESERVED_NAMES:
            raise InvalidGraphError(self.name, f"Node name '{name}' is reserved")
        if any(ch in name for ch in _FORBIDDEN_CHARS):
            raise InvalidGraphError(self.name, f"Node name '{name}' must not contain ':' or '|'")
