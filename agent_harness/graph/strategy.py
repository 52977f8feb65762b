"""GraphCompositionStrategy — runs a validated node/edge graph on LangGraph.

Each registered node is wrapped so that one LangGraph step is one node
visit:

    START → <start node> ─┬─ first matching edge → <next node> → ...
                          └─ terminal status      → END

A visit counts an iteration, records the node on the path, runs it with
the shared GraphContext, and then either completes (finish node), routes
along the first edge whose condition accepts the output, or stops as
STUCK_IN_NODE.  Node exceptions stop the graph with ERROR.  The visit that
would exceed max_iterations is refused and stops as MAX_ITERATIONS.

Build instances with GraphBuilder; the graph is compiled once and can be
executed many times.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence

from langgraph.graph import END, START, StateGraph

from agent_harness.domain.enums import GraphStatus
from agent_harness.foundation.clock import elapsed_since, utc_now
from agent_harness.graph.context import GraphContext
from agent_harness.graph.edge import GraphEdge
from agent_harness.graph.node import GraphNode
from agent_harness.graph.result import GraphResult
from agent_harness.graph.state import CompositionState

logger = logging.getLogger(__name__)

# Headroom above max_iterations so the refused visit still fits.
_RECURSION_HEADROOM = 10


class GraphCompositionStrategy:

    def __init__(
        self,
        name: str,
        nodes: Mapping[str, GraphNode],
        edges: Mapping[str, Sequence[GraphEdge]],
        start_node: str,
        finish_node: str,
        max_iterations: int,
    ) -> None:
        self.name = name
        self.start_node = start_node
        self.finish_node = finish_node
        self.max_iterations = max_iterations
        self._nodes = dict(nodes)
        self._edges = {source: tuple(out) for source, out in edges.items()}
        self._app = self._compile()

    @staticmethod
    def builder(name: str):
        from agent_harness.graph.builder import GraphBuilder

        return GraphBuilder(name)

    @property
    def node_names(self) -> tuple[str, ...]:
        return tuple(self._nodes)

    def edges_from(self, node_name: str) -> tuple[GraphEdge, ...]:
        return self._edges.get(node_name, ())

    # ── Execution ────────────────────────────────────────────────────────

    def execute(self, input: Any) -> GraphResult:
        return self.execute_with_context(GraphContext(self.name), input)

    def execute_with_context(self, context: GraphContext, input: Any) -> GraphResult:
        """Run the graph from the start node.  Never raises."""
        started = utc_now()
        initial_state: CompositionState = {
            "context": context,
            "payload": input,
            "cursor": self.start_node,
            "path": [],
            "iterations": 0,
            "status": None,
            "output": None,
            "stuck_node": None,
            "error": None,
        }

        logger.debug("Starting graph execution: %s (run=%s)", self.name, context.run_id)
        try:
            final_state = self._app.invoke(
                initial_state,
                config={"recursion_limit": self.max_iterations + _RECURSION_HEADROOM},
            )
        except Exception as exc:
            logger.error("Graph %s failed outside any node: %s", self.name, exc, exc_info=True)
            return GraphResult(
                graph_name=self.name,
                status=GraphStatus.ERROR,
                duration=elapsed_since(started),
                error=exc,
            )

        status = final_state.get("status") or GraphStatus.ERROR
        result = GraphResult(
            graph_name=self.name,
            status=status,
            output=final_state.get("output") if status == GraphStatus.COMPLETED else None,
            path_taken=tuple(final_state.get("path", ())),
            stuck_node_name=final_state.get("stuck_node"),
            iterations=final_state.get("iterations", 0),
            duration=elapsed_since(started),
            error=final_state.get("error"),
        )
        logger.info(
            "Graph %s finished: status=%s iterations=%d path=%s",
            self.name, result.status.value, result.iterations, " -> ".join(result.path_taken),
        )
        return result

    # ── Compilation ──────────────────────────────────────────────────────

    def _compile(self):
        graph = StateGraph(CompositionState)

        for name, node in self._nodes.items():
            graph.add_node(name, self._visit(node))

        graph.add_edge(START, self.start_node)

        for name in self._nodes:
            targets = {edge.target: edge.target for edge in self.edges_from(name)}
            targets[END] = END
            graph.add_conditional_edges(name, _route, targets)

        return graph.compile()

    def _visit(self, node: GraphNode) -> Callable[[CompositionState], dict]:
        def run(state: CompositionState) -> dict:
            iterations = state.get("iterations", 0) + 1
            if iterations > self.max_iterations:
                logger.warning("Graph %s exceeded max iterations: %d", self.name, self.max_iterations)
                return {"iterations": iterations, "status": GraphStatus.MAX_ITERATIONS}

            path = [*state.get("path", []), node.name]
            update: dict[str, Any] = {"iterations": iterations, "path": path}
            logger.debug("Executing node: %s (iteration %d)", node.name, iterations)

            try:
                output = node.execute(state["context"], state.get("payload"))
                if node.name == self.finish_node:
                    logger.debug("Graph %s completed in %d iterations", self.name, iterations)
                    update.update(status=GraphStatus.COMPLETED, output=output)
                    return update

                edge = self._resolve_edge(node.name, output)
                if edge is None:
                    logger.error("Graph %s stuck in node %s: no valid outgoing edge", self.name, node.name)
                    update.update(status=GraphStatus.STUCK_IN_NODE, stuck_node=node.name)
                    return update

                update.update(cursor=edge.target, payload=edge.apply(output))
                return update
            except Exception as exc:
                logger.error("Graph %s error in node %s: %s", self.name, node.name, exc, exc_info=True)
                update.update(status=GraphStatus.ERROR, error=exc)
                return update

        run.__name__ = f"visit_{node.name}"
        return run

    def _resolve_edge(self, node_name: str, output: Any) -> GraphEdge | None:
        for edge in self.edges_from(node_name):
            if edge.matches(output):
                return edge
        return None

    def __repr__(self) -> str:
        return (
            f"GraphCompositionStrategy({self.name!r}, nodes={list(self._nodes)}, "
            f"start={self.start_node!r}, finish={self.finish_node!r})"
        )


def _route(state: CompositionState) -> str:
    """Conditional-edge router: follow the cursor until a status is set."""
    if state.get("status") is not None:
        return END
    return state["cursor"]
