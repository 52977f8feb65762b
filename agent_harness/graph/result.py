"""GraphResult — outcome of one graph execution."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import BaseModel

from agent_harness.domain.enums import GraphStatus
from agent_harness.graph.errors import GraphExecutionError, MaxIterationsExceededError, StuckInNodeError


class GraphResult(BaseModel):
    graph_name: str
    status: GraphStatus
    output: Any = None
    path_taken: tuple[str, ...] = ()
    stuck_node_name: str | None = None
    iterations: int = 0
    duration: timedelta = timedelta(0)
    error: BaseException | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def is_success(self) -> bool:
        return self.status == GraphStatus.COMPLETED

    @property
    def is_failure(self) -> bool:
        return self.status != GraphStatus.COMPLETED

    def raise_for_status(self) -> None:
        """Raise the matching GraphExecutionError unless the graph completed."""
        if self.status == GraphStatus.COMPLETED:
            return
        if self.status == GraphStatus.STUCK_IN_NODE:
            raise StuckInNodeError(self.graph_name, self.stuck_node_name or "", self.path_taken)
        if self.status == GraphStatus.MAX_ITERATIONS:
            raise MaxIterationsExceededError(
                self.graph_name, self.iterations - 1, self.iterations, self.path_taken
            )
        raise GraphExecutionError(
            f"Graph '{self.graph_name}' failed: {self.error}", self.graph_name, self.path_taken
        ) from self.error
