"""Graph-traversal execution engine.

Walks a flow by following edges from a start node:
- Each node's script runs with the previous node's output as ``input``
- The next node is chosen by the node's edge selector (see routing)
- A node is never visited twice within one run; revisiting ends the run
  successfully (cycle guard, not an error)
- Any script failure or structural error halts the run with the path so far
"""

from __future__ import annotations

import logging
from typing import Any

from flowrunner.core.events import RunObserver
from flowrunner.core.graph_schema import FlowError, FlowGraph
from flowrunner.core.models import (
    Edge,
    ExecutionContext,
    FlowExecutionResult,
    Node,
)
from flowrunner.core.routing import build_selector
from flowrunner.sandbox.executor import ScriptRunner

logger = logging.getLogger(__name__)


class StartNodeNotFoundError(FlowError):
    """No node without incoming edges exists."""

    pass


class NodeNotFoundError(FlowError):
    """An edge or start id references a node that does not exist."""

    pass


class NodeExecutionError(FlowError):
    """A node's script failed."""

    pass


class GraphExecutor:
    """
    Run a flow by edge traversal.

    The caller's nodes and edges are read-only input; progress is reported
    through the optional observer and the returned FlowExecutionResult.
    """

    def __init__(self, runner: ScriptRunner | None = None):
        self.runner = runner or ScriptRunner()

    async def run(
        self,
        nodes: list[Node],
        edges: list[Edge],
        start_id: str | None = None,
        observer: RunObserver | None = None,
    ) -> FlowExecutionResult:
        """Execute the flow starting at ``start_id`` (or the detected start node)."""
        graph = FlowGraph(nodes=nodes, edges=edges)
        observer = observer or RunObserver()
        execution_path: list[str] = []
        visited: set[str] = set()
        current_output: Any = None

        current_id = start_id or graph.find_start_node()
        if not current_id:
            return FlowExecutionResult(
                success=False,
                execution_path=[],
                error=str(StartNodeNotFoundError("No start node found")),
            )

        node_map = graph.node_map()
        try:
            while current_id and current_id not in visited:
                visited.add(current_id)
                execution_path.append(current_id)

                node = node_map.get(current_id)
                if node is None:
                    raise NodeNotFoundError(f"Node {current_id} not found")

                observer.node_started(current_id)
                context = ExecutionContext(input=current_output, variables={})
                result = await self.runner.execute(node.script, context)
                observer.node_completed(current_id, result)

                if not result.success:
                    raise NodeExecutionError(
                        f"Node {current_id} execution failed: {result.error}"
                    )

                current_output = result.output
                selector = build_selector(current_id, graph.outgoing_edges(current_id))
                current_id = selector.next_node(current_output)

            if current_id:
                logger.debug("Cycle guard: node %s already visited, stopping", current_id)

            return FlowExecutionResult(
                success=True,
                execution_path=execution_path,
                final_output=current_output,
            )
        except FlowError as e:
            logger.info("Graph run halted: %s", e)
            return FlowExecutionResult(
                success=False,
                execution_path=execution_path,
                error=str(e),
            )


async def execute_flow(
    nodes: list[Node],
    edges: list[Edge],
    start_id: str | None = None,
    runner: ScriptRunner | None = None,
) -> FlowExecutionResult:
    """Convenience wrapper: run a flow with a fresh GraphExecutor."""
    return await GraphExecutor(runner).run(nodes, edges, start_id)
