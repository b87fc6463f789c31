"""Queue-based execution engine.

Derives a deterministic linear order from the node set alone (edges are not
consulted) and drives it either end-to-end or one step at a time:

- build_queue(): entry node first, the rest sorted by the numeric token in
  their id (``node-<created_ms>``); unparseable tokens sort as 0
- run_all(): whole queue, live callbacks, structured log trail, fixed
  settling delay between nodes; per-node failures never abort the run
- run_one_step(): stateless; the caller holds the cursor
- start()/step(): resumable handle holding a queue snapshot and cursor

The node set is assumed not to change while a run is in progress.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from flowrunner.config import DEFAULT_ENTRY_NODE_ID, FlowrunnerConfig
from flowrunner.core.dispatch import NodeDispatcher
from flowrunner.core.events import (
    LogHook,
    NodeCompleteHook,
    NodeStartHook,
    RunLogRecorder,
    RunObserver,
)
from flowrunner.core.models import (
    Edge,
    LogLevel,
    Node,
    NodeExecutionResult,
    QueueExecutionResult,
    StepResult,
)

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^[+-]?\d+")

NO_MORE_NODES = "No more nodes to execute"


def creation_token(node_id: str) -> int:
    """Numeric token embedded after the first '-' of a node id, or 0."""
    parts = node_id.split("-")
    if len(parts) < 2:
        return 0
    match = _LEADING_DIGITS.match(parts[1])
    return int(match.group(0)) if match else 0


def build_queue(nodes: list[Node], entry_node_id: str = DEFAULT_ENTRY_NODE_ID) -> list[str]:
    """Derive the execution order for ``nodes``.

    Returns an empty queue when the entry node is absent. Ties keep the
    input order.
    """
    if not any(node.id == entry_node_id for node in nodes):
        return []

    others = [node for node in nodes if node.id != entry_node_id]
    others.sort(key=lambda node: creation_token(node.id))
    return [entry_node_id] + [node.id for node in others]


class RunHandle(BaseModel):
    """Resumable stepwise run: a queue snapshot plus the next cursor.

    Immutable; step() hands back an advanced copy.
    """

    model_config = ConfigDict(frozen=True)

    queue: tuple[str, ...]
    cursor: int = 0

    @property
    def has_next(self) -> bool:
        return 0 <= self.cursor < len(self.queue)

    @property
    def current_node_id(self) -> str | None:
        return self.queue[self.cursor] if self.has_next else None

    def advance(self) -> RunHandle:
        return self.model_copy(update={"cursor": self.cursor + 1})


class QueueExecutor:
    """
    Linear, edge-independent flow executor.

    Every node is strictly serialized. Suspension points are the dispatch
    call of a non-entry node and the settling delay between nodes.
    """

    def __init__(
        self,
        config: FlowrunnerConfig | None = None,
        dispatcher: NodeDispatcher | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or FlowrunnerConfig()
        self.dispatcher = dispatcher or NodeDispatcher.from_config(self.config)
        self._sleep = sleep

    def build_queue(self, nodes: list[Node]) -> list[str]:
        return build_queue(nodes, self.config.entry_node_id)

    async def _execute_node(self, node: Node, position: int) -> NodeExecutionResult:
        return await self.dispatcher.execute(node, position)

    async def run_all(
        self,
        nodes: list[Node],
        edges: list[Edge] | None = None,
        on_node_start: NodeStartHook | None = None,
        on_node_complete: NodeCompleteHook | None = None,
        on_log: LogHook | None = None,
    ) -> QueueExecutionResult:
        """Run every node in queue order.

        ``edges`` is accepted for interface symmetry with graph mode and is
        not consulted.
        """
        observer = RunObserver(on_node_start, on_node_complete, on_log)
        return await self.run_all_observed(nodes, observer)

    async def run_all_observed(
        self,
        nodes: list[Node],
        observer: RunObserver,
    ) -> QueueExecutionResult:
        """run_all() with an observer object instead of separate hooks."""
        recorder = RunLogRecorder(observer)
        execution_queue = self.build_queue(nodes)
        completed_nodes: list[str] = []
        final_output: Any = None

        recorder.system(
            LogLevel.INFO,
            f"Starting workflow execution with {len(execution_queue)} nodes",
        )

        try:
            node_map = {node.id: node for node in nodes}
            for position, node_id in enumerate(execution_queue):
                node = node_map[node_id]
                recorder.add(
                    node_id, node.display_name, LogLevel.INFO,
                    f"Executing node: {node.display_name}",
                )
                observer.node_started(node_id)

                try:
                    result = await self._execute_node(node, position)
                except Exception as e:
                    # Contain per-node failures; the rest of the queue still runs
                    message = str(e) or type(e).__name__
                    logger.exception("Node %s raised during dispatch", node_id)
                    result = NodeExecutionResult(success=False, error=message)
                    recorder.add(
                        node_id, node.display_name, LogLevel.ERROR,
                        f"Execution error: {message}",
                    )
                    observer.node_completed(node_id, result)
                    continue

                if result.success:
                    final_output = result.output
                    completed_nodes.append(node_id)
                    recorder.add(
                        node_id, node.display_name, LogLevel.SUCCESS,
                        "Node executed successfully", result.output,
                    )
                else:
                    recorder.add(
                        node_id, node.display_name, LogLevel.ERROR,
                        result.error or "Execution failed",
                    )
                observer.node_completed(node_id, result)

                if position < len(execution_queue) - 1 and self.config.settle_delay > 0:
                    await self._sleep(self.config.settle_delay)

            recorder.system(LogLevel.SUCCESS, "Workflow execution completed successfully")
            return QueueExecutionResult(
                success=True,
                execution_queue=execution_queue,
                completed_nodes=completed_nodes,
                final_output=final_output,
                logs=recorder.records,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception("Workflow execution failed")
            recorder.system(LogLevel.ERROR, f"Workflow execution failed: {message}")
            return QueueExecutionResult(
                success=False,
                execution_queue=execution_queue,
                completed_nodes=completed_nodes,
                error=message,
                logs=recorder.records,
            )

    async def run_one_step(self, nodes: list[Node], step_index: int) -> StepResult:
        """Execute the node at ``step_index`` of the freshly derived queue.

        Stateless: no delay, no log trail. An out-of-range cursor returns a
        failure result with ``has_next=False``.
        """
        handle = RunHandle(queue=tuple(self.build_queue(nodes)), cursor=step_index)
        step_result, _ = await self.step(nodes, handle)
        return step_result

    def start(self, nodes: list[Node]) -> RunHandle:
        """Snapshot the queue for a stepwise run."""
        return RunHandle(queue=tuple(self.build_queue(nodes)))

    async def step(self, nodes: list[Node], handle: RunHandle) -> tuple[StepResult, RunHandle]:
        """Execute the node at the handle's cursor and return the advanced handle."""
        if not handle.has_next:
            return (
                StepResult(
                    result=NodeExecutionResult(success=False, error=NO_MORE_NODES),
                    has_next=False,
                ),
                handle,
            )

        has_next = handle.cursor + 1 < len(handle.queue)
        node_id = handle.queue[handle.cursor]
        node = next((n for n in nodes if n.id == node_id), None)
        if node is None:
            result = NodeExecutionResult(success=False, error="Node not found")
        else:
            result = await self._execute_node(node, handle.cursor)

        return StepResult(result=result, has_next=has_next), handle.advance()

    async def run_selected(self, nodes: list[Node], node_id: str) -> NodeExecutionResult:
        """Execute one chosen node, using its queue position to pick the template."""
        queue = self.build_queue(nodes)
        if node_id not in queue:
            return NodeExecutionResult(
                success=False, error=f"Selected node {node_id} not found"
            )
        step_result = await self.run_one_step(nodes, queue.index(node_id))
        return step_result.result
