"""Tests for the graph-traversal executor.

Tests cover:
- Start node detection and explicit start ids
- Output chaining and truthy/falsy branching
- Cycle guard (revisit ends the run successfully)
- Script failures and dangling edges halting the run
- Observer callbacks
"""

from __future__ import annotations

import pytest

from flowrunner.core.events import RunObserver
from flowrunner.core.graph_engine import GraphExecutor, execute_flow
from flowrunner.core.models import Edge, Node


def _edge(source: str, target: str) -> Edge:
    return Edge(id=f"{source}->{target}", source=source, target=target)


class TestBranching:
    """Tests for output-driven routing."""

    @pytest.mark.asyncio
    async def test_truthy_branch(self, branching_nodes, branching_edges):
        """An output above the threshold takes the first edge."""
        branching_nodes[0] = Node(id="start", script="42")

        result = await GraphExecutor().run(branching_nodes, branching_edges)

        assert result.success is True
        assert result.execution_path == ["start", "check", "yes"]
        assert result.final_output == "big"

    @pytest.mark.asyncio
    async def test_falsy_branch(self, branching_nodes, branching_edges):
        branching_nodes[0] = Node(id="start", script="3")

        result = await GraphExecutor().run(branching_nodes, branching_edges)

        assert result.execution_path == ["start", "check", "no"]
        assert result.final_output == "small"

    @pytest.mark.asyncio
    async def test_output_chains_into_input(self):
        nodes = [
            Node(id="a", script="10"),
            Node(id="b", script="input * 2"),
            Node(id="c", script="input + 1"),
        ]
        edges = [_edge("a", "b"), _edge("b", "c")]

        result = await execute_flow(nodes, edges)

        assert result.final_output == 21

    @pytest.mark.asyncio
    async def test_start_node_receives_none(self):
        result = await execute_flow([Node(id="a", script="input is None")], [])

        assert result.final_output is True


class TestStartNode:
    """Tests for choosing where a run begins."""

    @pytest.mark.asyncio
    async def test_explicit_start(self):
        nodes = [Node(id="a", script="1"), Node(id="b", script="2")]

        result = await GraphExecutor().run(nodes, [_edge("a", "b")], start_id="b")

        assert result.execution_path == ["b"]
        assert result.final_output == 2

    @pytest.mark.asyncio
    async def test_no_start_node(self):
        """Every node targeted: fail before executing anything."""
        nodes = [Node(id="a", script="1"), Node(id="b", script="2")]
        edges = [_edge("a", "b"), _edge("b", "a")]

        result = await GraphExecutor().run(nodes, edges)

        assert result.success is False
        assert result.error == "No start node found"
        assert result.execution_path == []

    @pytest.mark.asyncio
    async def test_empty_flow(self):
        result = await GraphExecutor().run([], [])

        assert result.success is False
        assert result.error == "No start node found"


class TestCycleGuard:
    """Tests for revisit handling."""

    @pytest.mark.asyncio
    async def test_revisit_stops_successfully(self):
        """s -> a -> b -> a stops after b with b's output."""
        nodes = [
            Node(id="s", script="0"),
            Node(id="a", script="input + 1"),
            Node(id="b", script="input + 10"),
        ]
        edges = [_edge("s", "a"), _edge("a", "b"), _edge("b", "a")]

        result = await GraphExecutor().run(nodes, edges)

        assert result.success is True
        assert result.execution_path == ["s", "a", "b"]
        assert result.final_output == 11

    @pytest.mark.asyncio
    async def test_self_loop(self):
        nodes = [Node(id="a", script="1")]

        result = await GraphExecutor().run(nodes, [_edge("a", "a")], start_id="a")

        assert result.success is True
        assert result.execution_path == ["a"]


class TestFailures:
    """Tests for runs that halt."""

    @pytest.mark.asyncio
    async def test_script_failure_halts(self):
        nodes = [
            Node(id="a", script="1"),
            Node(id="b", script="1 / 0"),
            Node(id="c", script="3"),
        ]
        edges = [_edge("a", "b"), _edge("b", "c")]

        result = await GraphExecutor().run(nodes, edges)

        assert result.success is False
        assert result.execution_path == ["a", "b"]
        assert result.error.startswith("Node b execution failed:")
        assert result.final_output is None

    @pytest.mark.asyncio
    async def test_dangling_edge(self):
        """An edge to a missing node fails with the id in the path."""
        nodes = [Node(id="a", script="1")]

        result = await GraphExecutor().run(nodes, [_edge("a", "ghost")])

        assert result.success is False
        assert result.error == "Node ghost not found"
        assert result.execution_path == ["a", "ghost"]

    @pytest.mark.asyncio
    async def test_too_many_edges_halts(self):
        nodes = [Node(id=n, script="1") for n in "abcd"]
        edges = [_edge("a", "b"), _edge("a", "c"), _edge("a", "d")]

        result = await GraphExecutor().run(nodes, edges)

        assert result.success is False
        assert "3 outgoing edges" in result.error
        assert result.execution_path == ["a"]


class TestObserver:
    """Tests for observer callbacks during a graph run."""

    @pytest.mark.asyncio
    async def test_start_and_complete_per_node(self, branching_nodes, branching_edges):
        events: list[tuple[str, str]] = []
        observer = RunObserver(
            on_node_start=lambda n: events.append(("start", n)),
            on_node_complete=lambda n, r: events.append(("done", n)),
        )
        branching_nodes[0] = Node(id="start", script="42")

        await GraphExecutor().run(branching_nodes, branching_edges, observer=observer)

        assert events == [
            ("start", "start"),
            ("done", "start"),
            ("start", "check"),
            ("done", "check"),
            ("start", "yes"),
            ("done", "yes"),
        ]

    @pytest.mark.asyncio
    async def test_failed_node_still_completes(self):
        completed = []
        observer = RunObserver(on_node_complete=lambda n, r: completed.append(r.success))

        await GraphExecutor().run([Node(id="a", script="1 / 0")], [], observer=observer)

        assert completed == [False]

    @pytest.mark.asyncio
    async def test_input_nodes_are_not_mutated(self, branching_nodes, branching_edges):
        await GraphExecutor().run(branching_nodes, branching_edges)

        assert all(n.output is None and not n.has_error for n in branching_nodes)
