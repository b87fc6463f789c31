"""Flow graph snapshot: nodes, edges, loading and structural validation.

A FlowGraph is a read-only view over the caller's node/edge collections.
Executors consult it for lookups and never mutate it.
"""

import json
from pathlib import Path
from typing import Any

import networkx as nx
import yaml
from pydantic import BaseModel, Field, ValidationError

from flowrunner.core.models import Edge, Node

# Graph-mode routing supports at most this many outgoing edges per node
MAX_OUTGOING_EDGES = 2


class FlowError(Exception):
    """Structural error in a flow."""

    pass


class FlowLoadError(FlowError):
    """Flow file could not be read or parsed."""

    pass


class FlowGraph(BaseModel):
    """Snapshot of a flow's nodes and edges."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    def node_map(self) -> dict[str, Node]:
        """Build O(1) lookup map for nodes by ID (first occurrence wins)."""
        node_map: dict[str, Node] = {}
        for node in self.nodes:
            node_map.setdefault(node.id, node)
        return node_map

    def get_node(self, node_id: str) -> Node | None:
        return self.node_map().get(node_id)

    def outgoing_edges(self, node_id: str) -> list[Edge]:
        """Outgoing edges of ``node_id`` in insertion order."""
        return [e for e in self.edges if e.source == node_id]

    def find_start_node(self) -> str | None:
        """First node (in node order) that has no incoming edge."""
        targets = {e.target for e in self.edges}
        for node in self.nodes:
            if node.id not in targets:
                return node.id
        return None

    def get_terminal_nodes(self) -> set[str]:
        """Find nodes with no outgoing edges"""
        G = self._to_networkx()
        return {n for n in G.nodes() if G.out_degree(n) == 0}

    def validate_graph(self) -> list[str]:
        """
        Validate graph structure using NetworkX.
        Returns list of validation errors (empty if the flow is runnable).

        Cycles are not errors: graph-mode runs stop at the first revisit.
        Use find_cycles() to list them.
        """
        errors = []

        seen_node_ids: set[str] = set()
        for node in self.nodes:
            if node.id in seen_node_ids:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_node_ids.add(node.id)

        seen_edge_ids: set[str] = set()
        for edge in self.edges:
            if edge.id in seen_edge_ids:
                errors.append(f"Duplicate edge ID: '{edge.id}'")
            seen_edge_ids.add(edge.id)

        for edge in self.edges:
            if edge.source not in seen_node_ids:
                errors.append(f"Edge {edge.id}: source '{edge.source}' not found")
            if edge.target not in seen_node_ids:
                errors.append(f"Edge {edge.id}: target '{edge.target}' not found")

        G = self._to_networkx()
        for node_id in seen_node_ids:
            degree = G.out_degree(node_id, weight="count")
            if degree > MAX_OUTGOING_EDGES:
                errors.append(
                    f"Node '{node_id}' has {degree} outgoing edges "
                    f"(at most {MAX_OUTGOING_EDGES} are supported)"
                )

        if self.nodes and self.find_start_node() is None:
            errors.append("No start node found (every node has an incoming edge)")

        return errors

    def find_cycles(self, limit: int = 100) -> list[list[str]]:
        """List simple cycles (capped at ``limit``)."""
        G = self._to_networkx()
        cycles = []
        for cycle in nx.simple_cycles(G):
            cycles.append(cycle)
            if len(cycles) >= limit:
                break
        return cycles

    def _to_networkx(self) -> nx.DiGraph:
        """Convert to NetworkX DiGraph for analysis"""
        G = nx.DiGraph()
        for node in self.nodes:
            G.add_node(node.id)
        for edge in self.edges:
            # Parallel edges are folded into a count so weighted out_degree stays exact
            if G.has_edge(edge.source, edge.target):
                G[edge.source][edge.target]["count"] += 1
            else:
                G.add_edge(edge.source, edge.target, count=1)
        return G


def _parse_flow_text(text: str, suffix: str) -> Any:
    if suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_flow(path: str | Path) -> FlowGraph:
    """Load a flow definition from a YAML or JSON file.

    Raises:
        FlowLoadError: If the file is unreadable, malformed or fails validation.
    """
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as e:
        raise FlowLoadError(f"Cannot read flow file '{path}': {e}") from e

    try:
        data = _parse_flow_text(text, path.suffix.lower())
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise FlowLoadError(f"Cannot parse flow file '{path}': {e}") from e

    if not isinstance(data, dict):
        raise FlowLoadError(
            f"Invalid flow file '{path}'. Expected a mapping, got {type(data).__name__}."
        )

    try:
        return FlowGraph.model_validate(data)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise FlowLoadError(f"Invalid flow file '{path}': {details}") from e
