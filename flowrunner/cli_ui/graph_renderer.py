"""Terminal rendering for flows, node status and run logs using Rich.

SECURITY: All user-controlled strings (labels, ids, outputs, messages) are
escaped to prevent Rich markup injection.
"""

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from flowrunner.core.graph_schema import FlowGraph
from flowrunner.core.models import Edge, ExecutionLog, LogLevel, Node

# Status colors keyed by plain strings (callers pass "completed", "failed", ...)
STATUS_COLORS = {
    "pending": "dim",
    "running": "blue bold",
    "completed": "green",
    "failed": "red bold",
}

LEVEL_STYLES = {
    LogLevel.INFO: "blue",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
}


def node_status(node: Node) -> str:
    """Derive a display status from a node's execution annotations."""
    if node.is_executing:
        return "running"
    if node.has_error:
        return "failed"
    if node.output is not None:
        return "completed"
    return "pending"


def _truncate(text: str, limit: int = 40) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


class FlowTreeRenderer:
    """
    Render a flow as a Rich Tree, starting at its start node.

    Two-edge nodes label their children with the branch they represent.
    Revisited nodes are shown as loop markers instead of being expanded.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_as_tree(
        self,
        graph: FlowGraph,
        statuses: dict[str, str] | None = None,
        start_id: str | None = None,
        max_depth: int = 50,
    ) -> Tree:
        tree = Tree(f"[bold]Flow[/] ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")

        node_map = graph.node_map()
        edge_map: dict[str, list[Edge]] = {n.id: [] for n in graph.nodes}
        for edge in graph.edges:
            if edge.source in edge_map:
                edge_map[edge.source].append(edge)

        entry = node_map.get(start_id or graph.find_start_node() or "")
        if not entry:
            tree.add("[red]Error: No start node found[/]")
            return tree

        self._add_node_to_tree(tree, entry, statuses, node_map, edge_map, set(), 0, max_depth)
        return tree

    def _add_node_to_tree(
        self,
        parent: Tree,
        node: Node,
        statuses: dict[str, str] | None,
        node_map: dict[str, Node],
        edge_map: dict[str, list[Edge]],
        visited: set,
        depth: int,
        max_depth: int,
    ):
        if depth >= max_depth:
            parent.add("[dim]... (max depth reached)[/]")
            return

        safe_label = escape(node.display_name)
        if node.id in visited:
            parent.add(f"[dim]↩ {escape(node.id)} (loop)[/]")
            return
        visited.add(node.id)

        status = (statuses or {}).get(node.id, "pending")
        color = STATUS_COLORS.get(status, "cyan")
        indicator = {"completed": " ✓", "failed": " ✗", "running": " ⟳"}.get(status, "")
        branch = parent.add(f"[{color}]{safe_label}{indicator}[/] [dim]({escape(node.id)})[/]")

        outgoing = edge_map.get(node.id, [])
        labels = ["[dim](truthy)[/]", "[dim](falsy)[/]"] if len(outgoing) == 2 else []
        for index, edge in enumerate(outgoing):
            child = node_map.get(edge.target)
            if child is None:
                branch.add(f"[red]missing node {escape(edge.target)}[/]")
                continue
            target = branch.add(labels[index]) if labels else branch
            self._add_node_to_tree(
                target, child, statuses, node_map, edge_map, visited.copy(), depth + 1, max_depth
            )


class StatusTableRenderer:
    """Renders node execution annotations as a Rich table."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_status_table(self, nodes: list[Node], title: str = "Nodes") -> Table:
        table = Table(title=title)
        table.add_column("Node", style="cyan")
        table.add_column("Id", style="dim")
        table.add_column("Status", justify="center")
        table.add_column("Output", max_width=40)

        for node in nodes:
            status = node_status(node)
            if status == "completed":
                status_text = "[green]✓ Completed[/]"
            elif status == "failed":
                status_text = "[red]✗ Failed[/]"
            elif status == "running":
                status_text = "[blue]⟳ Running[/]"
            else:
                status_text = "[dim]○ Pending[/]"

            shown: Any = node.error_message if node.has_error else node.output
            output_str = escape(_truncate(str(shown) if shown is not None else ""))
            table.add_row(escape(node.display_name), escape(node.id), status_text, output_str)

        return table


class LogTableRenderer:
    """Renders an execution log trail as a Rich table, colored by level."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_logs(self, logs: list[ExecutionLog], title: str = "Execution Log") -> Table:
        table = Table(title=title)
        table.add_column("Time", style="dim")
        table.add_column("Node", style="cyan")
        table.add_column("Level", justify="center")
        table.add_column("Message")

        for record in logs:
            style = LEVEL_STYLES.get(record.level, "white")
            table.add_row(
                record.timestamp.strftime("%H:%M:%S.%f")[:-3],
                escape(record.node_name),
                f"[{style}]{record.level.value}[/]",
                escape(record.message),
            )

        return table

    def format_record(self, record: ExecutionLog) -> str:
        """Single-line markup for streaming a record as it arrives."""
        style = LEVEL_STYLES.get(record.level, "white")
        return (
            f"[dim]{record.timestamp.strftime('%H:%M:%S')}[/] "
            f"[{style}]{record.level.value:>7}[/] "
            f"[cyan]{escape(record.node_name)}[/]: {escape(record.message)}"
        )
