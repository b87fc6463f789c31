"""CLI entry point for flowrunner.

Commands:
- flowrunner init: Create .flowrunner/config.yaml and a sample flow
- flowrunner validate: Check a flow file's structure
- flowrunner queue: Show the queue-mode execution order
- flowrunner run: Run a flow in graph or queue mode
- flowrunner step: Execute one queue step at a given cursor
- flowrunner version: Show version information
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from flowrunner import __version__
from flowrunner.cli_ui.graph_renderer import (
    FlowTreeRenderer,
    LogTableRenderer,
    StatusTableRenderer,
    node_status,
)
from flowrunner.config import (
    CONFIG_DIR,
    CONFIG_FILE,
    DEFAULT_CONFIG_YAML,
    ConfigError,
    FlowrunnerConfig,
    load_config,
)
from flowrunner.core.events import RunObserver
from flowrunner.core.graph_engine import GraphExecutor
from flowrunner.core.graph_schema import FlowGraph, FlowLoadError, load_flow
from flowrunner.core.models import (
    ExecutionLog,
    ExecutionResult,
    apply_result,
    mark_executing,
)
from flowrunner.core.queue_engine import QueueExecutor
from flowrunner.sandbox.executor import SandboxConfig, ScriptRunner

console = Console()

SAMPLE_FLOW_YAML = """# Sample flow: the input node feeds a classifier that branches
nodes:
  - id: input-node
    label: Input Node
    script: |
      console.log("Starting workflow execution...")
      {"status": "initialized", "value": 7}
  - id: node-1000
    label: Is Odd
    script: |
      input["value"] % 2 == 1
  - id: node-2000
    label: Odd Branch
    script: |
      "odd"
  - id: node-3000
    label: Even Branch
    script: |
      "even"
edges:
  - {id: edge-1, source: input-node, target: node-1000}
  - {id: edge-2, source: node-1000, target: node-2000}
  - {id: edge-3, source: node-1000, target: node-3000}
"""


def _load_or_exit(flow_file: str) -> FlowGraph:
    try:
        return load_flow(flow_file)
    except FlowLoadError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


def _config_or_exit(config_path: str | None) -> FlowrunnerConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        sys.exit(1)


def _format_output(value: object) -> str:
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return repr(value)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """flowrunner - run small graphs of code nodes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@main.command()
def init() -> None:
    """Create .flowrunner/config.yaml and a sample flow.yaml."""
    config_dir = Path.cwd() / CONFIG_DIR
    if config_dir.exists():
        console.print("[yellow]Project already initialized[/yellow]")
        return

    config_dir.mkdir(parents=True)
    (config_dir / CONFIG_FILE).write_text(DEFAULT_CONFIG_YAML)

    sample = Path.cwd() / "flow.yaml"
    if not sample.exists():
        sample.write_text(SAMPLE_FLOW_YAML)

    console.print(
        Panel(
            f"[green]Project initialized![/green]\n\n"
            f"Config: {CONFIG_DIR}/{CONFIG_FILE}\n"
            f"Sample flow: flow.yaml",
            title="flowrunner",
        )
    )


@main.command()
@click.argument("flow_file", type=click.Path(exists=True))
def validate(flow_file: str) -> None:
    """Validate a flow file and show its structure."""
    graph = _load_or_exit(flow_file)

    console.print(FlowTreeRenderer(console).render_as_tree(graph))
    console.print()
    console.print(f"[bold]Nodes:[/] {len(graph.nodes)}")
    console.print(f"[bold]Edges:[/] {len(graph.edges)}")

    cycles = graph.find_cycles()
    if cycles:
        console.print("\n[yellow]Cycles (runs stop at the first revisit):[/]")
        for cycle in cycles:
            console.print(f"  [yellow]• {escape(' -> '.join(cycle))}[/]")

    errors = graph.validate_graph()
    if errors:
        console.print("\n[red bold]Validation Errors:[/]")
        for error in errors:
            console.print(f"  [red]• {escape(str(error))}[/]")
        sys.exit(1)

    console.print("\n[green]✓ Flow is valid[/]")


@main.command()
@click.argument("flow_file", type=click.Path(exists=True))
@click.option("--config", "config_path", type=click.Path(), help="Config file path")
def queue(flow_file: str, config_path: str | None) -> None:
    """Show the queue-mode execution order."""
    graph = _load_or_exit(flow_file)
    config = _config_or_exit(config_path)
    executor = QueueExecutor(config)
    order = executor.build_queue(graph.nodes)

    if not order:
        console.print(
            f"[yellow]Queue is empty: entry node '{escape(config.entry_node_id)}' not found[/yellow]"
        )
        sys.exit(1)

    node_map = graph.node_map()
    table = Table(title="Execution Queue")
    table.add_column("#", justify="right")
    table.add_column("Node", style="cyan")
    table.add_column("Id", style="dim")
    table.add_column("Action", style="magenta")
    for position, node_id in enumerate(order):
        node = node_map[node_id]
        table.add_row(
            str(position),
            escape(node.display_name),
            escape(node_id),
            escape(executor.dispatcher.describe(node, position)),
        )
    console.print(table)


async def _run_graph(graph: FlowGraph, config: FlowrunnerConfig, start_id: str | None) -> bool:
    nodes = {node.id: node for node in graph.nodes}

    def on_start(node_id: str) -> None:
        nodes[node_id] = mark_executing(nodes[node_id], True)
        console.print(f"[blue]⟳[/] {escape(nodes[node_id].display_name)}")

    def on_complete(node_id: str, result: ExecutionResult) -> None:
        nodes[node_id] = apply_result(nodes[node_id], result)

    runner = ScriptRunner(
        SandboxConfig(timeout=config.script_timeout, log_prefix=config.log_prefix)
    )
    result = await GraphExecutor(runner).run(
        graph.nodes,
        graph.edges,
        start_id=start_id,
        observer=RunObserver(on_node_start=on_start, on_node_complete=on_complete),
    )

    statuses = {node_id: node_status(node) for node_id, node in nodes.items()}
    console.print(FlowTreeRenderer(console).render_as_tree(graph, statuses, start_id=start_id))
    console.print(StatusTableRenderer(console).render_status_table(list(nodes.values())))
    console.print(f"[bold]Path:[/] {escape(' -> '.join(result.execution_path))}")
    if result.success:
        console.print(Panel(escape(_format_output(result.final_output)), title="Final output"))
    else:
        console.print(f"[red]Error:[/red] {escape(result.error or 'Execution failed')}")
    return result.success


async def _run_queue(graph: FlowGraph, config: FlowrunnerConfig, log_table: bool) -> bool:
    log_renderer = LogTableRenderer(console)

    def stream(record: ExecutionLog) -> None:
        console.print(log_renderer.format_record(record))

    executor = QueueExecutor(config)
    result = await executor.run_all(
        graph.nodes,
        graph.edges,
        on_log=None if log_table else stream,
    )

    if log_table:
        console.print(log_renderer.render_logs(result.logs))

    console.print(
        f"\n[bold]Completed:[/] {len(result.completed_nodes)}/{len(result.execution_queue)} nodes"
    )
    if result.success:
        console.print(Panel(escape(_format_output(result.final_output)), title="Final output"))
    else:
        console.print(f"[red]Error:[/red] {escape(result.error or 'Execution failed')}")
    return result.success


@main.command()
@click.argument("flow_file", type=click.Path(exists=True))
@click.option(
    "--mode",
    type=click.Choice(["graph", "queue"]),
    default="graph",
    show_default=True,
    help="Traverse edges (graph) or run in creation order (queue)",
)
@click.option("--start", "start_id", help="Start node id (graph mode)")
@click.option("--no-delay", is_flag=True, help="Skip the settling delay between queue nodes")
@click.option(
    "--log-table",
    is_flag=True,
    help="Print the queue log as a table after the run instead of streaming it",
)
@click.option("--config", "config_path", type=click.Path(), help="Config file path")
def run(
    flow_file: str,
    mode: str,
    start_id: str | None,
    no_delay: bool,
    log_table: bool,
    config_path: str | None,
) -> None:
    """Run a flow."""
    graph = _load_or_exit(flow_file)
    config = _config_or_exit(config_path)
    if no_delay:
        config = config.model_copy(update={"settle_delay": 0.0})

    console.print(f"\n[bold]Running flow:[/bold] {escape(flow_file)} [dim]({mode} mode)[/dim]\n")
    if mode == "graph":
        success = asyncio.run(_run_graph(graph, config, start_id))
    else:
        success = asyncio.run(_run_queue(graph, config, log_table))

    if not success:
        sys.exit(1)


@main.command()
@click.argument("flow_file", type=click.Path(exists=True))
@click.option("--cursor", "-c", type=int, default=0, show_default=True, help="Queue position")
@click.option("--config", "config_path", type=click.Path(), help="Config file path")
def step(flow_file: str, cursor: int, config_path: str | None) -> None:
    """Execute the queue node at CURSOR and report whether more remain."""
    graph = _load_or_exit(flow_file)
    config = _config_or_exit(config_path)
    executor = QueueExecutor(config)

    step_result = asyncio.run(executor.run_one_step(graph.nodes, cursor))
    result = step_result.result

    if result.success:
        console.print(Panel(escape(_format_output(result.output)), title=f"Step {cursor}"))
    else:
        console.print(f"[red]Step {cursor} failed:[/red] {escape(result.error or '')}")

    if step_result.has_next:
        console.print(f"[dim]Next: flowrunner step {escape(flow_file)} --cursor {cursor + 1}[/dim]")
    else:
        console.print("[dim]No more steps[/dim]")

    if not result.success:
        sys.exit(1)


@main.command()
def version() -> None:
    """Show version information."""
    console.print(f"flowrunner v{__version__}")


if __name__ == "__main__":
    main()
