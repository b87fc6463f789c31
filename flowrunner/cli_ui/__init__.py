"""Terminal rendering for flows, node status and run logs."""

from flowrunner.cli_ui.graph_renderer import (
    FlowTreeRenderer,
    LogTableRenderer,
    StatusTableRenderer,
)

__all__ = ["FlowTreeRenderer", "LogTableRenderer", "StatusTableRenderer"]
