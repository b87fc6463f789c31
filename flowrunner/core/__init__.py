"""Core modules for flow execution."""

from flowrunner.core.models import (
    Edge,
    ExecutionContext,
    ExecutionLog,
    ExecutionResult,
    FlowExecutionResult,
    LogLevel,
    Node,
    NodeExecutionResult,
    QueueExecutionResult,
    StepResult,
)

__all__ = [
    "Edge",
    "ExecutionContext",
    "ExecutionLog",
    "ExecutionResult",
    "FlowExecutionResult",
    "LogLevel",
    "Node",
    "NodeExecutionResult",
    "QueueExecutionResult",
    "StepResult",
]
