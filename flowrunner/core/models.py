"""Data models for flow execution.

Uses Pydantic for validated node/edge snapshots and typed run results.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SkipValidation, model_validator


class LogLevel(str, Enum):
    """Severity of an execution log record."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# --- Flow Snapshot Models ---


class Position(BaseModel):
    """Canvas position of a node (display only)."""

    x: float = 0.0
    y: float = 0.0


class Node(BaseModel):
    """A code node: identity, label, script body and execution annotations."""

    id: str
    label: str = ""
    script: str = ""
    position: Position | None = None

    # Transient annotations, written only through apply_result()/mark_executing()
    output: Any = None
    is_executing: bool = False
    has_error: bool = False
    error_message: str | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_canvas_shape(cls, data: Any) -> Any:
        """Accept the canvas export shape ``{"id", "data": {"label", "code"}}``."""
        if not isinstance(data, dict) or "data" not in data:
            return data

        flattened = {k: v for k, v in data.items() if k != "data"}
        payload = data.get("data") or {}
        flattened.setdefault("label", payload.get("label", ""))
        flattened.setdefault("script", payload.get("code", payload.get("script", "")))
        for camel, snake in (
            ("output", "output"),
            ("isExecuting", "is_executing"),
            ("hasError", "has_error"),
            ("errorMessage", "error_message"),
        ):
            if camel in payload:
                flattened.setdefault(snake, payload[camel])
        return flattened

    @property
    def display_name(self) -> str:
        return self.label or self.id


class Edge(BaseModel):
    """Directed edge between two nodes. Carries no condition payload."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")


# --- Execution Models ---


class ExecutionContext(BaseModel):
    """Inputs to a single script invocation."""

    input: Any = None
    # Reserved for cross-node shared state; always empty at call time today.
    # Not validated so the script writes into the caller's own mapping.
    variables: SkipValidation[dict[str, Any]] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """Outcome of one script invocation. Never raised, always returned."""

    success: bool
    output: Any = None
    error: str | None = None


class NodeExecutionResult(ExecutionResult):
    """Outcome of one queue-mode node execution, with its own log lines."""

    logs: list[str] = Field(default_factory=list)


class ExecutionLog(BaseModel):
    """Append-only log record produced during a run."""

    node_id: str
    node_name: str
    timestamp: datetime
    level: LogLevel
    message: str
    data: Any = None


class FlowExecutionResult(BaseModel):
    """Result of a graph-mode run."""

    success: bool
    execution_path: list[str] = Field(default_factory=list)
    final_output: Any = None
    error: str | None = None


class QueueExecutionResult(BaseModel):
    """Result of a queue-mode run."""

    success: bool
    execution_queue: list[str] = Field(default_factory=list)
    completed_nodes: list[str] = Field(default_factory=list)
    final_output: Any = None
    error: str | None = None
    logs: list[ExecutionLog] = Field(default_factory=list)


class StepResult(BaseModel):
    """Result of executing a single queue step."""

    result: NodeExecutionResult
    has_next: bool


# --- Annotation Helpers ---


def mark_executing(node: Node, is_executing: bool) -> Node:
    """Return a copy of ``node`` with the executing flag set."""
    return node.model_copy(update={"is_executing": is_executing})


def apply_result(node: Node, result: ExecutionResult) -> Node:
    """Return a copy of ``node`` annotated with a completed invocation.

    Executing and error flags are never both set on the returned node.
    """
    if result.success:
        update = {
            "output": result.output,
            "is_executing": False,
            "has_error": False,
            "error_message": None,
        }
    else:
        update = {
            "output": None,
            "is_executing": False,
            "has_error": True,
            "error_message": result.error or "Execution failed",
        }
    return node.model_copy(update=update)


def reset_annotations(nodes: list[Node]) -> list[Node]:
    """Return copies of ``nodes`` with all execution annotations cleared."""
    return [
        node.model_copy(
            update={
                "output": None,
                "is_executing": False,
                "has_error": False,
                "error_message": None,
            }
        )
        for node in nodes
    ]
