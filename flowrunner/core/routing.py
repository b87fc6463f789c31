"""Edge selection for graph-mode runs.

A node's outgoing edges are turned into one of three selectors:

- Terminal: no outgoing edge, the run ends after this node.
- Unconditional: one outgoing edge, always followed.
- Predicate: two outgoing edges; the node output is classified and the
  first edge is taken when truthy, the second when falsy.

Branch selection is computed from node output, never stored on the edge.
More than two outgoing edges is rejected instead of silently truncated.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from flowrunner.core.graph_schema import MAX_OUTGOING_EDGES, FlowError
from flowrunner.core.models import Edge
from flowrunner.sandbox.executor import classify_truthiness

logger = logging.getLogger(__name__)


class UnsupportedBranchingError(FlowError):
    """Node has more outgoing edges than graph-mode routing supports."""

    pass


@dataclass(frozen=True)
class Terminal:
    """No next node."""

    def next_node(self, output: Any) -> str | None:
        return None


@dataclass(frozen=True)
class Unconditional:
    """Always route to ``target``."""

    target: str

    def next_node(self, output: Any) -> str | None:
        return self.target


@dataclass(frozen=True)
class Predicate:
    """Route on the classified output of the node."""

    true_target: str | None
    false_target: str | None
    classifier: Callable[[Any], bool] = classify_truthiness

    def next_node(self, output: Any) -> str | None:
        # A missing slot ends the run, same as a terminal node
        if self.classifier(output):
            return self.true_target
        return self.false_target


EdgeSelector = Terminal | Unconditional | Predicate


def build_selector(
    node_id: str,
    outgoing: list[Edge],
    classifier: Callable[[Any], bool] = classify_truthiness,
) -> EdgeSelector:
    """Build the selector for ``node_id`` from its outgoing edges (insertion order).

    Raises:
        UnsupportedBranchingError: If there are more than two outgoing edges.
    """
    if not outgoing:
        return Terminal()
    if len(outgoing) == 1:
        return Unconditional(outgoing[0].target)
    if len(outgoing) == MAX_OUTGOING_EDGES:
        return Predicate(outgoing[0].target, outgoing[1].target, classifier)

    raise UnsupportedBranchingError(
        f"Node {node_id} has {len(outgoing)} outgoing edges; "
        f"at most {MAX_OUTGOING_EDGES} are supported"
    )
