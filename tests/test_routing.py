"""Tests for graph-mode edge selection."""

import pytest

from flowrunner.core.models import Edge
from flowrunner.core.routing import (
    Predicate,
    Terminal,
    Unconditional,
    UnsupportedBranchingError,
    build_selector,
)


def _edges(source: str, *targets: str) -> list[Edge]:
    return [
        Edge(id=f"{source}-{i}", source=source, target=target)
        for i, target in enumerate(targets)
    ]


class TestBuildSelector:
    """Tests for turning outgoing edges into a selector."""

    def test_no_edges_is_terminal(self):
        selector = build_selector("a", [])

        assert isinstance(selector, Terminal)
        assert selector.next_node("anything") is None

    def test_single_edge_is_unconditional(self):
        """One edge is followed regardless of output."""
        selector = build_selector("a", _edges("a", "b"))

        assert isinstance(selector, Unconditional)
        assert selector.next_node(None) == "b"
        assert selector.next_node(False) == "b"

    def test_two_edges_branch_on_truthiness(self):
        """First edge on truthy output, second on falsy, in insertion order."""
        selector = build_selector("a", _edges("a", "yes", "no"))

        assert isinstance(selector, Predicate)
        assert selector.next_node(1) == "yes"
        assert selector.next_node("text") == "yes"
        assert selector.next_node({}) == "yes"
        assert selector.next_node(0) == "no"
        assert selector.next_node("") == "no"
        assert selector.next_node([]) == "no"
        assert selector.next_node(None) == "no"

    def test_edge_order_decides_branch(self):
        """Reversing insertion order swaps the branches."""
        selector = build_selector("a", _edges("a", "no", "yes"))

        assert selector.next_node(True) == "no"

    def test_custom_classifier(self):
        selector = build_selector("a", _edges("a", "even", "odd"), lambda v: v % 2 == 0)

        assert selector.next_node(4) == "even"
        assert selector.next_node(3) == "odd"

    def test_more_than_two_edges_rejected(self):
        """Three outgoing edges is a structural error, not a silent stop."""
        with pytest.raises(UnsupportedBranchingError, match="Node a has 3 outgoing edges"):
            build_selector("a", _edges("a", "b", "c", "d"))


class TestPredicate:
    """Tests for Predicate with missing slots."""

    def test_missing_false_target_ends_run(self):
        selector = Predicate(true_target="b", false_target=None)

        assert selector.next_node(False) is None
        assert selector.next_node(True) == "b"
