# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the flowrunner test suite.

This module provides foundational fixtures used across all test modules:
- Sample flows (branching, linear, queue ordering)
- Configurations with the settling delay disabled
- An httpx client backed by a MockTransport, so no test touches the network

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
    All fixtures in this file are automatically available in test modules.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
import yaml

from flowrunner.config import FlowrunnerConfig
from flowrunner.core.dispatch import NodeDispatcher
from flowrunner.core.models import Edge, Node

TEST_BASE_URL = "https://executor.test"


# =============================================================================
# Flow Fixtures
# =============================================================================


@pytest.fixture
def branching_nodes() -> list[Node]:
    """A classifier node that branches to one of two leaves.

    Layout:
        start -> check -> yes (truthy)
                       -> no  (falsy)
    """
    return [
        Node(id="start", label="Start", script="input"),
        Node(id="check", label="Check", script="input > 10"),
        Node(id="yes", label="Yes", script='"big"'),
        Node(id="no", label="No", script='"small"'),
    ]


@pytest.fixture
def branching_edges() -> list[Edge]:
    return [
        Edge(id="e1", source="start", target="check"),
        Edge(id="e2", source="check", target="yes"),
        Edge(id="e3", source="check", target="no"),
    ]


@pytest.fixture
def queue_nodes() -> list[Node]:
    """Entry node plus two nodes given out of creation order."""
    return [
        Node(id="node-2000", label="Second"),
        Node(id="input-node", label="Input Node"),
        Node(id="node-1000", label="First"),
    ]


@pytest.fixture
def flow_data() -> dict[str, Any]:
    """Raw flow mapping as it appears in a flow file."""
    return {
        "nodes": [
            {"id": "a", "label": "A", "script": "1"},
            {"id": "b", "label": "B", "script": "input + 1"},
        ],
        "edges": [{"id": "e1", "source": "a", "target": "b"}],
    }


@pytest.fixture
def flow_file(tmp_path: Path, flow_data: dict[str, Any]) -> Path:
    """Write ``flow_data`` to a YAML file and return its path."""
    path = tmp_path / "flow.yaml"
    path.write_text(yaml.safe_dump(flow_data))
    return path


# =============================================================================
# Config and Transport Fixtures
# =============================================================================


@pytest.fixture
def no_delay_config() -> FlowrunnerConfig:
    """Config pointing at a test host with the settling delay disabled."""
    return FlowrunnerConfig(api_base_url=TEST_BASE_URL, settle_delay=0)


@pytest.fixture
def json_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Handler that echoes the request method and path as JSON."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"method": request.method, "path": request.url.path}
        )

    return handler


@pytest.fixture
def make_client() -> Callable[..., httpx.AsyncClient]:
    """Factory for AsyncClients backed by a MockTransport handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def mock_dispatcher(no_delay_config, make_client, json_handler) -> NodeDispatcher:
    """Dispatcher whose remote calls go to the echoing MockTransport."""
    return NodeDispatcher.from_config(no_delay_config, client=make_client(json_handler))


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "network: marks tests that need real network access")
