"""Per-node-kind execution strategies for queue-mode runs.

Two strategies:
1. EntryNodeStrategy - the designated entry node; a pure no-op that returns
   a fixed "initialized" payload without contacting anything
2. HttpCallStrategy - every other node; issues one of the preset call
   templates, picked by the node's queue position

Both return a NodeExecutionResult and never raise. There is no retry: a
failed call is reported once.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from flowrunner.config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CALL_TEMPLATES,
    DEFAULT_ENTRY_NODE_ID,
    CallTemplate,
    FlowrunnerConfig,
)
from flowrunner.core.models import Node, NodeExecutionResult

logger = logging.getLogger(__name__)

__all__ = [
    "CallTemplate",
    "DEFAULT_CALL_TEMPLATES",
    "DispatchError",
    "EntryNodeStrategy",
    "HttpCallStrategy",
    "NodeDispatcher",
    "ResponseDecodeError",
    "ResponseStatusError",
]


class DispatchError(Exception):
    """Error while executing a node through its strategy."""

    pass


class ResponseStatusError(DispatchError):
    """Remote call returned a non-2xx status."""

    pass


class ResponseDecodeError(DispatchError):
    """Remote call returned a body that is not valid JSON."""

    pass


class EntryNodeStrategy:
    """Entry node: manufacture the initialization payload."""

    async def execute(self, node: Node, position: int) -> NodeExecutionResult:
        return NodeExecutionResult(
            success=True,
            output={
                "status": "initialized",
                "timestamp": datetime.now(UTC).isoformat(),
            },
            logs=["Input node initialized"],
        )


class HttpCallStrategy:
    """Execute a node by issuing a preset HTTP request.

    The template is ``templates[(position - 1) % len(templates)]``: position 0
    belongs to the entry node, so the first non-entry node gets template 0.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        templates: list[CallTemplate] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.templates = list(DEFAULT_CALL_TEMPLATES if templates is None else templates)
        if not self.templates:
            raise ValueError("At least one call template is required")
        self.timeout = timeout
        self._client = client

    def template_for(self, position: int) -> CallTemplate:
        return self.templates[(position - 1) % len(self.templates)]

    async def _send(self, template: CallTemplate) -> httpx.Response:
        url = f"{self.base_url}{template.path}"
        kwargs: dict[str, Any] = {}
        if template.method == "POST" and template.payload is not None:
            kwargs["json"] = template.payload

        if self._client is not None:
            return await self._client.request(template.method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(template.method, url, **kwargs)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.is_success:
            raise ResponseStatusError(
                f"API request failed: {response.status_code} {response.reason_phrase}".rstrip()
            )
        try:
            return response.json()
        except ValueError as e:
            raise ResponseDecodeError(f"Invalid JSON response: {e}") from e

    async def execute(self, node: Node, position: int) -> NodeExecutionResult:
        template = self.template_for(position)
        logs = [f"Using API endpoint: {template.name}"]
        logger.info(
            "[%s] %s %s%s", node.display_name, template.method, self.base_url, template.path
        )

        try:
            response = await self._send(template)
            logger.debug("[%s] Response status: %s", node.display_name, response.status_code)
            data = self._decode(response)
        except (httpx.HTTPError, DispatchError) as e:
            message = str(e) or type(e).__name__
            logger.warning("[%s] API call failed: %s", node.display_name, message)
            logs.append(f"API call to {template.name} failed: {message}")
            return NodeExecutionResult(success=False, error=message, logs=logs)

        logs.append(f"API call to {template.name} successful")
        return NodeExecutionResult(success=True, output=data, logs=logs)


class NodeDispatcher:
    """Pick the strategy for a node: entry no-op or remote call."""

    def __init__(
        self,
        entry_node_id: str = DEFAULT_ENTRY_NODE_ID,
        entry: EntryNodeStrategy | None = None,
        remote: HttpCallStrategy | None = None,
    ):
        self.entry_node_id = entry_node_id
        self.entry = entry or EntryNodeStrategy()
        self.remote = remote or HttpCallStrategy()

    @classmethod
    def from_config(
        cls,
        config: FlowrunnerConfig,
        client: httpx.AsyncClient | None = None,
    ) -> NodeDispatcher:
        return cls(
            entry_node_id=config.entry_node_id,
            remote=HttpCallStrategy(
                base_url=config.api_base_url,
                templates=config.call_templates,
                timeout=config.request_timeout,
                client=client,
            ),
        )

    def is_entry(self, node: Node) -> bool:
        return node.id == self.entry_node_id

    def describe(self, node: Node, position: int) -> str:
        """Human-readable name of what executing ``node`` will do."""
        if self.is_entry(node):
            return "entry"
        return self.remote.template_for(position).name

    async def execute(self, node: Node, position: int) -> NodeExecutionResult:
        if self.is_entry(node):
            return await self.entry.execute(node, position)
        return await self.remote.execute(node, position)
