"""
Tool execution boundary.

The agent hands a resolved tool name and argument object to a
``ToolExecutor`` and gets back a ``ToolResult``.  Structured failures are
raised as ``ToolExecutionError``; the agent turns every failure, structured
or not, into a degraded result so the model always gets an answer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from tokenprobe.errors import ToolExecutionError
from tokenprobe.tools.registry import ToolRegistry
from tokenprobe.tools.validation import ToolValidator
from tokenprobe.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)


class ToolExecutor(ABC):
    @abstractmethod
    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run one tool.  Raises ``ToolExecutionError`` on a known failure."""
        ...


class HttpToolExecutor(ToolExecutor):
    """
    Executes tools by POSTing their arguments to ``{base_url}/api/tools/{name}``.

    Parameters
    ----------
    base_url:
        Root of the service hosting the investigation tools.
    registry:
        Known tools.  Names outside it fail with ``unknown_tool`` before any
        request is made, and arguments are validated against its schemas.
    internal_token:
        Sent as ``x-internal-token`` when non-empty.
    timeout:
        Seconds allowed for a single tool call.
    client:
        Optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str,
        registry: ToolRegistry,
        internal_token: str = "",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.registry = registry
        self._token = internal_token
        self._timeout = timeout
        self._client = client

    def url_for(self, name: str) -> str:
        return f"{self._base_url}/api/tools/{name}"

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        tool = self.registry.get(name)
        if tool is None:
            raise ToolExecutionError(ErrorCode.UNKNOWN_TOOL, f"Unknown tool: {name}")

        valid, error_msg = ToolValidator.validate(tool, arguments)
        if not valid:
            raise ToolExecutionError(ErrorCode.VALIDATION_ERROR, error_msg or "invalid arguments")

        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["x-internal-token"] = self._token

        try:
            if self._client is not None:
                resp = await self._client.post(
                    self.url_for(name), json=arguments, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self.url_for(name), json=arguments, headers=headers)
        except httpx.TimeoutException as exc:
            raise ToolExecutionError(
                ErrorCode.TIMEOUT, f"Tool timed out after {self._timeout}s"
            ) from exc
        except httpx.TransportError as exc:
            raise ToolExecutionError(ErrorCode.BACKEND_ERROR, str(exc)) from exc

        if resp.status_code >= 400:
            raise ToolExecutionError(ErrorCode.BACKEND_ERROR, resp.text[:500])

        try:
            data = resp.json()
        except ValueError as exc:
            raise ToolExecutionError(
                ErrorCode.BACKEND_ERROR, f"Tool returned non-JSON body: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ToolExecutionError(ErrorCode.BACKEND_ERROR, "Tool returned a non-object body")

        try:
            return ToolResult.from_payload(data)
        except ValueError as exc:
            raise ToolExecutionError(ErrorCode.BACKEND_ERROR, f"Malformed tool result: {exc}") from exc
