"""Remote execution of plugin tools with progress streaming."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from scanchat.config import PluginsConfig, get_config
from scanchat.logging import get_logger
from scanchat.plugins.grammar import CommandParameters
from scanchat.plugins.registry import PluginTool
from scanchat.streaming import (
    GENERIC_SCAN_ERROR,
    SCAN_DONE_MESSAGE,
    STARTING_MESSAGE,
    STILL_WORKING_MESSAGE,
    Chunk,
    Done,
    Error,
    InvocationState,
    Progress,
    RacingJob,
    StreamEvent,
)

log = get_logger(__name__)

TOOL_FAILURE_MESSAGE = (
    "🚨 An error occurred while running your query. Please try again or check your input."
)


class ToolFetchError(Exception):
    """Remote tool replied, but not with a usable result."""


@dataclass
class ToolInvocation:
    """One request-scoped call to a remote tool."""

    tool: PluginTool
    params: CommandParameters
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 60.0
    heartbeat_interval: float = 10.0
    state: InvocationState = InvocationState.STARTED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PluginInvoker:
    """Run plugin tools on the remote execution service."""

    def __init__(
        self,
        config: PluginsConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or get_config().plugins
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(follow_redirects=True)
        self.clock = clock

    def build_invocation(self, tool: PluginTool, params: CommandParameters) -> ToolInvocation:
        """Resolve URL, headers and timings for ``tool``."""
        tool_cfg = self.config.for_tool(tool.name)
        base = self.config.base_url.rstrip("/")
        url = f"{base}/api/chat/plugins/{tool.name}"
        query = params.to_query()
        if query:
            url = f"{url}?{query}"

        headers: dict[str, str] = {}
        if self.config.auth_token:
            headers["Authorization"] = self.config.auth_token
        if self.config.host_header:
            headers["Host"] = self.config.host_header

        timeout = tool.request_timeout
        heartbeat = tool.heartbeat_interval
        if tool_cfg is not None:
            if tool_cfg.request_timeout:
                timeout = float(tool_cfg.request_timeout)
            if tool_cfg.heartbeat_interval:
                heartbeat = float(tool_cfg.heartbeat_interval)

        return ToolInvocation(
            tool=tool,
            params=params,
            url=url,
            headers=headers,
            timeout=timeout,
            heartbeat_interval=heartbeat,
        )

    async def fetch_output(self, invocation: ToolInvocation) -> str:
        """GET the tool endpoint and return its ``output`` text."""
        log.info("Invoking plugin", tool=invocation.tool.name, url=invocation.url)
        response = await self.client.get(
            invocation.url,
            headers=invocation.headers,
            # The racing job owns the deadline; leave slack so it fires first.
            timeout=invocation.timeout + 5.0,
        )
        if response.status_code < 200 or response.status_code >= 300:
            raise ToolFetchError(f"HTTP error! status: {response.status_code}")
        try:
            payload: Any = response.json()
        except json.JSONDecodeError as e:
            raise ToolFetchError(f"Invalid JSON from tool service: {e}") from e
        if not isinstance(payload, dict):
            raise ToolFetchError("Unexpected response from tool service")
        return str(payload.get("output") or "")

    async def run(
        self,
        tool: PluginTool,
        params: CommandParameters,
        preface: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream progress, then the formatted result or a terminal error."""
        invocation = self.build_invocation(tool, params)

        if preface:
            yield Progress(preface)
        yield Progress(STARTING_MESSAGE)

        job = RacingJob(
            self.fetch_output(invocation),
            interval=invocation.heartbeat_interval,
            timeout=invocation.timeout,
        )
        async for _ in job.heartbeats():
            invocation.state = job.state
            yield Progress(STILL_WORKING_MESSAGE)
        invocation.state = job.state

        if job.state is InvocationState.TIMED_OUT:
            log.warning("Plugin timed out", tool=tool.name, timeout=invocation.timeout)
            yield Error(tool.timeout_message(invocation.timeout))
            return

        if job.state is InvocationState.FAILED:
            log.warning("Plugin call failed", tool=tool.name, error=str(job.error))
            detail = str(job.error or "").strip()
            yield Error(f"🚨 Error: {detail}" if detail else GENERIC_SCAN_ERROR)
            return

        output = job.result or ""
        if tool.detect_failure(output):
            invocation.state = InvocationState.FAILED
            log.warning("Plugin reported failure", tool=tool.name)
            yield Error(TOOL_FAILURE_MESSAGE)
            return

        lines = tool.process_output(output)
        if not lines:
            yield Progress(tool.no_data_message(params))
            yield Done()
            return

        yield Progress(SCAN_DONE_MESSAGE)
        markdown = tool.format_results(lines, params, self.clock())
        yield Chunk(markdown.encode("utf-8"))
        log.info("Plugin finished", tool=tool.name, lines=len(lines))
        yield Done()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
