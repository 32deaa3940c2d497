"""Plugin registry and base plugin tool class."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import assert_never

from scanchat.exceptions import PluginNotFoundError
from scanchat.logging import get_logger
from scanchat.plugins.grammar import CommandGrammar, CommandParameters

log = get_logger(__name__)

_TOOL_LOG_LINE_RE = re.compile(r"^\[(INF|WRN|ERR|DBG|FTL)\]")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def filter_output_lines(output: str) -> list[str]:
    """Split raw tool output into result lines.

    Blank lines, projectdiscovery log lines and leftover SSE framing are
    dropped.
    """
    lines: list[str] = []
    for raw in str(output or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        if _TOOL_LOG_LINE_RE.match(line):
            continue
        if line.startswith("data:") or line == "[DONE]":
            continue
        lines.append(line)
    return lines


class PluginKind(str, Enum):
    """Closed set of scanning tools the router can dispatch to."""

    ALTERX = "alterx"
    KATANA = "katana"
    SUBFINDER = "subfinder"

    @classmethod
    def from_name(cls, value: str | None) -> "PluginKind | None":
        cleaned = str(value or "").strip().lower().lstrip("/")
        for kind in cls:
            if kind.value == cleaned:
                return kind
        return None


class PluginTool(ABC):
    """Base class for remote scanning tools."""

    name: str = ""
    title: str = ""
    repo_url: str = ""
    description: str = ""
    heartbeat_interval: float = 10.0
    request_timeout: float = 60.0
    params_type: type[CommandParameters] = CommandParameters

    @property
    def grammar(self) -> CommandGrammar:
        return self.params_type.grammar()

    def parse(self, text: str) -> CommandParameters:
        """Parse a command line; errors and help land on the result."""
        return self.params_type.parse(text)

    def detect_failure(self, output: str) -> bool:
        """Whether successful-looking output actually reports a tool failure."""
        return False

    def process_output(self, output: str) -> list[str]:
        return filter_output_lines(output)

    def timeout_message(self, seconds: float) -> str:
        return f"🚨 {self.title} scan timed out after {seconds:g} seconds."

    @abstractmethod
    def target(self, params: CommandParameters) -> str:
        """Human-readable scan target."""
        pass

    @abstractmethod
    def no_data_message(self, params: CommandParameters) -> str:
        pass

    @abstractmethod
    def format_results(
        self,
        lines: list[str],
        params: CommandParameters,
        scanned_at: datetime,
    ) -> str:
        """Render result lines as a markdown section.

        Args:
            lines: Filtered output lines
            params: Parameters the scan ran with
            scanned_at: UTC time the scan finished

        Returns:
            Markdown text
        """
        pass

    @abstractmethod
    def synthesis_prompt(self, query: str) -> str:
        """Prompt asking the model to turn a request into a command."""
        pass

    def heading(self) -> str:
        return f"## [{self.title}]({self.repo_url})"


def resolve_plugin(kind: PluginKind) -> PluginTool:
    """Return the tool implementation for ``kind``."""
    from scanchat.plugins.alterx import AlterxTool
    from scanchat.plugins.katana import KatanaTool
    from scanchat.plugins.subfinder import SubfinderTool

    match kind:
        case PluginKind.ALTERX:
            return AlterxTool()
        case PluginKind.KATANA:
            return KatanaTool()
        case PluginKind.SUBFINDER:
            return SubfinderTool()
        case _:
            assert_never(kind)


def get_plugin(name: str) -> PluginTool:
    """Look a tool up by name or ``toolId``."""
    kind = PluginKind.from_name(name)
    if kind is None:
        raise PluginNotFoundError(name)
    return resolve_plugin(kind)


def list_plugins() -> list[PluginTool]:
    return [resolve_plugin(kind) for kind in PluginKind]


def tools_guide() -> str:
    """Markdown listing of every available tool, answered for ``/tools``."""
    parts = ["Tools available in ScanChat:"]
    for tool in list_plugins():
        parts.append(
            f"+ [{tool.title}]({tool.repo_url}): {tool.description} "
            f"Use /{tool.name} -h for more details."
        )
    parts.append(
        "To use these tools, type the tool's command followed by -h to see "
        "specific instructions and options for each tool."
    )
    return "\n\n".join(parts)
