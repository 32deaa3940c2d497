"""Decide whether the newest message is a tool command."""

from __future__ import annotations

import re
from dataclasses import dataclass

from scanchat.exceptions import PluginNotFoundError
from scanchat.plugins.registry import PluginKind

_TOOLS_GUIDE_RE = re.compile(r"^/tools$")
_COMMAND_RES = {
    kind: re.compile(rf"^/{re.escape(kind.value)}(?:\s+\S+)*$") for kind in PluginKind
}


@dataclass(frozen=True)
class NoCommand:
    pass


@dataclass(frozen=True)
class ToolsGuide:
    pass


@dataclass(frozen=True)
class PluginCommand:
    kind: PluginKind
    invoked_by_tool_id: bool = False


Route = NoCommand | ToolsGuide | PluginCommand


def is_command(message: str, kind: PluginKind) -> bool:
    """``/<tool>`` optionally followed by whitespace-separated arguments."""
    text = (message or "").strip()
    return text.startswith("/") and bool(_COMMAND_RES[kind].match(text))


def route(message: str, tool_id: str | None = None) -> Route:
    """Classify the newest message.

    An explicit ``tool_id`` wins over the message text and raises
    ``PluginNotFoundError`` when it names no known tool.
    """
    if tool_id:
        kind = PluginKind.from_name(tool_id)
        if kind is None:
            raise PluginNotFoundError(tool_id)
        return PluginCommand(kind=kind, invoked_by_tool_id=True)

    text = (message or "").strip()
    if not text.startswith("/"):
        return NoCommand()
    if _TOOLS_GUIDE_RE.match(text):
        return ToolsGuide()
    for kind in PluginKind:
        if is_command(text, kind):
            return PluginCommand(kind=kind)
    return NoCommand()
