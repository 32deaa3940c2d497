"""Scanning tool plugins for scanchat."""

from scanchat.plugins.grammar import CommandGrammar, CommandParameters, FlagSpec
from scanchat.plugins.registry import (
    PluginKind,
    PluginTool,
    get_plugin,
    list_plugins,
    resolve_plugin,
    tools_guide,
)
from scanchat.plugins.alterx import AlterxParams, AlterxTool
from scanchat.plugins.katana import KatanaParams, KatanaTool
from scanchat.plugins.subfinder import SubfinderParams, SubfinderTool
from scanchat.plugins.invoker import PluginInvoker, ToolInvocation

__all__ = [
    "CommandGrammar",
    "CommandParameters",
    "FlagSpec",
    "PluginKind",
    "PluginTool",
    "get_plugin",
    "list_plugins",
    "resolve_plugin",
    "tools_guide",
    "AlterxParams",
    "AlterxTool",
    "KatanaParams",
    "KatanaTool",
    "SubfinderParams",
    "SubfinderTool",
    "PluginInvoker",
    "ToolInvocation",
]
