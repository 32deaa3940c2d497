"""Turn a natural-language request into a tool command with the model."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass

from scanchat.llm import LLMProvider, Message
from scanchat.logging import get_logger
from scanchat.plugins.registry import PluginTool

log = get_logger(__name__)

_JSON_BLOCK_RE = re.compile(r"```json\n\{.*?\}\n```", re.DOTALL)
_FENCE_RE = re.compile(r"```json\n|\n```")

NO_COMMAND_SUFFIX = "No JSON command found in the AI response."
PARSE_ERROR_PREFIX = "Error extracting and parsing JSON from AI response"


class CommandExtractionError(ValueError):
    """Model output did not contain a usable ``{"command": ...}`` block."""


@dataclass
class SynthesisResult:
    raw: str
    command: str | None = None
    failure: str | None = None

    @property
    def ok(self) -> bool:
        return self.command is not None


def extract_command(raw: str) -> str | None:
    """Pull the command out of the first fenced ```json block.

    Returns None when there is no block; raises ``CommandExtractionError``
    when a block exists but does not hold a string ``command``.
    """
    match = _JSON_BLOCK_RE.search(raw or "")
    if match is None:
        return None
    body = _FENCE_RE.sub("", match.group(0))
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise CommandExtractionError(str(e)) from e
    command = payload.get("command") if isinstance(payload, dict) else None
    if not isinstance(command, str) or not command.strip():
        raise CommandExtractionError("missing 'command' field")
    return command.strip()


async def synthesize_command(
    provider: LLMProvider,
    tool: PluginTool,
    query: str,
    history: Sequence[Message] = (),
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> SynthesisResult:
    """Ask the model for a command and buffer its whole answer."""
    messages = [*history, Message(role="user", content=tool.synthesis_prompt(query))]
    parts: list[str] = []
    async for text in provider.complete_streaming(
        messages,
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
    ):
        parts.append(text)
    raw = "".join(parts)

    try:
        command = extract_command(raw)
    except CommandExtractionError as e:
        log.info("Command synthesis unparsable", tool=tool.name, error=str(e))
        return SynthesisResult(raw=raw, failure=f"{raw}\n\n{PARSE_ERROR_PREFIX}: {e}")
    if command is None:
        log.info("Command synthesis found no block", tool=tool.name)
        return SynthesisResult(raw=raw, failure=f"{raw}\n\n{NO_COMMAND_SUFFIX}")

    log.info("Command synthesized", tool=tool.name, command=command)
    return SynthesisResult(raw=raw, command=command)
