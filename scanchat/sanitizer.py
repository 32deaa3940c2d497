"""Conversation cleanup before a history is replayed to the model."""

from __future__ import annotations

from collections.abc import Sequence

from scanchat.llm import Message

USAGE_CAP_WARNING = "Hold On! You've Hit Your Usage Cap."


def _is_cap_warning(message: Message, warning: str) -> bool:
    return bool(warning) and warning in (message.content or "")


def _drop_cap_turns(messages: Sequence[Message], warning: str) -> list[Message]:
    """Remove user turns answered by a usage-cap warning, and stray warnings."""
    kept: list[Message] = []
    index = 0
    while index < len(messages):
        message = messages[index]
        following = messages[index + 1] if index + 1 < len(messages) else None
        if (
            message.role == "user"
            and following is not None
            and following.role == "assistant"
            and _is_cap_warning(following, warning)
        ):
            index += 2
            continue
        if not _is_cap_warning(message, warning):
            kept.append(message)
        index += 1
    return kept


def _collapse_repeats(messages: Sequence[Message]) -> list[Message]:
    """Keep only the later of two consecutive turns with the same role."""
    kept: list[Message] = []
    for message in messages:
        if kept and kept[-1].role == message.role and message.role != "system":
            kept[-1] = message
        else:
            kept.append(message)
    return kept


def sanitize(
    messages: Sequence[Message],
    system_prompt: str,
    *,
    usage_cap_warning: str = USAGE_CAP_WARNING,
) -> list[Message]:
    """Return a replayable conversation.

    The result starts with one system message and then alternates
    user/assistant turns. Applying it to its own output is a no-op.
    """
    leading_system = messages[0] if messages and messages[0].role == "system" else None
    body = [m for m in messages if m.role in ("user", "assistant")]

    body = _drop_cap_turns(body, usage_cap_warning)
    body = _collapse_repeats(body)

    if leading_system is None and len(body) % 2 == 0 and body and body[0].role == "assistant":
        body = body[1:]

    system = leading_system or Message(role="system", content=system_prompt)
    return [system, *body]
