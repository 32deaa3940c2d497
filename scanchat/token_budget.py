"""Token-budget-aware selection of conversation history."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import tiktoken

from scanchat.exceptions import MessageTooLongError, UnknownModelError
from scanchat.llm import Message
from scanchat.logging import get_logger

log = get_logger(__name__)

DEFAULT_ENCODING = "cl100k_base"


class TokenCounter(Protocol):
    def count(self, text: str) -> int: ...


class TiktokenCounter:
    """Token counter backed by tiktoken's BPE encodings."""

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self.encoding_name = encoding_name
        self._encoding: Any = None

    def warm(self) -> None:
        """Load the encoding; the first load may download the BPE file."""
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        self.warm()
        return len(self._encoding.encode(text, disallowed_special=()))


@dataclass
class TokenBudget:
    """Running token total against a model limit with a reserved margin."""

    limit: int
    reserved: int
    used: int = 0

    def fits(self, cost: int) -> bool:
        return self.used + cost + self.reserved <= self.limit

    def spend(self, cost: int) -> None:
        self.used += cost

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.reserved - self.used)


@dataclass
class BudgetSelection:
    """Messages admitted into the outgoing request."""

    messages: list[Message] = field(default_factory=list)
    token_count: int = 0
    token_limit: int = 0
    # False when the newest message was charged but left out (browsing model).
    includes_newest: bool = True


def resolve_token_limit(model: str, limits: Mapping[str, int]) -> int:
    limit = limits.get(str(model or "").strip())
    if not limit:
        raise UnknownModelError(model)
    return int(limit)


def select_messages(
    messages: Sequence[Message],
    model: str,
    *,
    counter: TokenCounter,
    system_prompt: str,
    limits: Mapping[str, int],
    reserved: int,
    browsing_model: str | None = None,
) -> BudgetSelection:
    """Pick the newest contiguous run of messages that fits the model window.

    The system prompt and the newest message are charged first. When the
    two together leave no room for the reserved margin,
    ``MessageTooLongError`` is raised instead of dropping the message.
    Older messages are then admitted newest first until one overflows.
    For the browsing model the newest message is charged but left out of
    the selection, since the search answer prompt takes its place.
    """
    limit = resolve_token_limit(model, limits)
    if not messages:
        return BudgetSelection(token_limit=limit)

    budget = TokenBudget(limit=limit, reserved=reserved)
    budget.spend(counter.count(system_prompt or ""))

    last_tokens = counter.count(messages[-1].content)
    if not budget.fits(last_tokens):
        raise MessageTooLongError(limit, last_tokens)
    budget.spend(last_tokens)

    browsing = bool(browsing_model) and model == browsing_model
    selected: list[Message] = [] if browsing else [messages[-1]]
    for index in range(len(messages) - 2, -1, -1):
        message = messages[index]
        cost = counter.count(message.content)
        if not budget.fits(cost):
            break
        budget.spend(cost)
        selected.append(message)
    selected.reverse()

    log.debug(
        "history selected",
        model=model,
        total=len(messages),
        kept=len(selected),
        tokens=budget.used,
        limit=limit,
    )
    return BudgetSelection(
        messages=selected,
        token_count=budget.used,
        token_limit=limit,
        includes_newest=not browsing,
    )
