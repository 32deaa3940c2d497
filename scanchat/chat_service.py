"""Chat request orchestration: budget, gates, routing and model calls."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from scanchat.browsing import (
    BROWSING_DISABLED_MESSAGE,
    WebSearcher,
    create_answer_prompt,
    gather_sources,
)
from scanchat.command_router import NoCommand, PluginCommand, ToolsGuide, route
from scanchat.config import Config, get_config
from scanchat.exceptions import LLMError, ValidationError
from scanchat.llm import LLMProvider, Message, provider_from_config
from scanchat.logging import get_logger
from scanchat.plugins.invoker import PluginInvoker
from scanchat.plugins.registry import resolve_plugin, tools_guide
from scanchat.plugins.synthesis import synthesize_command
from scanchat.retrieval import ContextAugmenter
from scanchat.sanitizer import sanitize
from scanchat.status_check import StatusChecker
from scanchat.streaming import (
    GENERIC_SCAN_ERROR,
    GENERIC_STREAM_ERROR,
    Chunk,
    Done,
    Error,
    StreamEvent,
)
from scanchat.token_budget import BudgetSelection, TiktokenCounter, TokenCounter, select_messages

log = get_logger(__name__)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(min_length=1)
    model: str
    max_tokens: int | None = None
    temperature: float | None = None
    stream: bool | None = None
    tool_id: str | None = Field(default=None, alias="toolId")

    def to_messages(self) -> list[Message]:
        return [Message(role=m.role, content=m.content) for m in self.messages]


@dataclass
class TextReply:
    """A complete plain-text answer."""

    body: str
    status: int = 200


@dataclass
class StreamReply:
    """An incremental answer; ``events`` ends with ``Done`` or ``Error``."""

    events: AsyncIterator[StreamEvent]
    failure_text: str = GENERIC_STREAM_ERROR


ChatReply = TextReply | StreamReply


async def _model_events(first: str | None, chunks: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
    try:
        if first:
            yield Chunk(first.encode("utf-8"))
        async for text in chunks:
            if text:
                yield Chunk(text.encode("utf-8"))
    except LLMError as e:
        log.error("Model stream failed", error=str(e))
        yield Error(f"🚨 Error: {e}")
        return
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
    yield Done()


class ChatService:
    """Answer one chat request with a model completion or a tool run."""

    def __init__(
        self,
        config: Config | None = None,
        provider: LLMProvider | None = None,
        counter: TokenCounter | None = None,
        status_checker: StatusChecker | None = None,
        invoker: PluginInvoker | None = None,
        augmenter: ContextAugmenter | None = None,
        searcher: WebSearcher | None = None,
    ):
        self.config = config or get_config()
        self.provider = provider or provider_from_config(self.config)
        self.counter = counter or TiktokenCounter()
        self.status_checker = status_checker or StatusChecker(self.config.status)
        self.invoker = invoker or PluginInvoker(self.config.plugins)
        self.augmenter = augmenter or ContextAugmenter(self.provider, self.config.retrieval)
        self.searcher = searcher or WebSearcher(self.config.browsing)

    @property
    def system_prompt(self) -> str:
        return self.config.model.system_prompt

    def _temperature(self, request: ChatRequest) -> float:
        if request.temperature is None:
            return self.config.model.default_temperature
        return request.temperature

    def _max_tokens(self, request: ChatRequest) -> int:
        return request.max_tokens or self.config.model.default_max_tokens

    async def start(self) -> None:
        """Load the token encoding off the event loop before serving requests."""
        warm = getattr(self.counter, "warm", None)
        if warm is not None:
            await asyncio.to_thread(warm)

    async def handle(self, request: ChatRequest, authorization: str = "") -> ChatReply:
        """Run the full request flow.

        Raises:
            ContextError: Unknown model or an oversized newest message
            PluginNotFoundError: ``toolId`` names no tool
            LLMError: The provider failed before streaming began
        """
        messages = request.to_messages()
        if not messages:
            raise ValidationError("messages must not be empty")
        model = request.model

        selection = select_messages(
            messages,
            model,
            counter=self.counter,
            system_prompt=self.system_prompt,
            limits=self.config.model.token_limits,
            reserved=self.config.model.reserved_tokens,
            browsing_model=self.config.chat.browsing_model,
        )

        status = await self.status_checker.check_user(authorization, model)
        if not status.ok:
            return TextReply(status.body, status.status)

        last = messages[-1]
        answer_prompt: str | None = None
        if self.config.chat.browsing_model and model == self.config.chat.browsing_model:
            if not self.config.browsing.enabled:
                return TextReply(BROWSING_DISABLED_MESSAGE)
            answer_prompt = await self._browse(last.content.strip(), selection)

        decision = route(last.content, request.tool_id)
        match decision:
            case ToolsGuide():
                return TextReply(tools_guide())
            case PluginCommand():
                return await self._run_plugin(decision, request, selection, authorization)
            case NoCommand():
                return await self._complete(request, selection, answer_prompt)

    async def _browse(self, query: str, selection: BudgetSelection) -> str:
        remaining = (
            selection.token_limit - self.config.model.reserved_tokens - selection.token_count
        )
        sources = await self.searcher.search(query)
        kept = gather_sources(sources, self.counter, max(0, remaining))
        log.info("Browsing sources gathered", found=len(sources), kept=len(kept))
        return create_answer_prompt(query, kept)

    async def _run_plugin(
        self,
        decision: PluginCommand,
        request: ChatRequest,
        selection: BudgetSelection,
        authorization: str,
    ) -> ChatReply:
        tool = resolve_plugin(decision.kind)
        if not self.config.plugins.for_tool(tool.name).enabled:
            return TextReply(f"The {tool.title} feature is disabled.")

        limit = await self.status_checker.check_tool_rate_limit(authorization, tool.name)
        if not limit.ok:
            return TextReply(limit.body, limit.status)

        command = request.messages[-1].content
        preface: str | None = None
        if decision.invoked_by_tool_id:
            earlier = selection.messages[:-1] if selection.includes_newest else selection.messages
            history = sanitize(earlier, self.system_prompt)
            synthesis = await synthesize_command(
                self.provider,
                tool,
                command,
                history=history,
                model=self.config.upstream_model_for(request.model),
                temperature=self._temperature(request),
                max_tokens=self._max_tokens(request),
            )
            if not synthesis.ok:
                return TextReply(synthesis.failure or "")
            command = synthesis.command or ""
            preface = synthesis.raw

        params = tool.parse(command)
        if params.help:
            return TextReply(params.help)
        if params.error:
            log.info("Command rejected", tool=tool.name, error=params.error)
            return TextReply(params.error)

        log.info("Dispatching plugin", tool=tool.name, command=params.to_command())
        return StreamReply(
            self.invoker.run(tool, params, preface=preface), failure_text=GENERIC_SCAN_ERROR
        )

    async def _complete(
        self,
        request: ChatRequest,
        selection: BudgetSelection,
        answer_prompt: str | None,
    ) -> ChatReply:
        history = list(selection.messages)
        if answer_prompt:
            history.append(Message(role="user", content=answer_prompt))
        outgoing = sanitize(
            history,
            self.system_prompt,
            usage_cap_warning=self.config.chat.usage_cap_warning,
        )

        augmented = await self.augmenter.augment(outgoing, self.system_prompt)
        if augmented:
            outgoing[0] = Message(role="system", content=augmented)

        upstream = self.config.upstream_model_for(request.model)
        temperature = self._temperature(request)
        if request.stream is False:
            response = await self.provider.complete(
                outgoing,
                model=upstream,
                temperature=temperature,
                max_tokens=self._max_tokens(request),
            )
            return TextReply(response.content)

        chunks = self.provider.complete_streaming(
            outgoing,
            model=upstream,
            temperature=temperature,
            max_tokens=self._max_tokens(request),
        ).__aiter__()
        # Pull the first delta now so provider errors still map to a status code.
        try:
            first: str | None = await chunks.__anext__()
        except StopAsyncIteration:
            first = None
        return StreamReply(_model_events(first, chunks))

    async def close(self) -> None:
        await self.invoker.close()
        await self.augmenter.close()
        await self.searcher.close()
        await self.status_checker.close()
        await self.provider.close()
