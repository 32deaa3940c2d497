"""Retrieval augmentation of the system prompt from a vector index."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from scanchat.config import RetrievalConfig, get_config
from scanchat.llm import LLMProvider, Message, create_provider
from scanchat.logging import get_logger

log = get_logger(__name__)

_PUNCTUATION = ".,;:!?\"'()[]{}<>`*_~"

ENGLISH_VOCABULARY = frozenset(
    word.lower()
    for word in (
        "the be to of and a in that have i it for not on with he as you do at this "
        "but his by from they we say her she or an will my one all would there their "
        "what so up out if about who get which go me "
        "hack security vulnerability exploit code system network attack password "
        "access breach firewall malware phishing encryption sql injection xss script "
        "website server protocol port scanner tool pentest payload defense patch "
        "update compliance audit brute force ddos botnet ransomware trojan spyware "
        "keylogger rootkit vpn proxy ssl https session cookie authentication "
        "authorization certificate domain dns ip address log monitor traffic data "
        "leak sensitive user admin credential privilege escalation reverse shell "
        "command control"
    ).split()
)

TRANSLATION_SYSTEM_PROMPT = (
    "You are a translation AI. "
    "Your task is to translate user input text into English accurately. "
    "Focus on providing a clear and direct translation. "
    "Do not add any additional comments or information."
)

TRANSLATION_USER_PROMPT = (
    "Translate the provided text into English. "
    "Focus on accuracy and clarity. "
    "Ensure the translation is direct and concise. "
    "Add no comments, opinions, or extraneous information. "
    "Accurately convey the original meaning and context in English. "
    "Avoid engaging in discussions or providing interpretations beyond the translation. "
    "Translate: "
)


def is_english(text: str, threshold: float = 20) -> bool:
    """Share of common English/security words is at least ``threshold`` percent."""
    words = [w.strip(_PUNCTUATION) for w in str(text or "").lower().split()]
    if not words:
        return False
    hits = sum(1 for word in words if word in ENGLISH_VOCABULARY)
    return hits / len(words) >= threshold / 100


def format_context(matches: Sequence[dict[str, Any]], max_chars: int = 7500) -> str:
    """Render matches as numbered context blocks, dropping the tail past ``max_chars``."""
    blocks = []
    for index, match in enumerate(matches):
        metadata = match.get("metadata") or {}
        text = str(metadata.get("text") or "")
        blocks.append(f"[CONTEXT {index}]:\n{text}\n[END CONTEXT {index}]\n\n")
    while blocks and len("".join(blocks)) > max_chars:
        blocks.pop()
    return "".join(blocks).strip()


class ContextAugmenter:
    """Add vector-store context for the newest user turn to the system prompt."""

    def __init__(
        self,
        embedder: LLMProvider,
        config: RetrievalConfig | None = None,
        translator: LLMProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or get_config().retrieval
        self.embedder = embedder
        self._owns_translator = translator is None and bool(self.config.translation_model)
        if translator is None and self.config.translation_model:
            translator = create_provider(
                provider="openrouter",
                model=self.config.translation_model,
                api_key=self.config.translation_api_key or None,
                base_url=self.config.translation_base_url,
                temperature=0.1,
                timeout=float(self.config.timeout),
                extra_headers={"X-Title": "ScanChat"},
            )
        self.translator = translator
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.config.timeout)

    def should_augment(self, messages: Sequence[Message]) -> bool:
        if not self.config.enabled or not messages:
            return False
        last = messages[-1]
        if last.role != "user":
            return False
        length = len(last.content or "")
        return self.config.min_message_chars < length < self.config.max_message_chars

    async def translate_to_english(self, text: str) -> str:
        """Translate ``text``; returns "" when no translation is available."""
        if self.translator is None:
            log.warning("No translation model configured")
            return ""
        messages = [
            Message(role="system", content=TRANSLATION_SYSTEM_PROMPT),
            Message(role="user", content=TRANSLATION_USER_PROMPT + text),
        ]
        try:
            response = await self.translator.complete(
                messages,
                model=self.config.translation_model or None,
                temperature=0.1,
            )
        except Exception as e:
            log.warning("Translation failed", error=str(e))
            return ""
        return response.content.strip()

    async def query(self, question: str) -> list[dict[str, Any]]:
        """Embed ``question`` and return the raw vector-store matches."""
        vector = await self.embedder.embed(question, self.config.embedding_model)
        body: dict[str, Any] = {
            "topK": self.config.top_k,
            "vector": vector,
            "includeMetadata": True,
        }
        if self.config.namespace:
            body["namespace"] = self.config.namespace
        response = await self.client.post(
            self.config.index_url,
            json=body,
            headers={"Api-Key": self.config.api_key, "Content-Type": "application/json"},
        )
        response.raise_for_status()
        matches = response.json().get("matches") or []
        return [m for m in matches if isinstance(m, dict)]

    async def retrieve(self, question: str) -> str | None:
        """Formatted context for ``question``, or None when nothing relevant."""
        try:
            matches = await self.query(question)
        except Exception as e:
            log.warning("Vector query failed", error=str(e))
            return None
        if len(matches) < self.config.min_matches:
            log.debug("Too few matches", count=len(matches))
            return None
        relevant = [
            m for m in matches
            if float(m.get("score") or 0.0) > self.config.score_threshold
        ]
        context = format_context(relevant, self.config.max_context_chars)
        return context or None

    async def augment(self, messages: Sequence[Message], base_prompt: str) -> str | None:
        """Return the augmented system prompt, or None to keep ``base_prompt``."""
        if not self.should_augment(messages):
            return None
        question = messages[-1].content
        if not is_english(question, self.config.english_threshold):
            question = await self.translate_to_english(question)
            if not question:
                return None
        context = await self.retrieve(question)
        if context is None:
            return None
        log.info("System prompt augmented", context_chars=len(context))
        return f"{base_prompt} {self.config.system_prompt}Context:\n {context}"

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
        if self._owns_translator and self.translator is not None:
            await self.translator.close()
