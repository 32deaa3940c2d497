"""Web browsing model: Brave search results folded into an answer prompt."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from scanchat.config import BrowsingConfig, get_config
from scanchat.logging import get_logger
from scanchat.token_budget import TokenCounter

log = get_logger(__name__)

BROWSING_DISABLED_MESSAGE = (
    "The Web Browsing Plugin is disabled. "
    "To enable it, please configure the necessary environment variables."
)


@dataclass
class SearchSource:
    """One web search hit."""

    title: str
    url: str
    snippet: str

    def render(self, index: int) -> str:
        return f"[{index}] {self.title}\nURL: {self.url}\n{self.snippet}"


def _clean_text(value: str, max_chars: int = 500) -> str:
    """Normalize whitespace and bound output size."""
    cleaned = re.sub(r"\s+", " ", (value or "")).strip()
    cleaned = re.sub(r"</?strong>", "", cleaned)
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[:max_chars].rstrip() + "..."


class WebSearcher:
    """Search the web using the Brave Search API."""

    def __init__(
        self,
        config: BrowsingConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or get_config().browsing
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": "ScanChat/0.1.0 (Web Browsing)"},
        )

    async def search(self, query: str) -> list[SearchSource]:
        """Return ranked results; failures are logged and yield no results."""
        q = (query or "").strip()
        if not q or not self.config.api_key:
            return []

        params: dict[str, Any] = {
            "q": q,
            "count": min(max(int(self.config.max_results), 1), 20),
            "safesearch": "moderate",
        }
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.config.api_key,
        }
        try:
            response = await self.client.get(
                self.config.base_url,
                params=params,
                headers=headers,
                timeout=float(self.config.timeout),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            log.error("Brave web search failed", query=q, status=e.response.status_code)
            return []
        except (httpx.HTTPError, ValueError) as e:
            log.error("Web search failed", query=q, error=str(e))
            return []

        web_block = payload.get("web", {}) if isinstance(payload, dict) else {}
        results = web_block.get("results", []) if isinstance(web_block, dict) else []
        sources: list[SearchSource] = []
        for item in results if isinstance(results, list) else []:
            if not isinstance(item, dict):
                continue
            sources.append(
                SearchSource(
                    title=_clean_text(str(item.get("title", "") or "Untitled"), max_chars=180),
                    url=str(item.get("url", "") or "").strip(),
                    snippet=_clean_text(str(item.get("description", "") or "")),
                )
            )
        log.info("Web search done", query=q, results=len(sources))
        return sources

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def gather_sources(
    sources: Sequence[SearchSource],
    counter: TokenCounter,
    remaining_tokens: int,
) -> list[SearchSource]:
    """Keep sources in rank order while they fit ``remaining_tokens``."""
    kept: list[SearchSource] = []
    used = 0
    for index, source in enumerate(sources, start=1):
        cost = counter.count(source.render(index))
        if used + cost > remaining_tokens:
            break
        used += cost
        kept.append(source)
    return kept


def create_answer_prompt(query: str, sources: Sequence[SearchSource]) -> str:
    """Prompt asking the model to answer ``query`` from numbered sources."""
    rendered = "\n\n".join(source.render(i) for i, source in enumerate(sources, start=1))
    if not rendered:
        rendered = "No search results were found."
    return (
        "Provide a helpful answer to the query using only the sources below. "
        "Cite the sources you use inline as [1], [2] and so on, and finish with "
        "a short list of the cited URLs. If the sources do not contain the "
        "answer, say so plainly.\n\n"
        f"Query: {query}\n\n"
        f"Sources:\n{rendered}\n\n"
        "Answer:"
    )
