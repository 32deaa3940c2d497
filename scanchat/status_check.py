"""User status and tool rate-limit checks against the account service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from scanchat.config import StatusCheckConfig, get_config
from scanchat.logging import get_logger

log = get_logger(__name__)


@dataclass
class StatusResult:
    """Outcome of one gate call. On refusal ``body``/``status`` are relayed."""

    ok: bool
    status: int = 200
    body: str = ""


ALLOWED = StatusResult(ok=True)


class StatusChecker:
    """POST the caller's credentials to the account service before work."""

    def __init__(
        self,
        config: StatusCheckConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or get_config().status
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=float(self.config.timeout))

    async def _post(
        self,
        url: str,
        authorization: str,
        payload: dict[str, Any],
        unreachable: StatusResult,
    ) -> StatusResult:
        if self.config.skip or not url:
            return ALLOWED
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers={
                    "Authorization": authorization or "",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            log.error("Status check unreachable", url=url, error=str(e))
            return unreachable
        if response.is_success:
            return ALLOWED
        log.info("Status check refused", url=url, status=response.status_code)
        return StatusResult(ok=False, status=response.status_code, body=response.text)

    async def check_user(self, authorization: str, model: str) -> StatusResult:
        return await self._post(
            self.config.url,
            authorization,
            {"model": model},
            StatusResult(ok=False, status=500, body="Internal Server Error"),
        )

    async def check_tool_rate_limit(self, authorization: str, tool_id: str) -> StatusResult:
        return await self._post(
            self.config.tool_rate_limit_url,
            authorization,
            {"toolId": tool_id},
            StatusResult(ok=False, status=500, body="Error checking rate limit"),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
