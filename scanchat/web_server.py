"""HTTP surface for scanchat."""

import asyncio
import json
import signal
import uuid

import pydantic
from aiohttp import web

from scanchat.chat_service import ChatRequest, ChatService, StreamReply, TextReply
from scanchat.config import Config, get_config
from scanchat.exceptions import ContextError, PluginNotFoundError, ProviderError, ValidationError
from scanchat.logging import bind_request_context, get_logger
from scanchat.streaming import EventStream

log = get_logger(__name__)


def _reason_phrase(message: str) -> str:
    """HTTP reason phrases must be a single short line."""
    return " ".join(str(message or "").split())[:200] or "Error"


class WebServer:
    """Chat API server."""

    def __init__(self, config: Config, service: ChatService | None = None):
        self.config = config
        self._service = service

    @property
    def service(self) -> ChatService:
        if self._service is None:
            self._service = ChatService(self.config)
        return self._service

    def cors_headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.config.web.cors_origin,
            "Access-Control-Allow-Methods": "POST",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
        }

    def _text(self, body: str, status: int = 200, reason: str | None = None) -> web.Response:
        return web.Response(
            text=body,
            status=status,
            reason=reason,
            headers=self.cors_headers(),
            content_type="text/plain",
        )

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/chat", self.chat_handler)
        app.router.add_route("OPTIONS", "/api/chat", self.preflight_handler)
        app.router.add_get("/health", self.health_handler)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def _on_startup(self, app: web.Application) -> None:
        await self.service.start()

    async def _on_cleanup(self, app: web.Application) -> None:
        if self._service is not None:
            await self._service.close()

    async def health_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True}, headers=self.cors_headers())

    async def preflight_handler(self, request: web.Request) -> web.Response:
        return web.Response(status=204, headers=self.cors_headers())

    async def chat_handler(self, request: web.Request) -> web.StreamResponse:
        """``POST /api/chat``: model completion or plugin run."""
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
        bind_request_context(request_id=request_id)

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._text("Invalid JSON in request body", status=400)

        try:
            chat_request = ChatRequest.model_validate(body)
        except pydantic.ValidationError as e:
            log.info("Rejected chat body", errors=e.error_count())
            return self._text("Invalid request body", status=400)

        bind_request_context(request_id=request_id, model=chat_request.model)
        authorization = request.headers.get("Authorization", "")

        try:
            reply = await self.service.handle(chat_request, authorization)
        except ContextError as e:
            return self._text(str(e), status=400)
        except (PluginNotFoundError, ValidationError) as e:
            return self._text(str(e), status=400)
        except ProviderError as e:
            log.error("Provider error", error=e.message, code=e.code, status=e.status_code)
            return self._text("OpenAI Error", status=500, reason=_reason_phrase(e.message))
        except Exception:
            log.exception("Chat request failed")
            return self._text("Internal Server Error", status=500)

        if isinstance(reply, TextReply):
            return self._text(reply.body, status=reply.status)
        return await self._stream(request, reply)

    async def _stream(self, request: web.Request, reply: StreamReply) -> web.StreamResponse:
        framing = self.config.streaming.progress_framing
        content_type = "text/event-stream" if framing == "sse" else "text/plain"
        resp = web.StreamResponse(
            status=200,
            reason="OK",
            headers={
                **self.cors_headers(),
                "Content-Type": f"{content_type}; charset=utf-8",
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )
        await resp.prepare(request)
        stream = EventStream(resp.write, resp.write_eof, framing=framing)
        await stream.pump(reply.events, reply.failure_text)
        return resp


async def _run_server(config: Config) -> None:
    """Start the web server and block until SIGINT/SIGTERM."""
    server = WebServer(config)
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        if not stop_event.is_set():
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except (NotImplementedError, OSError):
            # Windows doesn't support add_signal_handler for SIGTERM.
            pass

    app = server.create_app()
    runner = web.AppRunner(app)
    await runner.setup()

    host = config.web.host
    port = config.web.port
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("Server started", host=host, port=port)

    try:
        await stop_event.wait()
    finally:
        log.info("Server stopping")
        await runner.cleanup()


def run_web_server(config: Config | None = None) -> None:
    """Entry point for running the web server."""
    try:
        asyncio.run(_run_server(config or get_config()))
    except KeyboardInterrupt:
        pass  # Signal handler handles graceful shutdown.
