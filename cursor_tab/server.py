"""
Local HTTP server for the editor plugin.

Endpoints:
    POST /suggestion/new        - issue StreamCpp, return the first suggestion
    GET  /suggestion/{id}       - take a stored follow-up suggestion
    GET  /suggestions           - IDs currently stored (diagnostic)
    GET  /health

Every failure is reported inline as {"suggestion": "", "error": "..."} with
HTTP 200; a single bad request never takes the server down.
"""

import asyncio
import contextlib
import logging
import socket
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cursor_tab.adapters.base import CompletionBackend
from cursor_tab.config import (
    SERVER_HOST,
    NewSuggestionRequest,
    Settings,
    SuggestionResponse,
)
from cursor_tab.errors import CursorTabError
from cursor_tab.orchestrator import ChainRegistry, SuggestionOrchestrator
from cursor_tab.store import SuggestionStore

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.1


@dataclass
class ServerContext:
    """Process-wide state, built once at startup and shared by all handlers."""
    orchestrator: SuggestionOrchestrator
    settings: Settings = field(default_factory=Settings)

    @property
    def store(self) -> SuggestionStore:
        return self.orchestrator.store

    @property
    def chains(self) -> ChainRegistry:
        return self.orchestrator.chains

    @classmethod
    def create(
        cls,
        backend: Optional[CompletionBackend],
        settings: Optional[Settings] = None,
    ) -> "ServerContext":
        orchestrator = SuggestionOrchestrator(backend=backend, store=SuggestionStore())
        return cls(orchestrator=orchestrator, settings=settings or Settings())


class RequestAbandoned(Exception):
    """The synchronous request path was cut short by the caller."""
    pass


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def run_for_caller(request: Request, work: Awaitable, timeout: float):
    """
    Await work while the caller is still connected and within timeout.

    On disconnect or timeout the work is cancelled (which closes its
    upstream stream) and RequestAbandoned is raised.
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.create_task(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait(
            {task, watcher}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        watcher.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    if watcher in done:
        raise RequestAbandoned("client disconnected")
    raise RequestAbandoned(f"request timed out after {timeout:g}s")


def _reply(response: SuggestionResponse) -> JSONResponse:
    return JSONResponse(content=response.to_wire())


def create_app(context: ServerContext) -> FastAPI:
    """Build the FastAPI application around a server context."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info(f"Shutting down, cancelling {len(context.chains)} background chains")
        await context.chains.shutdown()

    app = FastAPI(title="cursor-tab", lifespan=lifespan)
    app.state.context = context

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        logger.error(f"Error decoding request: {exc.errors()}")
        return _reply(SuggestionResponse.failure(f"invalid request: {exc.errors()}"))

    @app.post("/suggestion/new")
    async def new_suggestion(body: NewSuggestionRequest, request: Request):
        logger.info(
            f"New suggestion request: file={body.file_path} line={body.line} "
            f"column={body.column} language={body.language_id} "
            f"workspace={body.workspace_path} content_length={len(body.file_contents)}"
        )
        try:
            response = await run_for_caller(
                request,
                context.orchestrator.request_new(body),
                timeout=context.settings.request_timeout,
            )
        except RequestAbandoned as e:
            logger.info(f"Request abandoned: {e}")
            response = SuggestionResponse.failure(str(e))
        except CursorTabError as e:
            logger.error(f"Suggestion request failed: {e}")
            response = SuggestionResponse.failure(str(e))
        except Exception as e:
            logger.exception("Unexpected error handling suggestion request")
            response = SuggestionResponse.failure(str(e))
        return _reply(response)

    @app.get("/suggestion/")
    async def missing_suggestion_id():
        return _reply(SuggestionResponse.failure("suggestion ID required"))

    @app.get("/suggestion/{suggestion_id}")
    async def get_suggestion(suggestion_id: str):
        logger.info(f"Get suggestion request: {suggestion_id}")
        return _reply(await context.orchestrator.fetch(suggestion_id))

    @app.get("/suggestions")
    async def list_suggestions():
        return {
            "ids": await context.store.list(),
            "active_chains": context.chains.active_ids(),
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


# ─────────────────────────────────────────────────────────────────────
# SERVING
# ─────────────────────────────────────────────────────────────────────

def bind_socket(port: int, host: str = SERVER_HOST) -> socket.socket:
    """
    Bind the listening socket up front so port 0 resolves to a real port
    before anything is printed.

    Raises:
        OSError if the address cannot be bound.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
    except OSError:
        sock.close()
        raise
    sock.setblocking(False)
    return sock


async def serve(app: FastAPI, sock: socket.socket) -> None:
    """Run uvicorn on an already-bound socket. Logging stays with the caller's config."""
    config = uvicorn.Config(app, log_config=None, access_log=False, lifespan="on")
    server = uvicorn.Server(config)
    await server.serve(sockets=[sock])
