"""FastAPI application for app mode.

Exposes one endpoint: ``POST`` a JSON body ``{"repo": ..., "task": ...}`` to
any path and receive the agent's live output followed by the resulting git
diff as a chunked ``text/plain`` stream.  Any other method answers
``200 not found``.

Run with ``uvicorn sandbox_hands.server.app:app`` or
``python -m sandbox_hands.server.app``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from sandbox_hands import __version__
from sandbox_hands.lib.config import Config
from sandbox_hands.lib.sandbox import SandboxNamespace, build_namespace
from sandbox_hands.lib.session import SessionController, TaskRequest

logger = logging.getLogger(__name__)

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
_STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"

# Created lazily so importing the app has no side effects.
_config: Config | None = None
_namespace: SandboxNamespace | None = None


async def close_namespace() -> None:
    """Close the process-wide sandbox namespace if one was created."""
    global _namespace
    namespace, _namespace = _namespace, None
    if namespace is not None:
        await namespace.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await close_namespace()


app = FastAPI(
    title="sandbox_hands",
    description="Run a coding agent in a sandbox and stream its diff back.",
    version=__version__,
    lifespan=lifespan,
)


def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def get_namespace() -> SandboxNamespace:
    """Return the process-wide sandbox namespace, creating it on first use."""
    global _namespace
    if _namespace is None:
        _namespace = build_namespace(get_config())
    return _namespace


def get_controller() -> SessionController:
    return SessionController(get_namespace(), config=get_config())


@app.api_route("/{path:path}", methods=_ALL_METHODS)
async def handle(request: Request) -> Response:
    if request.method != "POST":
        return PlainTextResponse("not found")

    try:
        task_request = TaskRequest.model_validate_json(await request.body())
        session = get_controller().open(task_request)
    except Exception as exc:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return PlainTextResponse("invalid body", status_code=400)

    # Releases the sandbox even if the body is never iterated.
    release = BackgroundTasks()
    release.add_task(session.aclose)
    return StreamingResponse(
        session.stream(), media_type=_STREAM_MEDIA_TYPE, background=release
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
