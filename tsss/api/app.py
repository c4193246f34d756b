"""FastAPI application factory for the tsss dev server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from tsss import __version__
from tsss.config import ServerConfig, get_config
from tsss.engine.artifact_store import ArtifactStore
from tsss.engine.build_loop import BuildLoop

logger = logging.getLogger("api")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS, PUT, PATCH, DELETE",
    "Access-Control-Allow-Headers": "X-Requested-With,content-type",
    "Access-Control-Allow-Credentials": "true",
}


def create_app(
    config: ServerConfig | None = None,
    store: ArtifactStore | None = None,
    build_loop: BuildLoop | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    All dependencies are injectable for testing. The build loop, when given,
    is started by the application lifespan and stopped on shutdown; request
    handlers only ever read ``store``.

    Args:
        config: Resolved server configuration (global config if None).
        store: Artifact Store shared with the build loop (fresh one if None).
        build_loop: Build loop writing to ``store`` (none if None).

    Returns:
        Configured FastAPI instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan -- start the watch session, stop it on exit."""
        logger.info("tsss v%s starting, serving %s", __version__, app.state.config.root_path)
        if app.state.build_loop is not None and not app.state.build_loop.started:
            app.state.build_loop.start()
        yield
        logger.info("Shutting down tsss")
        if app.state.build_loop is not None:
            await app.state.build_loop.stop()

    app = FastAPI(
        title="tsss",
        description="Serves a continuously rebuilt TypeScript bundle and static files.",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # ── Shared state ──────────────────────────────────────────────────
    app.state.config = config or get_config()
    app.state.store = store or (build_loop.store if build_loop else ArtifactStore())
    app.state.build_loop = build_loop

    # ── CORS ──────────────────────────────────────────────────────────
    @app.middleware("http")
    async def cors_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    # Unhandled errors are answered by the outermost error middleware,
    # which never passes through cors_headers
    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> PlainTextResponse:
        logger.error("Unhandled error on %s: %s", request.url.path, exc)
        return PlainTextResponse(
            f"Internal server error: {exc}", status_code=500, headers=CORS_HEADERS
        )

    # ── Routers ───────────────────────────────────────────────────────
    from tsss.api.routes.status import router as status_router
    from tsss.api.routes.entry import router as entry_router
    from tsss.api.routes.artifact import router as artifact_router
    from tsss.api.routes.static import router as static_router

    app.include_router(status_router)
    app.include_router(entry_router)
    app.include_router(artifact_router)
    app.include_router(static_router)  # catch-all, keep last

    return app
