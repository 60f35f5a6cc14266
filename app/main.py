from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import routes_assets
from app.api.v1 import get_api_router
from app.api.v1.schemas import ErrorResponse
from app.core.config import get_settings
from app.core.db import create_engine, create_schema, create_session_factory
from app.core.errors import PipelineError
from app.core.logging import configure_logging, get_logger
from app.core.storage import get_storage
from app.media.probe import FFprobeProber
from app.media.remux import FFmpegRemuxer
from app.media.urls import PublicURLBuilder

logger = get_logger(component="api")


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Render a pipeline failure; ``detail`` and the cause only go to the log."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        status=exc.status_code,
        error=exc.code,
        detail=exc.detail,
        cause=repr(exc.__cause__) if exc.__cause__ else None,
    )
    body = ErrorResponse(error=exc.code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def create_app() -> FastAPI:
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    configure_logging(level=log_level)
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    prober = FFprobeProber(settings.ffprobe_binary)
    remuxer = FFmpegRemuxer(settings.ffmpeg_binary)
    urls = PublicURLBuilder.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.prober = prober
        app.state.remuxer = remuxer
        app.state.urls = urls
        if settings.auto_create_schema:
            await create_schema(engine)
        logger.info(
            "app_started",
            environment=settings.environment,
            storage_backend=settings.storage_backend,
            public_url_strategy=settings.public_url_strategy,
        )
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.exception_handler(PipelineError)(pipeline_error_handler)
    app.include_router(get_api_router())
    app.include_router(routes_assets.router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
