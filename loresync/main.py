"""FastAPI application entry point: control API around the watch scheduler."""

from __future__ import annotations

import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from loresync.api.documents import router as documents_router
from loresync.api.health import VERSION
from loresync.api.health import router as health_router
from loresync.api.sources import router as sources_router
from loresync.api.sync import router as sync_router
from loresync.config import Settings
from loresync.exceptions import DocumentNotFoundError, SourceConfigError, StorageError
from loresync.runtime import build_runtime
from loresync.services.status_service import mark_started

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("watchfiles").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: build the runtime, start and stop the scheduler."""
    settings: Settings = app.state.settings
    settings.validate_runtime()
    configure_logging(settings.debug)
    logger.info("Starting loresync (debug=%s)", settings.debug)

    try:
        runtime = await build_runtime(settings)
    except Exception as exc:
        logger.critical(
            "Failed to initialize sync runtime: %s. Check data and config directories.", exc
        )
        raise
    app.state.runtime = runtime

    scheduler = runtime.build_scheduler(watch=True)
    app.state.scheduler = scheduler
    mark_started(settings.status_file)
    await scheduler.start(initial_sync=True)

    yield

    try:
        await scheduler.stop()
    except Exception as exc:
        logger.error("Error during scheduler shutdown: %s", exc, exc_info=True)

    try:
        await runtime.close()
    except Exception as exc:
        logger.error("Error during runtime shutdown: %s", exc, exc_info=True)

    logger.info("loresync stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="loresync",
        description="Incremental sync engine for a personal knowledge repository",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(sync_router)
    app.include_router(sources_router)
    app.include_router(documents_router)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(SourceConfigError)
    async def source_config_error_handler(
        request: Request, exc: SourceConfigError
    ) -> JSONResponse:
        logger.warning("SourceConfigError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(DocumentNotFoundError)
    async def not_found_handler(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "StorageError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Index storage unavailable"},
        )

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Storage operation failed"},
        )

    @app.exception_handler(subprocess.CalledProcessError)
    async def subprocess_error_handler(
        request: Request, exc: subprocess.CalledProcessError
    ) -> JSONResponse:
        logger.error(
            "CalledProcessError in %s %s: cmd=%s exit=%d",
            request.method,
            request.url.path,
            exc.cmd,
            exc.returncode,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=502,
            content={"detail": "External process failed"},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()


def cli_entry(settings: Settings | None = None) -> None:
    """Entry point for running the server."""
    import uvicorn

    if settings is not None:
        uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
        return

    settings = app.state.settings
    uvicorn.run(
        "loresync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
