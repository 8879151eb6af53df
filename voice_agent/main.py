"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException

from .config.settings import Settings, settings as default_settings
from .controllers import auth, logs, sessions, voice
from .database import Database
from .errors import ErrorKind, PipelineError
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware
from .pipelines.voice import VoiceConversationPipeline

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

logger = logging.getLogger(__name__)


def _rotating_handler(path: str, max_bytes: int, fmt: str) -> RotatingFileHandler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _configure_logging(config: Settings) -> None:
    """Stream application logs to stdout and file; pipeline logs to their own file."""

    logging.getLogger().handlers.clear()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(_rotating_handler(config.log_file, 1_000_000, LOG_FORMAT))
    root_logger.setLevel(logging.DEBUG if config.debug else logging.INFO)

    middleware_logger = logging.getLogger("voice_agent.middleware.structured")
    middleware_logger.handlers.clear()
    middleware_stdout = logging.StreamHandler(sys.stdout)
    middleware_stdout.setFormatter(logging.Formatter("%(message)s"))
    middleware_logger.addHandler(middleware_stdout)
    middleware_logger.setLevel(logging.INFO)
    middleware_logger.propagate = False

    pipeline_logger = logging.getLogger("voice_agent.pipeline")
    pipeline_logger.handlers.clear()
    pipeline_logger.addHandler(
        _rotating_handler(
            config.pipeline_log_file,
            500_000,
            "%(asctime)s | %(levelname)s | %(message)s",
        )
    )
    pipeline_logger.setLevel(logging.DEBUG if config.debug else logging.INFO)

    noisy_loggers = [
        "botocore",
        "boto3",
        "urllib3",
        "sqlalchemy.engine",
    ]
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app(
    *,
    config: Settings = default_settings,
    database: Database | None = None,
    pipeline: VoiceConversationPipeline | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``database`` and ``pipeline`` default to production wiring built from
    ``config``; tests pass their own.
    """

    if configure_logging:
        _configure_logging(config)

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        debug=config.debug,
        description="Voice conversation backend: speech in, speech out.",
    )

    app.state.database = database or Database.from_config(config.database)
    app.state.pipeline = pipeline or VoiceConversationPipeline.from_settings(
        app.state.database, config
    )

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
        expose_headers=[
            "X-Session-Id",
            "X-Transcript",
            "X-Response-Text",
            "X-Turn-Persisted",
            "X-Turn-Error",
        ],
    )

    app.include_router(auth.router)
    app.include_router(sessions.router)
    app.include_router(voice.router)
    app.include_router(logs.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""

        return {
            "message": f"Welcome to {config.app_name}",
            "version": config.app_version,
            "status": "operational",
        }

    @app.get("/health", include_in_schema=False)
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""

        return {
            "status": "healthy",
            "service": config.app_name,
            "version": config.app_version,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(PipelineError)
    async def pipeline_exception_handler(request: Request, exc: PipelineError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %r detail=%s", request.method, request.url.path, exc, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_payload(expose_detail=config.pipeline.expose_error_details),
            headers=exc.headers(),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"error": ErrorKind.VALIDATION.value, "message": message},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "HTTP_ERROR", "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": ErrorKind.INTERNAL.value,
                "message": "An internal server error occurred",
            },
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        await app.state.database.create_all()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await app.state.database.dispose()

    return app
