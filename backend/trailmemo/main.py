"""
TrailMemo Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
Who:   uvicorn (`uvicorn trailmemo.main:app`) and the test suite
       (`create_app(settings, context=...)`).

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware: RequestID → AccessLog → RateLimit → GZip → CORS │
    │                                                              │
    │  Routes:  /health                                            │
    │           {prefix}/auth/*   {prefix}/memos/*                 │
    │           {prefix}/files/*  (local storage only)             │
    │                                                              │
    │  Exception handlers: TrailMemoError family → error envelope  │
    │                      RequestValidationError → 400            │
    │                      Exception → 500                         │
    │                                                              │
    │  app.state.context: AppContext (engine, Firebase, services)  │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → configuration report → AppContext (unless injected)
    Shutdown: AppContext.aclose() (Firebase app, pooled connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from trailmemo import __version__
from trailmemo.config import Settings, settings as default_settings
from trailmemo.context import AppContext, build_context
from trailmemo.exceptions import (
    CircuitBreakerOpenError,
    DatabaseError,
    TrailMemoError,
)
from trailmemo.middleware.logging import RequestLoggingMiddleware
from trailmemo.middleware.rate_limit import RateLimitMiddleware
from trailmemo.middleware.request_id import RequestIDMiddleware, request_id_var
from trailmemo.routes import auth, files, health, memos

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Root logger to stdout, one line per record:

        2024-06-01T12:00:00 [INFO] trailmemo.access: GET /api/v1/memos 200 ...

    Called once from the lifespan, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Our access log replaces uvicorn's; SQL echo only via LOG_LEVEL=DEBUG.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("TrailMemo API %s starting (%s)", __version__, config.environment)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # Startup continues; /health reports the broken dependency.
        log = logger.error if config.is_production else logger.warning
        log("Configuration problems: %s", str(e))

    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = build_context(config)

    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("TrailMemo API shutting down...")
    if owns_context:
        await app.state.context.aclose()
        app.state.context = None
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(code: str, message: str, details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error, "request_id": request_id_var.get("")}


def _render(exc: TrailMemoError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    # Context is returned to the client for 4xx only; 5xx context stays in the log.
    details = exc.context if exc.status_code < 500 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, details),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy (Starlette picks the most specific class):
        CircuitBreakerOpenError  → 503 + Retry-After
        DatabaseError            → 500, generic message, context logged
        TrailMemoError           → exc.status_code / exc.code
        RequestValidationError   → 400 VALIDATION_ERROR
        Exception                → 500 INTERNAL_ERROR, traceback logged
    """

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_open(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Storage circuit open: %s", request_id_var.get(""), exc.message)
        return _render(exc, headers={"Retry-After": str(exc.recovery_time)})

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _render(exc)

    @app.exception_handler(TrailMemoError)
    async def handle_app_error(request: Request, exc: TrailMemoError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, exc.code, exc.message)
        return _render(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=_error_body(
                "VALIDATION_ERROR",
                "Request validation failed",
                {"errors": errors},
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred", None),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    context: Optional[AppContext] = None,
) -> FastAPI:
    """
    Args:
        settings: defaults to the environment-loaded module settings
        context:  a pre-built AppContext. When given, the lifespan neither
                  builds nor closes one; the caller owns it.
    """
    config = settings or (context.settings if context else default_settings)

    app = FastAPI(
        title="TrailMemo API",
        description="Voice memos with GPS positions for field teams.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.context = context

    # Execution order is the reverse of registration.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.rate_limit_requests,
        window_seconds=config.rate_limit_window,
        enabled=config.rate_limit_enabled,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router, prefix=config.api_prefix)
    app.include_router(memos.router, prefix=config.api_prefix)
    if config.storage_backend == "local":
        app.include_router(files.router, prefix=config.api_prefix)

    return app


app = create_app()
