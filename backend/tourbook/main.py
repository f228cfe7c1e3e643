"""
Tourbook API: FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       uvicorn serves the module-level `app` (uvicorn tourbook.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌────────────┐  │
    │  │ Rate Limit │→│ Req ID   │→│ Logging │→│ GZip/CORS  │  │
    │  └────────────┘ └──────────┘ └─────────┘ └────────────┘  │
    │                                                          │
    │  Routers (/api/v1):                                      │
    │  ┌────────┐ ┌────────┐ ┌──────────┐ ┌─────────────────┐  │
    │  │ tours  │ │ users  │ │ reviews  │ │ /health         │  │
    │  └────────┘ └────────┘ └──────────┘ └─────────────────┘  │
    │                                                          │
    │  Exception Handlers:                                     │
    │  ┌────────────────────────────────────────────────────┐  │
    │  │ TourbookError→own status │ body invalid→400 │ 404  │  │
    │  │ anything else→500                                  │  │
    │  └────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check → MongoDB indexes
    Shutdown: close the MongoDB client
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from tourbook import __version__
from tourbook.config import settings
from tourbook.database import close_client, ensure_indexes, get_database
from tourbook.exceptions import TourbookError
from tourbook.middleware.logging import RequestLoggingMiddleware
from tourbook.middleware.rate_limit import RateLimitMiddleware
from tourbook.middleware.request_id import RequestIDMiddleware, request_id_var
from tourbook.routes import health, reviews, tours, users

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configures the root logger once, at startup.

    Format: 2024-01-15T12:00:00 [INFO] tourbook.services.review_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # The driver and uvicorn are chatty at INFO
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Tourbook API %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving; the operator sees this at the top of the log
        logger.error("Configuration error: %s", e)

    try:
        await ensure_indexes(await get_database())
    except PyMongoError as e:
        # The store may come up after the API; writes fail until it does
        logger.error("Could not create MongoDB indexes: %s", e)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Tourbook API shutting down...")
    await close_client()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    # the catch-all handler runs outside the middleware context, so the
    # ContextVar is empty there while request.state still carries the id
    return getattr(request.state, "request_id", "") or request_id_var.get("")


def _envelope(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "fail" if 400 <= status_code < 500 else "error",
            "message": message,
            "request_id": _request_id(request),
        },
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        message = str(error.get("msg", "Invalid value"))
        # pydantic prefixes messages raised from validators
        message = message.removeprefix("Value error, ")
        location = [str(p) for p in error.get("loc", ()) if p != "body"]
        parts.append(f"{'.'.join(location)}: {message}" if location else message)
    return "Invalid input data. " + ". ".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps exceptions onto the response envelope.

        TourbookError           → its own status code and message
        RequestValidationError  → 400 fail with the joined field messages
        HTTP 404 (no route)     → 404 "Can't find <path> on this server!"
        other HTTPException     → its status code and detail
        Exception               → 500 error, stack trace logged only
    """

    @app.exception_handler(TourbookError)
    async def handle_tourbook_error(request: Request, exc: TourbookError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.info("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return _envelope(request, exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return _envelope(request, 400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _envelope(request, 404, f"Can't find {request.url.path} on this server!")
        return _envelope(request, exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), exc, exc_info=True)
        return _envelope(request, 500, "Something went very wrong!")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Tourbook API",
        description="Tours, users and reviews with JWT authentication on MongoDB.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(tours.router)
    app.include_router(users.router)
    app.include_router(reviews.router)
    app.include_router(health.router)

    return app


app = create_app()
