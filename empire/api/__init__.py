"""
REST API Layer for Empire.

Provides:
- FastAPI application factory with CORS and security headers
- Catch-all auth gate (deny requests without a bearer token by default)
- Exception handlers mapping the Empire exception hierarchy to HTTP
  statuses and the response envelope
- API v1 router with all endpoints
- Root-level health check for container probes

Usage:
    from empire.api import create_app

    app = create_app()                          # settings from the environment
    app = create_app(settings, store=store)     # tests: explicit store
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from empire import __version__
from empire.api.auth import BEARER_PREFIX, TokenVerifier
from empire.api.routes import router
from empire.api.schemas import error_response
from empire.config import Settings, load_settings, validate_settings
from empire.lib import errors
from empire.lib.exceptions import (
    AuthenticationError,
    ConflictError,
    ConstraintViolation,
    EmpireException,
    MissionLockedError,
    NotFoundError,
    PartialWriteError,
    StoreUnavailableError,
    ValidationError,
)
from empire.lib.security import create_security_middleware
from empire.services.query_cache import QueryCache
from empire.store.client import StoreClient

logger = logging.getLogger(__name__)

# Allowed CORS headers (restricted from ["*"])
_ALLOWED_HEADERS: list[str] = [
    "Authorization",
    "Content-Type",
    "Accept",
    "X-Request-ID",
]

# Paths that do NOT require authentication
_PUBLIC_PATHS: frozenset[str] = frozenset({
    "/health",
    "/api/v1/health",
    "/docs",
    "/redoc",
    "/openapi.json",
})

# Most specific first
_STATUS_BY_EXCEPTION: tuple[tuple[type[EmpireException], int], ...] = (
    (AuthenticationError, 401),
    (ValidationError, 422),
    (NotFoundError, 404),
    (MissionLockedError, 423),
    (ConflictError, 409),
    (PartialWriteError, 500),
    (StoreUnavailableError, 503),
)


def _status_for(exc: EmpireException) -> int:
    if isinstance(exc, ConstraintViolation):
        return 409 if exc.is_unique_violation or exc.is_foreign_key_violation else 422
    for exc_type, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def _auth_gate_dispatch(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Catch-all auth middleware: deny requests without a bearer token by default."""
    # CORS preflight (OPTIONS) must pass through
    if request.method == "OPTIONS":
        return await call_next(request)
    path = request.url.path.rstrip("/") or "/"
    if path not in _PUBLIC_PATHS:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith(BEARER_PREFIX):
            return JSONResponse(
                status_code=401,
                content=error_response(errors.AUTH_REQUIRED),
                headers={"WWW-Authenticate": "Bearer"},
            )
    return await call_next(request)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(EmpireException)
    async def empire_exception_handler(request: Request, exc: EmpireException) -> JSONResponse:
        status_code = _status_for(exc)
        if isinstance(exc, ConstraintViolation):
            code = errors.code_for_constraint(exc)
            message = None
        elif status_code >= 500:
            code = exc.code
            message = None
        else:
            code = exc.code
            message = exc.message or None

        if status_code >= 500:
            logger.error(
                "%s on %s %s", type(exc).__name__, request.method, request.url.path,
            )
        else:
            logger.info(
                "%s (%s) on %s %s", type(exc).__name__, code, request.method, request.url.path,
            )

        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, message),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError,
    ) -> JSONResponse:
        # Field locations and messages only, never the submitted values
        fields = [
            {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=error_response(errors.VALIDATION_ERROR, details={"fields": fields}),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException,
    ) -> JSONResponse:
        code = errors.NOT_FOUND if exc.status_code == 404 else errors.INTERNAL_ERROR
        message = None if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "Unhandled exception on %s %s", request.method, request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=error_response(errors.INTERNAL_ERROR),
        )


def _default_clock() -> datetime:
    return datetime.now(UTC)


def create_app(
    settings: Settings | None = None,
    store: StoreClient | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Includes:
    - CORS middleware with origins from EMPIRE_CORS_ORIGINS
    - Catch-all auth middleware
    - Exception handlers for the Empire exception hierarchy
    - API v1 router with all endpoints
    - Root-level health check for container probes
    - Production: /docs and /redoc disabled

    Args:
        settings: Settings (loaded from the environment when omitted)
        store: Store client (built from the anon store config when omitted)
        clock: Current-time source for date-dependent services

    Returns:
        Configured FastAPI application instance.

    Raises:
        ConfigurationError: If the settings are unsafe to run with
    """
    settings = settings or load_settings()
    validate_settings(settings)

    store = store or StoreClient(settings.anon_store_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if store.is_privileged:
            store.create_schema()
        elif settings.SERVICE_ROLE_KEY:
            privileged = StoreClient(settings.service_store_config())
            try:
                privileged.create_schema()
            finally:
                privileged.dispose()
        else:
            logger.warning(
                "No service-role key configured; the store schema is not created at startup"
            )
        yield
        store.dispose()

    app = FastAPI(
        title="Empire",
        description="Goal, habit and mission tracking",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.cache = QueryCache(default_ttl=settings.QUERY_CACHE_TTL)
    app.state.clock = clock or _default_clock
    app.state.token_verifier = TokenVerifier(
        settings.JWT_SECRET,
        audience=settings.JWT_AUDIENCE,
    )

    _register_exception_handlers(app)

    # -------------------------------------------------------------------------
    # CORS Middleware
    # -------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=_ALLOWED_HEADERS,
    )

    if settings.CORS_ORIGINS:
        logger.info("CORS enabled for origins: %s", settings.CORS_ORIGINS)
    else:
        logger.info("CORS: no origins configured (restrictive default)")

    # -------------------------------------------------------------------------
    # Catch-all auth middleware (deny unauthenticated by default)
    # -------------------------------------------------------------------------
    app.add_middleware(BaseHTTPMiddleware, dispatch=_auth_gate_dispatch)

    # -------------------------------------------------------------------------
    # Security headers on every response
    # -------------------------------------------------------------------------
    create_security_middleware(app)

    app.include_router(router)

    # Root-level health check, separate from the versioned /api/v1/health
    @app.get("/health")
    async def root_health_check() -> dict[str, str]:
        """Root health check for infrastructure probes."""
        return {"status": "ok"}

    return app


__all__ = ["create_app", "router"]
