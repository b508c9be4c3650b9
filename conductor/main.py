"""
Conductor API

FastAPI application for the tool-calling creator assistant.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from conductor.api.dependencies import close_runtime
from conductor.api.routes import agent, assistant, health
from conductor.api.routes._shared import limiter
from conductor.config import settings
from conductor.core.tracing import current_trace_id, new_trace_id
from conductor.db import close_db, init_db


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class TraceIdMiddleware(BaseHTTPMiddleware):
    """Assign the request's trace id before routing.

    Stored on ``request.state`` as well as the context var: the outermost
    error handler runs outside the route's context.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request.state.trace_id = new_trace_id(request.headers.get("x-request-id"))
        return await call_next(request)


logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"LLM model: {settings.llm_model} via {settings.llm_provider}")
    logger.info(f"Round ceiling: {settings.max_tool_rounds}, grounding: {settings.grounding_enabled}")

    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    yield

    logger.info("Shutting down...")
    await close_runtime()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Tool-calling assistant for YouTube creators.",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(
    RateLimitExceeded,
    _rate_limit_exceeded_handler,  # type: ignore[arg-type]  # slowapi handler signature is (Request, RateLimitExceeded)
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request body or query: short sentence plus code, no echoed input."""
    fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
    trace_id = getattr(request.state, "trace_id", "") or current_trace_id()
    logger.info(f"[{trace_id[:8]}] Rejected {request.method} {request.url.path}: invalid {', '.join(fields)}")
    return JSONResponse(
        status_code=422,
        content={"detail": {
            "message": f"The request is invalid ({', '.join(fields)}).",
            "code": "VALIDATION_ERROR",
        }},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the stack, return a generic body."""
    trace_id = getattr(request.state, "trace_id", "") or current_trace_id()
    logger.exception(f"[{trace_id[:8]}] Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": {"message": "Something went wrong. Please try again.", "code": "INTERNAL_ERROR"}},
    )


app.add_middleware(TraceIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(agent.router, prefix="/api/v1", tags=["agent"])
app.include_router(assistant.router, prefix="/api/v1", tags=["assistant"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
    }
