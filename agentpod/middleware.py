"""Middleware for CORS, logging, and error handling.

Both LoggingMiddleware and ErrorHandlingMiddleware are implemented as pure ASGI
middleware (not BaseHTTPMiddleware) so that streamed log responses are never
buffered.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from agentpod.engine.errors import (
    ConflictError,
    ContainerRuntimeError,
    GitBackendError,
    NotFoundError,
    PreconditionError,
    SandboxError,
    ValidationError,
)

logger = logging.getLogger("agentpod.middleware")

# Checked in order; CatalogReferenceError is both a validation and a
# not-found error and must map to 422.
_ERROR_STATUS: list[tuple[type[SandboxError], int, str]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation Error"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (ConflictError, status.HTTP_409_CONFLICT, "Conflict"),
    (PreconditionError, status.HTTP_409_CONFLICT, "Precondition Failed"),
    (ContainerRuntimeError, status.HTTP_502_BAD_GATEWAY, "Container Runtime Error"),
    (GitBackendError, status.HTTP_502_BAD_GATEWAY, "Git Backend Error"),
]


def error_response(exc: SandboxError) -> JSONResponse:
    """Translate an orchestrator error into a JSON response."""
    for error_class, status_code, title in _ERROR_STATUS:
        if isinstance(exc, error_class):
            break
    else:
        status_code, title = status.HTTP_500_INTERNAL_SERVER_ERROR, "Sandbox Error"
    content = {"error": title, "detail": exc.message}
    if exc.sandbox_id:
        content["sandbox_id"] = exc.sandbox_id
    if exc.operation:
        content["operation"] = exc.operation
    return JSONResponse(status_code=status_code, content=content)


def setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class LoggingMiddleware:
    """Pure ASGI request logging; responses are never buffered."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        method = scope.get("method", "")
        start_time = time.time()
        status_code = 0

        async def send_wrapper(message: dict) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        await self.app(scope, receive, send_wrapper)

        duration = time.time() - start_time
        logger.info(
            "%s %s - Status: %d - Duration: %.3fs",
            method, path, status_code, duration,
        )


class ErrorHandlingMiddleware:
    """Pure ASGI error handling; responses are never buffered."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: dict) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except SandboxError as exc:
            if response_started:
                raise
            logger.warning("%s: %s", type(exc).__name__, exc.message)
            await error_response(exc)(scope, receive, send)
        except Exception as exc:
            if response_started:
                raise
            logger.exception("Unhandled exception: %s", str(exc))
            resp = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal Server Error",
                    "detail": "An unexpected error occurred",
                },
            )
            await resp(scope, receive, send)


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application."""
    setup_cors(app)
    # Added last = runs first
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
