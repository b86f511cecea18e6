"""
FastAPI application — the request boundary.

create_app() takes the already-wired services and returns the ASGI app that
main.py serves with uvicorn. Authentication happens in front of this app:
the caller's verified user id arrives in the X-User-Id header.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskpulse.errors import StoreFailure, TaskPulseError

from .deps import Services, error_list
from .routes import realtime_router, statistics_router, tasks_router, time_router

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"


def _error_body(message: str, details: Optional[dict] = None) -> dict:
    body = {"status": "error", "message": message}
    if details is not None:
        body["details"] = details
    return body


# ── Exception handlers ──────────────────────────────────────────────────────


async def _taskpulse_error(request: Request, exc: TaskPulseError) -> JSONResponse:
    if isinstance(exc, StoreFailure):
        # Already logged with context by the repository
        return JSONResponse(status_code=500, content=_error_body(GENERIC_ERROR))
    logger.warning("%s %s -> %d: %s", request.method, request.url.path,
                   exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.details))


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = error_list(exc.errors())
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=400, content=_error_body("Invalid request", {"errors": errors}))


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown routes and wrong methods
    return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc.detail)))


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body(GENERIC_ERROR))


# ── App factory ─────────────────────────────────────────────────────────────


def create_app(services: Services) -> FastAPI:
    app = FastAPI(title="TaskPulse", version="1.0.0")
    app.state.services = services

    app.add_exception_handler(TaskPulseError, _taskpulse_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(time_router)
    app.include_router(statistics_router)
    app.include_router(tasks_router)
    app.include_router(realtime_router)
    return app


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Builds the FastAPI app around the services and maps every error type to
#   one JSON shape: {"status": "error", "message": ..., "details": ...}.
#
# Key points:
#   - TaskPulseError subclasses carry their own status code (404, 400, 401).
#   - StoreFailure and anything unexpected become a bare 500 with the
#     generic message; the cause is only in the log.
#   - Malformed path ids, bodies and dates (RequestValidationError) are 400,
#     not FastAPI's default 422.
#
# Data flow:
#   uvicorn -> FastAPI router (api/routes.py) -> Services -> Repository
