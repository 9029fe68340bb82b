"""Exception handlers rendering the JSON error envelope."""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import AppError

logger = logging.getLogger(__name__)


def _is_production(request: Request) -> bool:
    return request.app.state.config.is_production


def _with_stack(request: Request, body: dict, exc: Exception) -> dict:
    if not _is_production(request):
        body["stack"] = "".join(traceback.format_exception(exc)).strip()
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message
        )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(p) for p in err["loc"] if p not in ("body", "query", "path")),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    body = {
        "success": False,
        "error": "Validation failed",
        "code": "VALIDATION_ERROR",
        "details": details,
    }
    return JSONResponse(body, status_code=400)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        body = {
            "success": False,
            "error": f"Route not found: {request.method} {request.url.path}",
            "code": "NOT_FOUND",
        }
    else:
        body = {"success": False, "error": exc.detail, "code": f"HTTP_{exc.status_code}"}
    return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if _is_production(request) else str(exc)
    body = {"success": False, "error": message, "code": "INTERNAL_ERROR"}
    return JSONResponse(_with_stack(request, body, exc), status_code=500)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
