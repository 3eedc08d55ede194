"""JSON error bodies for the HTTP surface.

Every error response has the shape {"error": CODE, "message": str, "details": ...}.
Failures inside the engine do not come through here; they end up in the
execution log as Failed or Skipped entries.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crmflow.core.config import get_settings
from crmflow.domain.exceptions import CrmflowException

logger = logging.getLogger(__name__)

STATUS_BY_ERROR_CODE: dict[str, int] = {
    "VALIDATION_ERROR": 422,
    "CONDITION_EVALUATION_ERROR": 422,
    "RESOURCE_NOT_FOUND": 404,
    "STATE_CHANGED": 409,
    "ACTION_EXECUTION_ERROR": 502,
    "SERVICE_UNAVAILABLE": 503,
}


def error_response(status: int, code: str, message: Any, details: Any = None) -> JSONResponse:
    body: dict[str, Any] = {"error": code, "message": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status, content=body)


async def _on_domain_error(request: Request, exc: CrmflowException) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_ERROR_CODE.get(exc.error_code, 400), content=exc.to_dict()
    )


async def _on_invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # ctx/input may hold non-serializable values
    problems = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return error_response(422, "VALIDATION_ERROR", "Request validation failed", problems)


async def _on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, "HTTP_ERROR", exc.detail)


async def _on_unexpected(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled error on %s %s (request_id=%s)", request.method, request.url.path, request_id)
    message = str(exc) if get_settings().debug else "Internal server error"
    return error_response(500, "INTERNAL_ERROR", message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CrmflowException, _on_domain_error)
    app.add_exception_handler(RequestValidationError, _on_invalid_request)
    app.add_exception_handler(StarletteHTTPException, _on_http_error)
    app.add_exception_handler(Exception, _on_unexpected)
