from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback
import time

from .error_handler import (
    TimeoutError, RateLimitError, NetworkError, LLMAPIError,
    ValidationError, ResourceNotFoundError, DocumentLoadError,
    create_error_response, get_http_status_code
)
from .logging_config import api_logger_instance, get_request_id

HANDLED_ERRORS = (
    TimeoutError, RateLimitError, NetworkError, LLMAPIError,
    ValidationError, ResourceNotFoundError, DocumentLoadError,
    ValueError, KeyError, FileNotFoundError, PermissionError,
)

async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler that turns exceptions into JSON error envelopes.
    """
    request_id = getattr(request.state, 'request_id', get_request_id())

    api_logger_instance.log_error(
        request_id=request_id,
        error=exc,
        status_code=get_http_status_code(exc),
        path=request.url.path
    )

    if isinstance(exc, HANDLED_ERRORS):
        return create_error_response(exc, request_id)

    if isinstance(exc, RequestValidationError):
        error_data = {
            "error": {
                "type": "ValidationError",
                "message": "Request validation failed",
                "status_code": 422,
                "timestamp": time.time(),
                "request_id": request_id,
                "details": "Invalid request data format",
                "validation_errors": exc.errors()
            }
        }
        return JSONResponse(status_code=422, content=error_data)

    if isinstance(exc, StarletteHTTPException):
        error_data = {
            "error": {
                "type": "HTTPException",
                "message": exc.detail,
                "status_code": exc.status_code,
                "timestamp": time.time(),
                "request_id": request_id,
                "details": "HTTP error occurred"
            }
        }
        return JSONResponse(status_code=exc.status_code, content=error_data)

    error_data = {
        "error": {
            "type": "InternalServerError",
            "message": "An unexpected error occurred",
            "status_code": 500,
            "timestamp": time.time(),
            "request_id": request_id,
            "details": "Please try again later or contact support if the problem persists"
        }
    }

    # Never expose internals unless the app runs in debug mode
    if getattr(request.app.state, 'debug', False):
        error_data["error"]["internal_error"] = str(exc)
        error_data["error"]["traceback"] = traceback.format_exc()

    return JSONResponse(status_code=500, content=error_data)

def setup_exception_handlers(app):
    """Setup global exception handlers for the FastAPI app."""
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)
    for error_class in HANDLED_ERRORS:
        app.add_exception_handler(error_class, global_exception_handler)
