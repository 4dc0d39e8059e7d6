import time
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging_config import api_logger_instance, get_request_id

class APILoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs every API request and its response."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = get_request_id()

        # Endpoints read the id back for their own performance logs
        request.state.request_id = request_id

        start_time = time.time()

        api_logger_instance.log_request(
            request=request,
            request_id=request_id,
            content_type=request.headers.get("content-type", "unknown"),
            content_length=request.headers.get("content-length", "unknown")
        )

        try:
            response = await call_next(request)

            processing_time = time.time() - start_time

            response_data = {
                "type": "json_response" if isinstance(response, JSONResponse) else "response",
                "status_code": response.status_code,
                "content_type": response.headers.get("content-type", "unknown"),
                "content_length": response.headers.get("content-length", "unknown")
            }
            if response.headers.get("content-type", "").startswith("image/"):
                response_data["type"] = "page_render"

            api_logger_instance.log_response(
                request_id=request_id,
                response_data=response_data,
                status_code=response.status_code,
                processing_time=processing_time
            )

            return response

        except Exception as e:
            processing_time = time.time() - start_time

            api_logger_instance.log_error(
                request_id=request_id,
                error=e,
                status_code=500,
                processing_time=processing_time
            )

            raise
