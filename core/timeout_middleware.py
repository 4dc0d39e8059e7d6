import asyncio
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .error_handler import TimeoutError, create_error_response
from .logging_config import api_logger_instance, get_request_id

class TimeoutMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce a wall-clock limit on every endpoint."""

    def __init__(self, app: ASGIApp, timeout: float = 150.0):
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = getattr(request.state, 'request_id', None) or get_request_id()
        request.state.request_id = request_id

        start_time = time.time()
        task = asyncio.create_task(call_next(request))

        try:
            response = await asyncio.wait_for(task, timeout=self.timeout)
        except asyncio.TimeoutError:
            processing_time = time.time() - start_time

            # wait_for already cancelled the task; give it a moment to unwind
            if not task.done():
                try:
                    await asyncio.wait_for(task, timeout=1.0)
                except (asyncio.TimeoutError, asyncio.CancelledError):
                    pass

            timeout_error = TimeoutError(f"Request timed out after {self.timeout} seconds")
            api_logger_instance.log_error(
                request_id=request_id,
                error=timeout_error,
                status_code=408,
                processing_time=processing_time
            )
            return create_error_response(timeout_error, request_id)

        api_logger_instance.log_performance(
            request_id=request_id,
            operation="request_complete",
            duration=time.time() - start_time,
            status_code=response.status_code
        )
        return response
