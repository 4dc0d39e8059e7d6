import logging
import json
import uuid
from datetime import datetime
from typing import Dict, Any, Optional
from fastapi import Request
import traceback
import os
from pathlib import Path

# Create logs directory if it doesn't exist
LOGS_DIR = Path(os.getenv("TOC_LOGS_DIR", "logs"))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

SENSITIVE_KEYS = ('password', 'token', 'api_key', 'api-key', 'secret', 'authorization')

# Configure logging
def setup_logging():
    """Setup logging for the TOC service: file logs plus console in development."""

    detailed_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    # Importing twice (reloads, test collection) must not stack handlers
    if getattr(root_logger, "_toc_configured", False):
        return logging.getLogger("api")

    # File handler for all logs
    all_handler = logging.FileHandler(LOGS_DIR / "all.log")
    all_handler.setLevel(logging.DEBUG)
    all_handler.setFormatter(detailed_formatter)

    # API request/response records
    api_handler = logging.FileHandler(LOGS_DIR / "api.log")
    api_handler.setLevel(logging.INFO)
    api_handler.setFormatter(detailed_formatter)

    error_handler = logging.FileHandler(LOGS_DIR / "errors.log")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(detailed_formatter)

    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(all_handler)
    root_logger.addHandler(api_handler)
    root_logger.addHandler(error_handler)

    # Only add console handler in development mode
    if os.getenv("ENVIRONMENT", "development") == "development":
        root_logger.addHandler(console_handler)

    root_logger._toc_configured = True

    api_logger = logging.getLogger("api")
    api_logger.setLevel(logging.INFO)

    return api_logger

# Initialize the API logger
api_logger = setup_logging()

class APILogger:
    """Structured JSON logging for requests, responses, errors and timings."""

    def __init__(self):
        self.logger = api_logger

    def log_request(self, request: Request, request_id: str, **kwargs):
        """Log incoming request details (credentials redacted)."""
        try:
            request_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "headers": sanitize_sensitive_data(dict(request.headers)),
                "client_ip": request.client.host if request.client else None,
                "timestamp": datetime.now().isoformat(),
                **kwargs
            }
            self.logger.info(f"REQUEST [{request_id}]: {json.dumps(request_data, indent=2)}")
        except Exception as e:
            self.logger.error(f"Error logging request: {str(e)}")

    def log_response(self, request_id: str, response_data: Any, status_code: int,
                     processing_time: float, **kwargs):
        """Log response details."""
        try:
            response_log = {
                "request_id": request_id,
                "status_code": status_code,
                "processing_time_ms": round(processing_time * 1000, 2),
                "timestamp": datetime.now().isoformat(),
                **kwargs
            }

            if isinstance(response_data, dict):
                response_log["response_type"] = response_data.get("type", "unknown")
                response_log["response_data"] = response_data
            else:
                response_log["response_type"] = "other"
                response_log["response_data"] = str(response_data)[:500]

            self.logger.info(f"RESPONSE [{request_id}]: {json.dumps(response_log, indent=2)}")
        except Exception as e:
            self.logger.error(f"Error logging response: {str(e)}")

    def log_error(self, request_id: str, error: Exception, status_code: int = 500, **kwargs):
        """Log error details."""
        try:
            error_log = {
                "request_id": request_id,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "status_code": status_code,
                "timestamp": datetime.now().isoformat(),
                "traceback": traceback.format_exc(),
                **kwargs
            }
            self.logger.error(f"ERROR [{request_id}]: {json.dumps(error_log, indent=2, default=str)}")
        except Exception as e:
            self.logger.error(f"Error logging error: {str(e)}")

    def log_performance(self, request_id: str, operation: str, duration: float, **kwargs):
        """Log how long an operation took, with optional counters."""
        try:
            perf_log = {
                "request_id": request_id,
                "operation": operation,
                "duration_ms": round(duration * 1000, 2),
                "timestamp": datetime.now().isoformat(),
                **kwargs
            }
            self.logger.info(f"PERFORMANCE [{request_id}]: {json.dumps(perf_log, indent=2, default=str)}")
        except Exception as e:
            self.logger.error(f"Error logging performance: {str(e)}")

    def log_info(self, data: Any, request_id: Optional[str] = None, **kwargs):
        """Generic info logger for structured payloads."""
        try:
            info_log = {
                "request_id": request_id or "",
                "timestamp": datetime.now().isoformat(),
                "data": data,
                **kwargs
            }
            self.logger.info(f"INFO: {json.dumps(info_log, indent=2, default=str)}")
        except Exception as e:
            self.logger.error(f"Error logging info: {str(e)}")

# Global API logger instance
api_logger_instance = APILogger()

def get_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())

def sanitize_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Remove credentials from logged data (keys matched case-insensitively)."""
    sanitized = data.copy()

    for key in list(sanitized):
        if key.lower() in SENSITIVE_KEYS:
            sanitized[key] = '[REDACTED]'

    return sanitized
