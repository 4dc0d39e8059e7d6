import asyncio
import time
from typing import Any, Callable, Optional
from fastapi.responses import JSONResponse
import aiohttp
import logging

logger = logging.getLogger(__name__)

# Custom exception classes
class TimeoutError(Exception):
    """Raised when an operation times out."""
    pass

class RateLimitError(Exception):
    """Raised when the LLM provider reports a rate limit."""
    pass

class NetworkError(Exception):
    """Raised when there's a network connectivity issue."""
    pass

class LLMAPIError(Exception):
    """Raised when the LLM provider returns an unusable response."""
    pass

class ValidationError(Exception):
    """Raised when input validation fails."""
    pass

class ResourceNotFoundError(Exception):
    """Raised when a requested resource is not found."""
    pass

class DocumentLoadError(Exception):
    """Raised when a PDF cannot be opened for extraction."""
    pass

# Error mapping to HTTP status codes
ERROR_STATUS_MAPPING = {
    TimeoutError: 408,  # Request Timeout
    RateLimitError: 429,  # Too Many Requests
    NetworkError: 503,  # Service Unavailable
    LLMAPIError: 502,  # Bad Gateway
    ValidationError: 400,  # Bad Request
    ResourceNotFoundError: 404,  # Not Found
    DocumentLoadError: 422,  # Unprocessable Entity
    ValueError: 400,
    KeyError: 400,
    FileNotFoundError: 404,
    PermissionError: 403,
}

def get_http_status_code(error: Exception) -> int:
    """Get appropriate HTTP status code for an exception."""
    error_type = type(error)

    if error_type in ERROR_STATUS_MAPPING:
        return ERROR_STATUS_MAPPING[error_type]

    error_message = str(error).lower()

    if any(keyword in error_message for keyword in ['connection', 'network', 'unreachable', 'dns']):
        return 503

    if any(keyword in error_message for keyword in ['timeout', 'timed out', 'deadline']):
        return 408

    if any(keyword in error_message for keyword in ['rate limit', 'quota', 'too many requests']):
        return 429

    return 500

def create_error_response(error: Exception, request_id: Optional[str] = None) -> JSONResponse:
    """Create a standardized error response."""
    status_code = get_http_status_code(error)

    error_data = {
        "error": {
            "type": type(error).__name__,
            "message": str(error),
            "status_code": status_code,
            "timestamp": time.time()
        }
    }

    if request_id:
        error_data["error"]["request_id"] = request_id

    if isinstance(error, TimeoutError):
        error_data["error"]["details"] = "The operation timed out. Please try again."
    elif isinstance(error, RateLimitError):
        error_data["error"]["details"] = "LLM rate limit exceeded. Please wait before retrying."
    elif isinstance(error, NetworkError):
        error_data["error"]["details"] = "Network connectivity issue. Please check your connection."
    elif isinstance(error, LLMAPIError):
        error_data["error"]["details"] = "External AI service error. Heuristic results are kept."
    elif isinstance(error, DocumentLoadError):
        error_data["error"]["details"] = "The document could not be loaded. Upload a valid, unencrypted PDF."
    elif isinstance(error, ValidationError):
        error_data["error"]["details"] = "Correct the request and retry."

    return JSONResponse(
        status_code=status_code,
        content=error_data
    )

def raise_for_llm_status(status: int, body: str) -> None:
    """Translate a non-2xx provider status into the service's error taxonomy."""
    if 200 <= status < 300:
        return
    snippet = (body or "<no body>")[:300]
    if status == 429:
        raise RateLimitError(f"LLM API 429: {snippet}")
    if status >= 500:
        raise NetworkError(f"LLM API {status}: {snippet}")
    raise LLMAPIError(f"LLM API {status}: {snippet}")

async def handle_llm_api_call(
    api_call: Callable,
    *args,
    timeout: float = 60.0,
    max_retries: int = 0,
    **kwargs
) -> Any:
    """
    Await an LLM call with a timeout and map transport failures to our errors.

    Args:
        api_call: coroutine function performing the request
        timeout: seconds before the call is abandoned
        max_retries: extra attempts for timeouts and connection errors

    Raises:
        TimeoutError, RateLimitError, NetworkError, LLMAPIError
    """
    last_error: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            return await asyncio.wait_for(api_call(*args, **kwargs), timeout=timeout)

        except asyncio.TimeoutError:
            last_error = TimeoutError(
                f"LLM call timed out after {timeout} seconds (attempt {attempt + 1}/{max_retries + 1})"
            )
        except aiohttp.ClientConnectionError as e:
            last_error = NetworkError(f"Network connection error: {str(e)}")
        except (RateLimitError, LLMAPIError, NetworkError, ValidationError):
            raise
        except aiohttp.ClientError as e:
            raise LLMAPIError(f"LLM client error: {str(e)}") from e

        if attempt < max_retries:
            logger.warning(f"LLM call failed on attempt {attempt + 1}: {last_error}")
            await asyncio.sleep(2 ** attempt)

    raise last_error or LLMAPIError("Unknown LLM API error")

def validate_llm_config(config: Any) -> bool:
    """Check that a provider config carries what its auth shape needs."""
    if config is None:
        raise ValidationError("LLM configuration is required")

    api_key = getattr(config, "api_key", "") or ""
    if not api_key.strip():
        raise ValidationError("LLM API key is required")

    provider = getattr(config, "provider", None)
    if provider not in ("openai", "azure"):
        raise ValidationError(f"Unsupported LLM provider: {provider!r}")

    if provider == "azure" and not (getattr(config, "azure_endpoint", None) or "").strip():
        raise ValidationError("Azure endpoint URL is required")

    return True
