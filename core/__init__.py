from .logging_config import api_logger_instance, get_request_id, sanitize_sensitive_data
from .middleware import APILoggingMiddleware
from .timeout_middleware import TimeoutMiddleware
from .error_handler import (
    TimeoutError, RateLimitError, NetworkError, LLMAPIError,
    ValidationError, ResourceNotFoundError, DocumentLoadError,
    create_error_response, handle_llm_api_call, raise_for_llm_status,
    validate_llm_config, get_http_status_code
)
from .exception_handler import global_exception_handler, setup_exception_handlers
from .ids import IdGenerator, SequentialIdGenerator, make_id_generator

__all__ = [
    'api_logger_instance',
    'get_request_id',
    'sanitize_sensitive_data',
    'APILoggingMiddleware',
    'TimeoutMiddleware',
    'TimeoutError',
    'RateLimitError',
    'NetworkError',
    'LLMAPIError',
    'ValidationError',
    'ResourceNotFoundError',
    'DocumentLoadError',
    'create_error_response',
    'handle_llm_api_call',
    'raise_for_llm_status',
    'validate_llm_config',
    'get_http_status_code',
    'global_exception_handler',
    'setup_exception_handlers',
    'IdGenerator',
    'SequentialIdGenerator',
    'make_id_generator',
]
