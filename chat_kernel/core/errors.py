import asyncio
import json
from enum import Enum


class ErrorKind(str, Enum):
    API_KEY_MISSING = "api_key_missing"
    API_KEY_INVALID = "api_key_invalid"
    NETWORK_UNAVAILABLE = "network_unavailable"
    RATE_LIMITED = "rate_limited"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    MODEL_UNAVAILABLE = "model_unavailable"
    SERVER_ERROR = "server_error"
    DECODING_ERROR = "decoding_error"
    STREAMING_ERROR = "streaming_error"
    INVALID_CONFIGURATION = "invalid_configuration"
    CANCELLED = "cancelled"


class ChatKernelError(Exception):
    """Base class for classified client errors."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR
    status_code: int | None = None


class ApiKeyMissingError(ChatKernelError):
    kind = ErrorKind.API_KEY_MISSING

    def __init__(self, message: str = "API key not configured"):
        super().__init__(message)


class ApiKeyInvalidError(ChatKernelError):
    kind = ErrorKind.API_KEY_INVALID
    status_code = 401

    def __init__(self, message: str = "API key is invalid"):
        super().__init__(message)


class NetworkUnavailableError(ChatKernelError):
    kind = ErrorKind.NETWORK_UNAVAILABLE


class RateLimitedError(ChatKernelError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429

    def __init__(self, message: str = "Rate limit reached", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class InsufficientCreditsError(ChatKernelError):
    kind = ErrorKind.INSUFFICIENT_CREDITS
    status_code = 402

    def __init__(self, message: str = "Insufficient credits"):
        super().__init__(message)


class ModelUnavailableError(ChatKernelError):
    kind = ErrorKind.MODEL_UNAVAILABLE
    status_code = 503

    def __init__(self, model_id: str, message: str = ""):
        super().__init__(f"Model unavailable: {model_id}" + (f" ({message})" if message else ""))
        self.model_id = model_id
        self.message = message


class ServerError(ChatKernelError):
    kind = ErrorKind.SERVER_ERROR

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Server error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


class DecodingError(ChatKernelError):
    kind = ErrorKind.DECODING_ERROR

    def __init__(self, detail: str):
        super().__init__(f"Failed to read the response: {detail}")
        self.detail = detail


class StreamingError(ChatKernelError):
    kind = ErrorKind.STREAMING_ERROR

    def __init__(self, detail: str):
        super().__init__(f"Streaming error: {detail}")
        self.detail = detail


class InvalidConfigurationError(ChatKernelError):
    kind = ErrorKind.INVALID_CONFIGURATION


def extract_error_message(body: str) -> str:
    """Pull `error.message` out of a JSON error body, falling back to the raw text."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip()
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip()
        elif isinstance(error, str) and error.strip():
            return error.strip()
    return body.strip()


def error_from_response(
    status_code: int,
    body: str,
    *,
    retry_after: float | None = None,
    model_id: str = "",
) -> ChatKernelError:
    """
    Classify a failed HTTP response.

    Args:
        status_code: HTTP status of the response
        body: Response body as text (JSON or plain)
        retry_after: Parsed Retry-After header, in seconds
        model_id: Model the request asked for

    Returns:
        The matching ChatKernelError subclass instance
    """
    message = extract_error_message(body)
    if status_code == 401:
        return ApiKeyInvalidError(message or "API key is invalid")
    if status_code == 402:
        return InsufficientCreditsError(message or "Insufficient credits")
    if status_code == 429:
        return RateLimitedError(message or "Rate limit reached", retry_after=retry_after)
    if status_code == 503:
        return ModelUnavailableError(model_id, message)
    return ServerError(status_code, message)


def error_kind_of(exc: BaseException) -> ErrorKind:
    """Map any exception raised by a call onto the error taxonomy."""
    if isinstance(exc, ChatKernelError):
        return exc.kind
    if isinstance(exc, asyncio.CancelledError):
        return ErrorKind.CANCELLED
    return ErrorKind.SERVER_ERROR
