import asyncio
import json
import logging

import httpx

logger = logging.getLogger(__name__)


class KontextError(Exception):
    """Base error; ``message`` is safe to show to the end user."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(KontextError):
    status_code = 400


class ConfigurationError(KontextError):
    status_code = 500


class UpstreamDownloadError(KontextError):
    status_code = 400

    def __init__(self, message: str, *, url: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url


class UpstreamLLMError(KontextError):
    status_code = 500


class AuthError(UpstreamLLMError):
    pass


class RateLimitError(UpstreamLLMError):
    pass


class UpstreamUnavailable(UpstreamLLMError):
    pass


class EmptyResponse(UpstreamLLMError):
    pass


class TruncatedResponse(EmptyResponse):
    pass


class UpstreamGenerationError(KontextError):
    status_code = 500


class StorageError(KontextError):
    status_code = 500


class NetworkError(KontextError):
    status_code = 500


def user_message_for(exc: BaseException) -> str:
    if isinstance(exc, KontextError):
        return exc.message
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "Request timed out, please try again later"
    if isinstance(exc, httpx.TransportError):
        return "Network connection error, please check your connection"
    if isinstance(exc, json.JSONDecodeError):
        return "Malformed request data"
    return "Internal server error"


def status_code_for(exc: BaseException) -> int:
    if isinstance(exc, KontextError):
        return exc.status_code
    return 500


def describe(exc: BaseException) -> dict:
    """Structured form of an error for log records."""
    return {"error_type": type(exc).__name__, "error": str(exc)}
