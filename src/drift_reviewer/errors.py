"""
Error Types

Exception hierarchy shared by every layer of the drift reviewer.
Each error carries a machine-readable code and a ``recoverable`` flag
that the retry policy uses to decide whether another attempt is worthwhile.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""
    MISSING_CONFIG = "MISSING_CONFIG"
    INVALID_CONFIG = "INVALID_CONFIG"
    MISSING_API_KEY = "MISSING_API_KEY"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    PLATFORM_AUTH_ERROR = "PLATFORM_AUTH_ERROR"
    INVALID_URL = "INVALID_URL"
    MODEL_LOAD_ERROR = "MODEL_LOAD_ERROR"
    MODEL_NOT_LOADED = "MODEL_NOT_LOADED"
    COMPONENT_NOT_FOUND = "COMPONENT_NOT_FOUND"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    INVALID_INPUT = "INVALID_INPUT"
    SAFETY_FILTERED = "SAFETY_FILTERED"
    IO_CLONE_FAILED = "IO_CLONE_FAILED"
    IO_FILE_NOT_FOUND = "IO_FILE_NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class DriftReviewerError(Exception):
    """
    Base error for the drift reviewer.

    Args:
        message: Technical message for logs
        code: Error code
        user_message: Short message suitable for end users
        context: Diagnostic context (component id, repository, phase, ...)
        recoverable: Whether retrying the operation may succeed
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.user_message = user_message or message
        self.context = context or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }


class ConfigurationError(DriftReviewerError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_CONFIG,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, context=context, recoverable=False)


class ApiError(DriftReviewerError):
    """
    Failure reported by a remote API (completion service, hosting platform).

    429 responses are treated as rate limiting, 408 responses or messages
    mentioning a timeout as timeouts. Both are recoverable.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        rate_limited = status_code == 429
        timed_out = status_code == 408 or "timeout" in message.lower()
        if code is None:
            if rate_limited:
                code = ErrorCode.RATE_LIMITED
            elif timed_out:
                code = ErrorCode.TIMEOUT
            else:
                code = ErrorCode.API_ERROR
        super().__init__(
            message,
            code,
            context=context,
            recoverable=rate_limited or timed_out,
        )

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_timeout(self) -> bool:
        return self.status_code == 408 or "timeout" in self.message.lower()


class ProviderError(DriftReviewerError):
    """Non-recoverable completion outcome (safety filter, malformed output)."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_RESPONSE,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, context=context, recoverable=False)


class AdapterError(DriftReviewerError):
    """Architecture model could not be loaded or queried."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        adapter_type: str,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message, code, user_message=user_message, context=context)
        self.adapter_type = adapter_type
        self.suggestions = suggestions or []

    @classmethod
    def not_loaded(cls, adapter_type: str) -> "AdapterError":
        return cls(
            f"{adapter_type} model has not been loaded",
            ErrorCode.MODEL_NOT_LOADED,
            adapter_type,
            user_message="Architecture model is not loaded. Call load_from_path() first.",
        )


class PlatformError(DriftReviewerError):
    """GitHub API related errors"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict] = None,
        code: Optional[ErrorCode] = None,
        recoverable: bool = False,
    ):
        if code is None:
            if status_code in (401, 403):
                code = ErrorCode.PLATFORM_AUTH_ERROR
            elif status_code is None:
                code = ErrorCode.NETWORK_ERROR
            else:
                code = ErrorCode.API_ERROR
        super().__init__(message, code, recoverable=recoverable)
        self.status_code = status_code
        self.response_data = response_data


class RateLimitExceeded(PlatformError):
    """GitHub API rate limit exceeded"""

    def __init__(self, reset_time: datetime):
        super().__init__(
            f"Rate limit exceeded. Resets at {reset_time}",
            status_code=429,
            code=ErrorCode.RATE_LIMITED,
            recoverable=True,
        )
        self.reset_time = reset_time


class ToolingUnavailableError(AdapterError):
    """An external model tool (Structurizr CLI, LikeC4 CLI) could not be started."""

    def __init__(self, message: str, adapter_type: str, suggestions: Optional[List[str]] = None):
        super().__init__(
            message,
            ErrorCode.MODEL_LOAD_ERROR,
            adapter_type,
            suggestions=suggestions,
        )
