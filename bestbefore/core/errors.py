"""Error classification for remote store and local storage failures."""

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel

from bestbefore.core.config import Constants


class RemoteErrorKind(StrEnum):
    """Whether a failed remote request is worth retrying later."""

    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"
    ERR_TIMEOUT = "ERR_TIMEOUT"
    ERR_RATE_LIMIT_EXCEEDED = "ERR_RATE_LIMIT_EXCEEDED"
    ERR_SERVER_ERROR = "ERR_SERVER_ERROR"
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class RemoteError(BaseModel):
    """Classified error returned by the remote store."""

    kind: RemoteErrorKind
    code: str
    message: str
    status: int | None = None

    @property
    def retryable(self) -> bool:
        return self.kind is RemoteErrorKind.RETRYABLE


class StorageError(Exception):
    """Raised when the local key-value backend cannot be read or written."""


_ERROR_PATTERNS: dict[
    Literal["network", "timeout", "rate_limit", "auth", "permission", "validation"],
    dict[str, list[str] | set[str]],
] = {
    "network": {
        "phrases": ["connection", "network", "unreachable", "name resolution", "connect error"],
        "exception_types": {"ConnectError", "ConnectionError", "NetworkError", "RemoteProtocolError"},
    },
    "timeout": {
        "phrases": ["timeout", "timed out"],
        "exception_types": {"TimeoutError", "ReadTimeout", "ConnectTimeout", "WriteTimeout", "PoolTimeout"},
    },
    "rate_limit": {
        "phrases": ["rate limit", "too many requests", "throttled"],
        "exception_types": set(),
    },
    "auth": {
        "phrases": ["jwt expired", "invalid token", "unauthorized", "invalid api key"],
        "exception_types": set(),
    },
    "permission": {
        "phrases": ["permission denied", "row-level security", "violates row-level"],
        "exception_types": {"PermissionError"},
    },
    "validation": {
        "phrases": ["violates", "invalid input syntax", "null value in column", "does not exist"],
        "exception_types": {"ValidationError"},
    },
}


def _match_error_pattern(
    *,
    error_str: str,
    exception_type: str,
    pattern_type: Literal["network", "timeout", "rate_limit", "auth", "permission", "validation"],
) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def _classify_status(status: int, message: str) -> RemoteError:
    if status == Constants.HTTP_REQUEST_TIMEOUT:
        return RemoteError(kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_TIMEOUT, message=message, status=status)
    if status == Constants.HTTP_TOO_MANY_REQUESTS:
        return RemoteError(
            kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_RATE_LIMIT_EXCEEDED, message=message, status=status
        )
    if status >= Constants.HTTP_SERVER_ERROR:
        return RemoteError(
            kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_SERVER_ERROR, message=message, status=status
        )
    if status == Constants.HTTP_UNAUTHORIZED:
        # An expired session recovers after the user signs in again
        return RemoteError(
            kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_AUTHENTICATION_FAILED, message=message, status=status
        )
    if status == Constants.HTTP_FORBIDDEN:
        return RemoteError(
            kind=RemoteErrorKind.PERMANENT, code=ErrorCode.ERR_PERMISSION_DENIED, message=message, status=status
        )
    return RemoteError(kind=RemoteErrorKind.PERMANENT, code=ErrorCode.ERR_VALIDATION, message=message, status=status)


def classify_remote_error(
    *,
    message: str,
    status: int | None = None,
    exception_type: str = "",
) -> RemoteError:
    """Classify a failed remote request as retryable or permanent.

    HTTP responses are classified by status code: 408, 429, 401 and 5xx are
    retryable, any other 4xx is permanent. Failures without a response
    (transport errors, timeouts) are classified from the exception type and
    message; anything unrecognised is treated as retryable so the entry is
    kept rather than dropped.

    Args:
        message: Error message from the response body or exception
        status: HTTP status code, if a response was received
        exception_type: Name of the exception class, if one was raised

    Returns:
        RemoteError describing the failure
    """
    if status is not None and status >= Constants.HTTP_BAD_REQUEST:
        return _classify_status(status, message)

    error_str = message.lower()

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="timeout"):
        return RemoteError(kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_TIMEOUT, message=message, status=status)

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return RemoteError(
            kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_NETWORK_ERROR, message=message, status=status
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="rate_limit"):
        return RemoteError(
            kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_RATE_LIMIT_EXCEEDED, message=message, status=status
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return RemoteError(
            kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_AUTHENTICATION_FAILED, message=message, status=status
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="permission"):
        return RemoteError(
            kind=RemoteErrorKind.PERMANENT, code=ErrorCode.ERR_PERMISSION_DENIED, message=message, status=status
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="validation"):
        return RemoteError(
            kind=RemoteErrorKind.PERMANENT, code=ErrorCode.ERR_VALIDATION, message=message, status=status
        )

    return RemoteError(kind=RemoteErrorKind.RETRYABLE, code=ErrorCode.ERR_UNKNOWN, message=message, status=status)
