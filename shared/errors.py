"""
File proxy error taxonomy and the JSON error body.

Domain errors (``FileProxyError`` subclasses) are raised by the storage,
encryption and access layers. The HTTP layer turns them into ``APIError``
bodies whose status comes from ``ERROR_STATUS_CODES``.
"""

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable codes carried in every error body.

    The prefix names the layer that failed: VALIDATION_* for request
    addressing, AUTHORIZATION_* for grants, STORAGE_* for envelopes.
    """

    VALIDATION_INVALID_PATH = "VALIDATION_INVALID_PATH"
    AUTHORIZATION_FAILED = "AUTHORIZATION_FAILED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Envelope persistence and decryption
    STORAGE_IO_ERROR = "STORAGE_IO_ERROR"
    STORAGE_INTEGRITY_ERROR = "STORAGE_INTEGRITY_ERROR"
    STORAGE_DECODE_ERROR = "STORAGE_DECODE_ERROR"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class APIError(BaseModel):
    """JSON body of every non-2xx response.

    Example:
        >>> APIError(
        ...     error_code=ErrorCode.RESOURCE_NOT_FOUND.value,
        ...     message="File not found",
        ...     details={"package_id": "docs", "version": "1.0.0"},
        ... )
    """

    error_code: str = Field(..., examples=["RESOURCE_NOT_FOUND", "AUTHORIZATION_FAILED"])
    message: str = Field(..., examples=["File not found"])
    details: dict[str, Any] | None = Field(
        default=None,
        examples=[{"package_id": "docs", "version": "1.0.0", "filename": "intro.md"}],
    )
    request_id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")
    service: str = "file-proxy"


# =============================================================================
# Domain errors
# =============================================================================


class FileProxyError(Exception):
    """Base class for errors raised by the file proxy core."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return get_status_code(self.error_code.value)

    def to_api_error(self, service: str = "file-proxy") -> APIError:
        """Response body for this error."""
        return APIError(
            error_code=self.error_code.value,
            message=self.message,
            details=self.details,
            service=service,
        )


class ConfigurationError(FileProxyError):
    """Invalid or missing configuration. Raised at startup, never per request."""

    error_code = ErrorCode.CONFIGURATION_ERROR


class NotFoundError(FileProxyError):
    """Requested envelope does not exist."""

    error_code = ErrorCode.RESOURCE_NOT_FOUND


class AccessDeniedError(FileProxyError):
    """Caller may not read the requested package."""

    error_code = ErrorCode.AUTHORIZATION_FAILED


class InvalidPathError(FileProxyError):
    """Addressing component sanitized to nothing or escapes the storage root."""

    error_code = ErrorCode.VALIDATION_INVALID_PATH


class StorageIOError(FileProxyError):
    """Filesystem failure other than not-found, or an unreadable envelope."""

    error_code = ErrorCode.STORAGE_IO_ERROR


class IntegrityError(FileProxyError):
    """Authentication tag did not verify: tampering, corruption or wrong key."""

    error_code = ErrorCode.STORAGE_INTEGRITY_ERROR


class DecodeError(FileProxyError):
    """Envelope fields are not well formed (bad hex, wrong IV or tag length)."""

    error_code = ErrorCode.STORAGE_DECODE_ERROR


# HTTP status code mappings
ERROR_STATUS_CODES: dict[str, int] = {
    ErrorCode.VALIDATION_INVALID_PATH.value: 400,
    ErrorCode.AUTHORIZATION_FAILED.value: 403,
    ErrorCode.RESOURCE_NOT_FOUND.value: 404,
    ErrorCode.RATE_LIMIT_EXCEEDED.value: 429,
    ErrorCode.STORAGE_IO_ERROR.value: 500,
    ErrorCode.STORAGE_INTEGRITY_ERROR.value: 500,
    ErrorCode.STORAGE_DECODE_ERROR.value: 500,
    ErrorCode.CONFIGURATION_ERROR.value: 500,
    ErrorCode.INTERNAL_ERROR.value: 500,
}


def get_status_code(error_code: str) -> int:
    """Get HTTP status code for error code.

    Args:
        error_code: Error code string.

    Returns:
        int: Appropriate HTTP status code.
    """
    return ERROR_STATUS_CODES.get(error_code, 500)
