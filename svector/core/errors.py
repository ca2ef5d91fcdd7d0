"""
errors.py - Typed failure conditions for the SVECTOR client.

Every error carries the same payload (message, HTTP status, request id and a
snapshot of the response headers) plus an ``ErrorKind`` tag. The classes are
kept one level deep so callers can either ``except RateLimitError`` or switch
on ``err.kind``.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence


class ErrorKind(str, Enum):
    API = "api_error"
    AUTHENTICATION = "authentication"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    UNPROCESSABLE_ENTITY = "unprocessable_entity"
    RATE_LIMIT = "rate_limit"
    INTERNAL_SERVER = "internal_server"
    CONNECTION = "connection"
    CONNECTION_TIMEOUT = "connection_timeout"
    PAYLOAD_TOO_LARGE = "payload_too_large"


# =============================================================================
# Exceptions
# =============================================================================

class SVECTORError(Exception):
    """Base exception for everything raised by the client."""

    kind: ErrorKind = ErrorKind.API
    default_message: str = "SVECTOR API error"
    default_status: Optional[int] = None

    def __init__(
        self,
        message: str = None,
        status: int = None,
        request_id: str = None,
        headers: Mapping[str, str] = None,
    ):
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.status = status if status is not None else self.default_status
        self.request_id = request_id
        self.headers = dict(headers) if headers else None

    def __str__(self):
        if self.status:
            return f"[{self.status}] {self.message}"
        return self.message

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(kind={self.kind.value!r}, "
            f"message={self.message!r}, status={self.status!r}, request_id={self.request_id!r})"
        )


class APIError(SVECTORError):
    """Any non-2xx response without a more specific kind."""


class AuthenticationError(SVECTORError):
    """Raised for 401 responses and for a missing API key."""
    kind = ErrorKind.AUTHENTICATION
    default_message = "Authentication failed"
    default_status = 401


class PermissionDeniedError(SVECTORError):
    """Raised for 403 errors."""
    kind = ErrorKind.PERMISSION_DENIED
    default_message = "Permission denied"
    default_status = 403


class NotFoundError(SVECTORError):
    """Raised for 404 errors."""
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"
    default_status = 404


class UnprocessableEntityError(SVECTORError):
    """Raised for 422 errors."""
    kind = ErrorKind.UNPROCESSABLE_ENTITY
    default_message = "Unprocessable entity"
    default_status = 422


class RateLimitError(SVECTORError):
    """Raised for 429 errors."""
    kind = ErrorKind.RATE_LIMIT
    default_message = "Rate limit exceeded"
    default_status = 429


class InternalServerError(SVECTORError):
    """Raised for 500+ errors."""
    kind = ErrorKind.INTERNAL_SERVER
    default_message = "Internal server error"
    default_status = 500


class PayloadTooLargeError(SVECTORError):
    """Raised when the server rejects a request body as too large (413)."""
    kind = ErrorKind.PAYLOAD_TOO_LARGE
    default_message = "Request payload too large"
    default_status = 413


class APIConnectionError(SVECTORError):
    """Raised when the request never produced a usable response."""
    kind = ErrorKind.CONNECTION
    default_message = "Connection error"


class APIConnectionTimeoutError(APIConnectionError):
    """Raised when the request deadline expires."""
    kind = ErrorKind.CONNECTION_TIMEOUT
    default_message = "Request timed out"


class VisionTimeoutError(APIConnectionTimeoutError):
    """Timeout on the vision path; the message carries remediation hints."""


# =============================================================================
# Status mapping
# =============================================================================

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 502, 503, 504, 524})

# Fixed messages replace whatever the server sent for these statuses.
_FIXED_MESSAGES = {
    405: "Method Not Allowed. Please check the API endpoint and HTTP method.",
    502: "Bad Gateway - API server temporarily unavailable",
    503: "Service Unavailable - API server temporarily overloaded",
    504: "Gateway Timeout - API request timed out",
    524: "Cloudflare Timeout - Request took too long to process",
}

_STATUS_CLASSES = {
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    422: UnprocessableEntityError,
    429: RateLimitError,
    502: InternalServerError,
    503: InternalServerError,
    504: InternalServerError,
    524: InternalServerError,
}


def is_retryable_status(status: Optional[int]) -> bool:
    if not status:
        return False
    return status in RETRYABLE_STATUS_CODES or status >= 500


def error_from_status(
    status: int,
    message: str = None,
    request_id: str = None,
    headers: Mapping[str, str] = None,
) -> SVECTORError:
    """Build the typed error for an HTTP status code."""
    error_class = _STATUS_CLASSES.get(status, InternalServerError if status >= 500 else APIError)
    return error_class(
        message=_FIXED_MESSAGES.get(status, message),
        status=status,
        request_id=request_id,
        headers=headers,
    )


# =============================================================================
# Message extraction
# =============================================================================

def _field(name: str) -> Callable[[Dict[str, Any]], Optional[str]]:
    def rule(data: Dict[str, Any]) -> Optional[str]:
        value = data.get(name)
        if isinstance(value, dict):
            value = value.get("message") or json.dumps(value)
        if value in (None, ""):
            return None
        return str(value)
    return rule


MESSAGE_RULES: Sequence[Callable[[Dict[str, Any]], Optional[str]]] = (
    _field("message"),
    _field("error"),
    _field("detail"),
)


def extract_error_message(body: Any, status: int, reason: str = "") -> str:
    """Apply MESSAGE_RULES in order; the status line is the final fallback."""
    if isinstance(body, dict):
        for rule in MESSAGE_RULES:
            message = rule(body)
            if message:
                return message
    elif isinstance(body, str) and body.strip():
        return body.strip()
    return reason or f"HTTP {status}"
