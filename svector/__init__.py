"""Async Python client for the SVECTOR Spec-Chat API."""

__version__ = "1.0.0"

from .config import ClientConfig
from .core.client import SVECTOR, Client
from .core.engine import MultipartForm, RequestOptions
from .core.errors import (
    APIConnectionError,
    APIConnectionTimeoutError,
    APIError,
    AuthenticationError,
    ErrorKind,
    InternalServerError,
    NotFoundError,
    PayloadTooLargeError,
    PermissionDeniedError,
    RateLimitError,
    SVECTORError,
    UnprocessableEntityError,
    VisionTimeoutError,
)
from .core.runtime import RuntimeKind, to_file
from .core.streaming import AsyncStream

__all__ = [
    "__version__",
    "Client",
    "SVECTOR",
    "ClientConfig",
    "RequestOptions",
    "MultipartForm",
    "AsyncStream",
    "RuntimeKind",
    "to_file",
    "ErrorKind",
    "SVECTORError",
    "APIError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "UnprocessableEntityError",
    "RateLimitError",
    "InternalServerError",
    "PayloadTooLargeError",
    "APIConnectionError",
    "APIConnectionTimeoutError",
    "VisionTimeoutError",
]
