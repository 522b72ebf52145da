from .client import ApiClient, ApiResponse
from .errors import (
    ApiError,
    ErrorKind,
    NetworkError,
    NotFoundError,
    OfflineDataUnavailable,
    UnauthorizedError,
    ValidationFailedError,
)

__all__ = [
    "ApiClient",
    "ApiResponse",
    "ApiError",
    "ErrorKind",
    "NetworkError",
    "NotFoundError",
    "OfflineDataUnavailable",
    "UnauthorizedError",
    "ValidationFailedError",
]
