"""Failures raised by the network client and classified by data access."""

from __future__ import annotations

from enum import Enum

DEFAULT_ERROR_MESSAGE = "An error occurred"


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NETWORK = "network"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NO_DATA = "no_data"
    SERVER = "server"


class ApiError(Exception):
    """Non-2xx response from the journal API."""

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = int(status)
        self.message = (message or "").strip() or DEFAULT_ERROR_MESSAGE
        super().__init__(f"{self.status}: {self.message}")


class NotFoundError(ApiError):
    pass


class UnauthorizedError(ApiError):
    pass


class ValidationFailedError(ApiError):
    pass


class NetworkError(Exception):
    """The server could not be reached at all."""


class OfflineDataUnavailable(Exception):
    """Neither the network nor the offline store could answer a read."""

    def __init__(self, message: str = "No data available offline") -> None:
        super().__init__(message)


def api_error_for_status(status: int, message: str | None = None) -> ApiError:
    if status == 404:
        return NotFoundError(status, message)
    if status == 401:
        return UnauthorizedError(status, message)
    if status in {400, 422}:
        return ValidationFailedError(status, message)
    return ApiError(status, message)


def classify(exc: BaseException) -> ErrorKind:
    if isinstance(exc, NotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, UnauthorizedError):
        return ErrorKind.UNAUTHORIZED
    if isinstance(exc, NetworkError):
        return ErrorKind.NETWORK
    if isinstance(exc, OfflineDataUnavailable):
        return ErrorKind.NO_DATA
    if isinstance(exc, (ValidationFailedError, ValueError)):
        return ErrorKind.VALIDATION
    if isinstance(exc, ApiError) and 400 <= exc.status < 500:
        return ErrorKind.VALIDATION
    return ErrorKind.SERVER


__all__ = [
    "DEFAULT_ERROR_MESSAGE",
    "ErrorKind",
    "ApiError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationFailedError",
    "NetworkError",
    "OfflineDataUnavailable",
    "api_error_for_status",
    "classify",
]
