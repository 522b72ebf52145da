from __future__ import annotations

import pytest

from moodjournal.app.api.errors import (
    ApiError,
    ErrorKind,
    NetworkError,
    NotFoundError,
    OfflineDataUnavailable,
    UnauthorizedError,
    ValidationFailedError,
    api_error_for_status,
    classify,
)


@pytest.mark.parametrize(
    ("status", "error_type", "kind"),
    [
        (404, NotFoundError, ErrorKind.NOT_FOUND),
        (401, UnauthorizedError, ErrorKind.UNAUTHORIZED),
        (400, ValidationFailedError, ErrorKind.VALIDATION),
        (422, ValidationFailedError, ErrorKind.VALIDATION),
        (503, ApiError, ErrorKind.SERVER),
    ],
)
def test_status_maps_to_error_kind(status, error_type, kind) -> None:
    error = api_error_for_status(status, "message")

    assert type(error) is error_type
    assert classify(error) is kind


def test_non_http_failures_are_classified() -> None:
    assert classify(NetworkError("down")) is ErrorKind.NETWORK
    assert classify(OfflineDataUnavailable()) is ErrorKind.NO_DATA
    assert classify(ValueError("Invalid mood value")) is ErrorKind.VALIDATION
    assert str(OfflineDataUnavailable()) == "No data available offline"
