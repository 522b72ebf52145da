"""Mood Journal offline client package."""

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:  # pragma: no cover - import only for static analysis
    from .app import create_session as create_session
else:
    def create_session(*args: Any, **kwargs: Any):
        from .app import create_session as _create_session

        return _create_session(*args, **kwargs)


__all__ = ["create_session"]
