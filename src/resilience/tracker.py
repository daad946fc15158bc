"""Error tracker — the current error plus a short history for the UI layer."""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.resilience.messages import generate_app_error
from src.resilience.models import AppError

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_SIZE = 10


class ErrorTracker:
    """Holds the error currently on screen and the last few before it.

    The current error stays until ``clear_error()`` or a successful
    ``retry_last_action()``.  History is newest-first and bounded; the oldest
    entry is evicted when full.
    """

    def __init__(
        self, *, history_size: int = DEFAULT_HISTORY_SIZE, include_details: bool = False
    ) -> None:
        self._current: AppError | None = None
        self._history: deque[AppError] = deque(maxlen=history_size)
        self._include_details = include_details

    @property
    def current_error(self) -> AppError | None:
        return self._current

    @property
    def history(self) -> list[AppError]:
        return list(self._history)

    def record(self, app_error: AppError) -> AppError:
        """Make an already-built ``AppError`` current and add it to history."""
        self._current = app_error
        self._history.appendleft(app_error)
        log = logger.warning if app_error.recoverable else logger.error
        log(
            "app_error",
            error_id=app_error.id,
            kind=app_error.kind.value,
            title=app_error.title,
            context=app_error.context,
            recoverable=app_error.recoverable,
            retryable=app_error.retryable,
        )
        return app_error

    def handle_error(self, error: Any, context: str | None = None) -> AppError:
        """Convert a raw failure and record it."""
        return self.record(
            generate_app_error(error, context, include_details=self._include_details)
        )

    def clear_error(self) -> None:
        self._current = None

    async def retry_last_action(self, action: Callable[[], Awaitable[Any]]) -> bool:
        """Re-run ``action`` if the current error is retryable.

        Returns True when the retry ran and succeeded.  A failed retry is
        recorded with context ``"retry_failed"``.
        """
        if self._current is None or not self._current.retryable:
            return False
        try:
            await action()
        except Exception as exc:
            self.handle_error(exc, "retry_failed")
            return False
        self.clear_error()
        return True
