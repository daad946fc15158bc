"""Tests for ErrorTracker."""

from __future__ import annotations

import pytest

from src.resilience.models import ErrorKind
from src.resilience.tracker import ErrorTracker


class TestHandleError:
    def test_sets_current_and_history(self):
        tracker = ErrorTracker()
        err = tracker.handle_error(RuntimeError("Network request failed"), "load")
        assert tracker.current_error == err
        assert tracker.history == [err]
        assert err.context == "load"

    def test_history_newest_first_and_bounded(self):
        tracker = ErrorTracker(history_size=3)
        errors = [tracker.handle_error(f"failure {i}") for i in range(5)]
        assert tracker.history == [errors[4], errors[3], errors[2]]
        assert tracker.current_error == errors[4]

    def test_clear_keeps_history(self):
        tracker = ErrorTracker()
        tracker.handle_error("Unauthorized")
        tracker.clear_error()
        assert tracker.current_error is None
        assert len(tracker.history) == 1

    def test_details_flag(self):
        tracker = ErrorTracker(include_details=True)
        assert tracker.handle_error(ValueError("boom")).details == "ValueError: boom"


class TestRetryLastAction:
    @pytest.mark.asyncio
    async def test_no_current_error(self):
        calls = []

        async def action():
            calls.append(1)

        assert await ErrorTracker().retry_last_action(action) is False
        assert calls == []

    @pytest.mark.asyncio
    async def test_non_retryable_current_error(self):
        tracker = ErrorTracker()
        tracker.handle_error("Forbidden")
        calls = []

        async def action():
            calls.append(1)

        assert await tracker.retry_last_action(action) is False
        assert calls == []
        assert tracker.current_error is not None

    @pytest.mark.asyncio
    async def test_success_clears_error(self):
        tracker = ErrorTracker()
        tracker.handle_error("Network request failed")

        async def action():
            return "fine"

        assert await tracker.retry_last_action(action) is True
        assert tracker.current_error is None

    @pytest.mark.asyncio
    async def test_failure_recorded_as_retry_failed(self):
        tracker = ErrorTracker()
        tracker.handle_error("Network request failed")

        async def action():
            raise RuntimeError("duplicate key value")

        assert await tracker.retry_last_action(action) is False
        current = tracker.current_error
        assert current.context == "retry_failed"
        assert current.kind == ErrorKind.DATABASE
        assert len(tracker.history) == 2
