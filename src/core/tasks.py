"""Cancellable task handles — timers and background work with explicit teardown.

Every timer in the core (backoff sleeps aside, which live inside the awaiting
task) is a ``TaskHandle``.  Owners keep their handles in a ``TaskScope`` and
call ``cancel_all()`` on dispose, so nothing fires after teardown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class TaskHandle:
    """Handle on one scheduled asyncio task."""

    def __init__(self, task: asyncio.Task[Any], name: str) -> None:
        self._task = task
        self.name = name

    def cancel(self) -> bool:
        """Cancel the task. Returns False if it had already finished."""
        return self._task.cancel()

    @property
    def task(self) -> asyncio.Task[Any]:
        return self._task

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    async def wait(self) -> None:
        """Wait for the task to finish, swallowing only its own cancellation."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "done" if self.done else "pending"
        return f"TaskHandle({self.name!r}, {state})"


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("background_task_failed", task=task.get_name(), error=str(exc))


def spawn(coro: Awaitable[Any], *, name: str) -> TaskHandle:
    """Schedule ``coro`` on the running loop and return its handle."""
    task = asyncio.ensure_future(coro)
    task.set_name(name)
    task.add_done_callback(_log_task_failure)
    return TaskHandle(task, name)


def call_later(
    delay: float, factory: Callable[[], Awaitable[Any]], *, name: str
) -> TaskHandle:
    """Run ``factory()`` once after ``delay`` seconds."""

    async def _runner() -> None:
        await asyncio.sleep(delay)
        await factory()

    return spawn(_runner(), name=name)


def call_every(
    interval: float,
    factory: Callable[[], Awaitable[Any]],
    *,
    name: str,
    immediate: bool = False,
) -> TaskHandle:
    """Run ``factory()`` every ``interval`` seconds until cancelled.

    A failing tick is logged and does not stop the loop.
    """

    async def _runner() -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            try:
                await factory()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("periodic_task_failed", task=name, error=str(exc))
            await asyncio.sleep(interval)

    return spawn(_runner(), name=name)


class TaskScope:
    """Owns a set of handles and cancels them together."""

    def __init__(self) -> None:
        self._handles: list[TaskHandle] = []

    def track(self, handle: TaskHandle) -> TaskHandle:
        self._handles = [h for h in self._handles if not h.done]
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> list[TaskHandle]:
        return [h for h in self._handles if not h.done]

    async def cancel_all(self) -> None:
        """Cancel every pending handle and wait for them to unwind."""
        handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()
        # failures were already logged by the done callback
        await asyncio.gather(*(h.task for h in handles), return_exceptions=True)
