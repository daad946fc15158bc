"""Resilience data models — frozen Pydantic types for errors, actions, and retries."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.core.config import DEFAULT_RETRYABLE_PATTERNS, RetrySettings

T = TypeVar("T")


# ── Enums ────────────────────────────────────────────────────────────


class ErrorKind(str, Enum):
    """Closed taxonomy every failure is mapped onto."""

    VALIDATION = "validation"
    NETWORK = "network"
    AUTH = "auth"
    DATABASE = "database"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


# ── AppError ─────────────────────────────────────────────────────────


class AppError(BaseModel):
    """User-facing record of one failure.

    Built once per failure by ``generate_app_error``.  ``details`` holds the
    raw error text only when developer details are enabled.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ErrorKind
    title: str
    message: str
    details: str | None = None
    recoverable: bool
    retryable: bool
    timestamp: datetime
    context: str | None = None

    @model_validator(mode="after")
    def _retryable_only_for_transient_kinds(self) -> "AppError":
        """Reject ``retryable`` outside network and database kinds.

        Only the kind half of the rule is checked here. Whether a database
        error is retryable depends on its raw message mentioning a timeout,
        which this model does not carry; ``is_retryable`` decides that when
        the error is built.
        """
        if self.retryable and self.kind not in (ErrorKind.NETWORK, ErrorKind.DATABASE):
            raise ValueError(f"{self.kind.value} errors are never retryable")
        return self


# ── ErrorAction ──────────────────────────────────────────────────────


class ErrorAction(BaseModel):
    """One recovery option offered next to an error. Never persisted."""

    model_config = ConfigDict(frozen=True)

    label: str
    invoke: Callable[[], Any]
    is_primary: bool = False

    async def run(self) -> None:
        """Invoke the callback, awaiting it when it returns an awaitable."""
        result = self.invoke()
        if inspect.isawaitable(result):
            await result


# ── Retry ────────────────────────────────────────────────────────────


class RetryPolicy(BaseModel):
    """Exponential backoff policy. Delays are in seconds."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    retryable_message_patterns: tuple[str, ...] = tuple(DEFAULT_RETRYABLE_PATTERNS)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(**settings.model_dump())


class RetryOutcome(BaseModel, Generic[T]):
    """Result of running an operation under a ``RetryPolicy``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    succeeded: bool
    value: T | None = None
    error: AppError | None = None
    attempts_made: int = Field(ge=1)
    elapsed_ms: float


OperationFactory = Callable[[], Awaitable[T]]
