"""Resilience — error taxonomy, user messages, recovery actions, and retries."""

from src.resilience.actions import RecoveryCallbacks, generate_actions
from src.resilience.classify import (
    ErrorSource,
    NestedProviderError,
    OpaqueError,
    StructuredError,
    TextError,
    classify,
    extract_message,
    to_error_source,
)
from src.resilience.messages import generate_app_error
from src.resilience.models import (
    AppError,
    ErrorAction,
    ErrorKind,
    RetryOutcome,
    RetryPolicy,
)
from src.resilience.retry import RetryExecutor, is_retryable_error
from src.resilience.tracker import ErrorTracker

__all__ = [
    "AppError",
    "ErrorAction",
    "ErrorKind",
    "ErrorSource",
    "ErrorTracker",
    "NestedProviderError",
    "OpaqueError",
    "RecoveryCallbacks",
    "RetryExecutor",
    "RetryOutcome",
    "RetryPolicy",
    "StructuredError",
    "TextError",
    "classify",
    "extract_message",
    "generate_actions",
    "generate_app_error",
    "is_retryable_error",
    "to_error_source",
]
