"""Error classification — map any caught error onto the ``ErrorKind`` taxonomy.

Errors reach the core in several loose shapes (exceptions, provider error
objects, plain strings, ``{"error": {"message": ...}}`` payloads).  They are
first normalised into one of a closed set of ``ErrorSource`` variants, then the
message is matched against an ordered table of pattern groups.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.resilience.models import ErrorKind

# ── Error sources ────────────────────────────────────────────────────


class TextError(BaseModel):
    """A bare string message."""

    model_config = ConfigDict(frozen=True)

    message: str


class StructuredError(BaseModel):
    """An object or mapping carrying ``message`` and optionally ``code``."""

    model_config = ConfigDict(frozen=True)

    message: str
    code: str | None = None


class NestedProviderError(BaseModel):
    """A provider payload wrapping the real error: ``{"error": {"message"}}``."""

    model_config = ConfigDict(frozen=True)

    message: str
    provider_code: str | None = None


class OpaqueError(BaseModel):
    """Anything else; classified on its ``str()`` only."""

    model_config = ConfigDict(frozen=True)

    message: str
    type_name: str


ErrorSource = TextError | StructuredError | NestedProviderError | OpaqueError


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def _get(obj: Any, key: str) -> Any:
    try:
        if isinstance(obj, Mapping):
            return obj.get(key)
        return getattr(obj, key, None)
    except Exception:
        # hostile __getattr__ / __getitem__; treat as absent
        return None


def _code_of(obj: Any) -> str | None:
    code = _get(obj, "code")
    return None if code is None else _safe_str(code)


def to_error_source(error: Any) -> ErrorSource:
    """Normalise ``error`` into exactly one ``ErrorSource`` variant."""
    if isinstance(error, str):
        return TextError(message=error)

    message = _get(error, "message")
    if isinstance(message, str) and message:
        return StructuredError(message=message, code=_code_of(error))

    nested = _get(error, "error")
    if nested is not None and not isinstance(error, BaseException):
        nested_message = _get(nested, "message")
        if isinstance(nested_message, str) and nested_message:
            return NestedProviderError(message=nested_message, provider_code=_code_of(nested))

    if isinstance(error, BaseException):
        text = _safe_str(error) or type(error).__name__
        return StructuredError(message=text, code=_code_of(error))

    return OpaqueError(message=_safe_str(error), type_name=type(error).__name__)


def extract_message(error: Any) -> str:
    """Human-readable message for any error shape. Never raises."""
    return to_error_source(error).message


# ── Pattern table ────────────────────────────────────────────────────

# Order matters: the first group with a matching pattern wins.
_PATTERNS: tuple[tuple[ErrorKind, tuple[re.Pattern[str], ...]], ...] = (
    (
        ErrorKind.VALIDATION,
        (
            re.compile(r"가격은.*0.*보다.*큰", re.IGNORECASE),
            re.compile(r"결제일은.*1.*31.*사이", re.IGNORECASE),
            re.compile(r"필수.*정보.*누락", re.IGNORECASE),
            re.compile(r"올바른.*입력", re.IGNORECASE),
            re.compile(r"유효하지.*않", re.IGNORECASE),
        ),
    ),
    (
        ErrorKind.NETWORK,
        (
            re.compile(r"network", re.IGNORECASE),
            re.compile(r"fetch.*failed", re.IGNORECASE),
            re.compile(r"failed to fetch", re.IGNORECASE),
            re.compile(r"connection.*failed", re.IGNORECASE),
            re.compile(r"timeout", re.IGNORECASE),
            re.compile(r"offline", re.IGNORECASE),
        ),
    ),
    (
        ErrorKind.AUTH,
        (
            re.compile(r"unauthorized", re.IGNORECASE),
            re.compile(r"401"),
            re.compile(r"invalid.*token", re.IGNORECASE),
            re.compile(r"session.*expired", re.IGNORECASE),
            re.compile(r"로그인.*필요", re.IGNORECASE),
        ),
    ),
    (
        ErrorKind.DATABASE,
        (
            re.compile(r"duplicate.*key", re.IGNORECASE),
            re.compile(r"foreign.*key", re.IGNORECASE),
            re.compile(r"check.*constraint", re.IGNORECASE),
            re.compile(r"not-null.*constraint", re.IGNORECASE),
            re.compile(r"column.*does.*not.*exist", re.IGNORECASE),
            re.compile(r"PGRST"),
        ),
    ),
    (
        ErrorKind.PERMISSION,
        (
            re.compile(r"forbidden", re.IGNORECASE),
            re.compile(r"403"),
            re.compile(r"권한.*없", re.IGNORECASE),
            re.compile(r"접근.*거부", re.IGNORECASE),
        ),
    ),
)


def classify_message(message: str) -> ErrorKind:
    for kind, patterns in _PATTERNS:
        if any(p.search(message) for p in patterns):
            return kind
    return ErrorKind.UNKNOWN


def classify(error: Any) -> ErrorKind:
    """Map ``error`` to exactly one ``ErrorKind``. Pure; never raises."""
    return classify_message(extract_message(error))
