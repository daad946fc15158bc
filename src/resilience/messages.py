"""User-facing error messages — turn a raw failure into an ``AppError``."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any

from src.resilience.classify import classify_message, extract_message
from src.resilience.models import AppError, ErrorKind

# Default title/message per kind.
_DEFAULTS: dict[ErrorKind, tuple[str, str]] = {
    ErrorKind.VALIDATION: ("입력 오류", "입력하신 정보를 다시 확인해주세요."),
    ErrorKind.NETWORK: ("연결 오류", "네트워크 연결을 확인하고 다시 시도해주세요."),
    ErrorKind.AUTH: ("인증 오류", "로그인이 필요합니다. 다시 로그인해주세요."),
    ErrorKind.DATABASE: ("데이터 오류", "데이터 처리 중 오류가 발생했습니다."),
    ErrorKind.PERMISSION: ("권한 오류", "이 작업을 수행할 권한이 없습니다."),
    ErrorKind.UNKNOWN: ("오류 발생", "예상치 못한 오류가 발생했습니다."),
}

# Finer-grained overrides, checked in order; they replace the message, never the kind.
_SPECIFIC: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"duplicate key", re.IGNORECASE), "이미 존재하는 항목입니다. 다른 이름을 사용해주세요."),
    (re.compile(r"foreign key", re.IGNORECASE), "사용자 정보가 올바르지 않습니다. 다시 로그인해주세요."),
    (re.compile(r"not-null constraint", re.IGNORECASE), "필수 정보가 누락되었습니다. 모든 항목을 입력해주세요."),
    (re.compile(r"check constraint.*price", re.IGNORECASE), "가격은 0보다 큰 값을 입력해주세요."),
    (re.compile(r"check constraint.*payment_date", re.IGNORECASE), "결제일은 1일부터 31일 사이로 입력해주세요."),
    (re.compile(r"invalid input syntax", re.IGNORECASE), "입력 형식이 올바르지 않습니다. 다시 확인해주세요."),
    (re.compile(r"network.*failed", re.IGNORECASE), "인터넷 연결을 확인하고 다시 시도해주세요."),
    (re.compile(r"timeout", re.IGNORECASE), "요청 시간이 초과되었습니다. 잠시 후 다시 시도해주세요."),
)

_RECOVERABLE = frozenset({ErrorKind.VALIDATION, ErrorKind.NETWORK, ErrorKind.AUTH})


def specific_message(raw_message: str) -> str | None:
    """Return the override for ``raw_message``, or None."""
    for pattern, text in _SPECIFIC:
        if pattern.search(raw_message):
            return text
    return None


def is_recoverable(kind: ErrorKind) -> bool:
    return kind in _RECOVERABLE


def is_retryable(kind: ErrorKind, raw_message: str) -> bool:
    if kind == ErrorKind.NETWORK:
        return True
    return kind == ErrorKind.DATABASE and "timeout" in raw_message.lower()


def _developer_details(error: Any, raw_message: str) -> str:
    type_name = type(error).__name__
    if isinstance(error, str):
        return raw_message
    return f"{type_name}: {raw_message}"


def generate_app_error(
    error: Any,
    context: str | None = None,
    *,
    include_details: bool = False,
) -> AppError:
    """Classify ``error`` and build the ``AppError`` shown to the user.

    Args:
        error:           Anything caught or returned by a failing call.
        context:         Short tag for where it happened (``"fetch_subscriptions"``).
        include_details: Attach the raw error text as developer details.
                         Leave off in production builds.
    """
    raw_message = extract_message(error)
    kind = classify_message(raw_message)
    title, default_message = _DEFAULTS[kind]

    return AppError(
        id=f"error_{uuid.uuid4().hex}",
        kind=kind,
        title=title,
        message=specific_message(raw_message) or default_message,
        details=_developer_details(error, raw_message) if include_details else None,
        recoverable=is_recoverable(kind),
        retryable=is_retryable(kind, raw_message),
        timestamp=datetime.now(timezone.utc),
        context=context,
    )
