"""Recovery actions — what the user can do about an ``AppError``."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from src.resilience.models import AppError, ErrorAction, ErrorKind

RETRY_LABEL = "다시 시도"
LOGIN_LABEL = "다시 로그인"
REFRESH_LABEL = "새로고침"
GO_BACK_LABEL = "이전으로"
ACKNOWLEDGE_LABEL = "확인"


class RecoveryCallbacks(BaseModel):
    """Callbacks the caller can offer; any may be missing."""

    model_config = ConfigDict(frozen=True)

    on_retry: Callable[[], Any] | None = None
    on_login: Callable[[], Any] | None = None
    on_refresh: Callable[[], Any] | None = None
    on_go_back: Callable[[], Any] | None = None


def _acknowledge() -> None:
    return None


def generate_actions(
    error: AppError, callbacks: RecoveryCallbacks | None = None
) -> list[ErrorAction]:
    """Build the ordered action list for ``error``.

    Order: retry, re-login, refresh, go back.  Never empty: with nothing
    applicable a single no-op acknowledge action is returned.
    """
    callbacks = callbacks or RecoveryCallbacks()
    actions: list[ErrorAction] = []

    if error.retryable and callbacks.on_retry is not None:
        actions.append(ErrorAction(label=RETRY_LABEL, invoke=callbacks.on_retry, is_primary=True))

    if error.kind == ErrorKind.AUTH and callbacks.on_login is not None:
        actions.append(ErrorAction(label=LOGIN_LABEL, invoke=callbacks.on_login, is_primary=True))

    if error.kind == ErrorKind.NETWORK and callbacks.on_refresh is not None:
        actions.append(ErrorAction(label=REFRESH_LABEL, invoke=callbacks.on_refresh))

    if callbacks.on_go_back is not None:
        actions.append(ErrorAction(label=GO_BACK_LABEL, invoke=callbacks.on_go_back))

    if not actions:
        actions.append(ErrorAction(label=ACKNOWLEDGE_LABEL, invoke=_acknowledge))

    return actions
