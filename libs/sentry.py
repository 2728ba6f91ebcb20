# libs/sentry.py
"""Thin wrapper around *sentry-sdk* used by the gateway and the bot worker.

*   **Lazy init** – Sentry initialises **once** via :func:`init_sentry`.
    Без DSN оба хелпера молча ничего не делают (локальный запуск, тесты).
*   :func:`sentry_capture` records an exception with optional *extras*
    (message id, kind, sender) in a single line.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Optional

import sentry_sdk

from libs.config import get_settings

__all__ = ["init_sentry", "sentry_capture"]


@lru_cache(maxsize=1)
def init_sentry(*, release: str | None = None, env: str | None = None) -> None:
    """Initialise Sentry SDK once per process (no-op without DSN)."""
    settings = get_settings()
    dsn = os.getenv("SENTRY_DSN") or settings.sentry_dsn
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        release=release,
        environment=env or settings.env,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.2")),
        max_value_length=4_096,  # тексты сообщений бывают длинными
    )


def sentry_capture(exc: BaseException, *, extras: Optional[dict[str, Any]] = None) -> None:
    """Capture *exc* to Sentry if the SDK is initialised."""
    if not sentry_sdk.get_client().is_active():
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extras or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exc)
