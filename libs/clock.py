# libs/clock.py
"""Единственный источник «сегодня» для всего конвейера.

Все стадии получают часы через контекст, а не зовут `datetime.now()`
напрямую – так нормализатор остаётся чистой функцией, а тесты – детерминированными.
"""
from __future__ import annotations

from datetime import date, datetime, tzinfo

from dateutil import tz

__all__ = ["Clock", "FixedClock"]


class Clock:
    """Часы в фиксированной таймзоне (по умолчанию America/Sao_Paulo)."""

    def __init__(self, timezone: str = "America/Sao_Paulo") -> None:
        zone = tz.gettz(timezone)
        if zone is None:
            raise ValueError(f"Unknown timezone: {timezone}")
        self.tz: tzinfo = zone

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def today_iso(self) -> str:
        return self.today().isoformat()


class FixedClock(Clock):
    """Замороженные часы – для тестов и повторной обработки."""

    def __init__(self, at: datetime, timezone: str = "America/Sao_Paulo") -> None:
        super().__init__(timezone)
        self._at = at if at.tzinfo else at.replace(tzinfo=self.tz)

    def now(self) -> datetime:
        return self._at.astimezone(self.tz)
