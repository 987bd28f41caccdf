from __future__ import annotations

import os
from calendar import monthrange
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from oncall_payroll.errors import InvalidMonthError, InvalidTimezoneError

LOCALTIME_PATH = Path("/etc/localtime")


@dataclass(frozen=True)
class MonthWindow:
    first_instant: datetime
    last_instant: datetime


@dataclass(frozen=True)
class FetchWindow:
    since: datetime
    until: datetime


class Clock(Protocol):
    def now(self) -> datetime: ...


@dataclass(frozen=True)
class SystemClock:
    tz: tzinfo

    def now(self) -> datetime:
        return datetime.now(self.tz)


@dataclass(frozen=True)
class FixedClock:
    value: datetime

    def now(self) -> datetime:
        return self.value


def current_period(clock: Clock) -> tuple[int, int]:
    now = clock.now()
    return now.year, now.month


@lru_cache
def local_timezone() -> tzinfo:
    env_name = (os.getenv("TZ") or "").strip().lstrip(":")
    if env_name:
        with suppress(ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(env_name)
    if LOCALTIME_PATH.exists():
        with suppress(OSError, ValueError):
            with LOCALTIME_PATH.open("rb") as handle:
                return ZoneInfo.from_file(handle, key="localtime")
    return ZoneInfo("UTC")


def resolve_timezone(name: str | None = None) -> tzinfo:
    """Return the zone named by ``name``; an empty name means system local."""
    raw_name = (name or "").strip()
    if not raw_name:
        return local_timezone()
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(raw_name) from exc


def timezone_name(tz: tzinfo) -> str:
    return getattr(tz, "key", None) or str(tz)


def ensure_month(month: object) -> int:
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidMonthError(month)
    return month


def to_local(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def add_days(value: datetime, days: int) -> datetime:
    # Same-zone arithmetic on aware datetimes is wall-clock, so the time of
    # day survives DST changes.
    return value + timedelta(days=days)


def is_same_day(value: datetime, reference: datetime) -> bool:
    return to_local(value, reference.tzinfo).date() == reference.date()


def copy_time_of_day(target: datetime, reference: datetime) -> datetime:
    """Put ``reference``'s wall-clock time on ``target``'s calendar day.

    The reference is read in ``target``'s zone, so a UTC reference is
    converted before its hour and minute are taken.
    """
    local_reference = to_local(reference, target.tzinfo) if target.tzinfo is not None else reference
    return target.replace(
        hour=local_reference.hour,
        minute=local_reference.minute,
        second=local_reference.second,
        microsecond=local_reference.microsecond,
    )


def month_window(year: int, month: int, tz: tzinfo) -> MonthWindow:
    ensure_month(month)
    days_in_month = monthrange(year, month)[1]
    first_instant = datetime(year, month, 1, tzinfo=tz)
    last_instant = datetime(year, month, days_in_month, 23, 59, 59, 999999, tzinfo=tz)
    return MonthWindow(first_instant=first_instant, last_instant=last_instant)


def fetch_window(year: int, month: int, tz: tzinfo) -> FetchWindow:
    window = month_window(year, month, tz)
    return FetchWindow(
        since=add_days(window.first_instant, -1),
        until=add_days(window.last_instant, 1),
    )
