from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from math import isfinite
from numbers import Real
from typing import Any

from oncall_payroll.errors import InvalidRateError, MalformedShiftError
from oncall_payroll.services.oncall_calendar import (
    MonthWindow,
    add_days,
    copy_time_of_day,
    is_same_day,
    month_window,
    to_local,
)

logger = logging.getLogger("oncall_payroll.oncall_calc")


@dataclass(frozen=True)
class ParsedShift:
    index: int
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ClippedShift:
    start: datetime
    end: datetime
    hours_in_shift: int
    days_in_shift: int
    shift_bill: float


@dataclass(frozen=True)
class AggregateResult:
    total_days: int
    total_hours: int
    bill: float
    shifts: tuple[ClippedShift, ...]


def validate_rate(rate: Any) -> float:
    if isinstance(rate, bool) or not isinstance(rate, Real):
        raise InvalidRateError(rate)
    value = float(rate)
    if not isfinite(value) or value <= 0:
        raise InvalidRateError(rate)
    return value


def parse_instant(value: Any, tz: tzinfo) -> datetime:
    if isinstance(value, datetime):
        return to_local(value, tz)
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO-8601 string, got {type(value).__name__}")
    return to_local(datetime.fromisoformat(value.strip()), tz)


def parse_shift(record: Any, index: int, tz: tzinfo) -> ParsedShift:
    if not isinstance(record, Mapping):
        raise MalformedShiftError(index=index, record=record, reason="expected an object with start and end")

    instants: dict[str, datetime] = {}
    for field in ("start", "end"):
        if field not in record:
            raise MalformedShiftError(index=index, record=record, reason=f"missing {field}")
        try:
            instants[field] = parse_instant(record[field], tz)
        except (TypeError, ValueError) as exc:
            raise MalformedShiftError(
                index=index,
                record=record,
                reason=f"unparseable {field} {record[field]!r}",
            ) from exc

    return ParsedShift(index=index, start=instants["start"], end=instants["end"])


def is_valid_shift(shift: ParsedShift, window: MonthWindow) -> bool:
    start, end = shift.start, shift.end
    if start > end:
        return False
    # A shift ending on the 1st belongs to the previous month's trailing edge.
    if is_same_day(end, window.first_instant):
        return False
    if start < window.first_instant and end < window.first_instant:
        return False
    if start > window.last_instant:
        return False
    return True


def clip_shift(shift: ParsedShift, window: MonthWindow) -> tuple[datetime, datetime]:
    """Clamp a valid shift to the month, keeping the original end's time of day.

    A start before the month moves to the 1st at the end's time of day. An end
    after the month moves to the day after the last day, also at the end's
    time of day, so a shift spilling into the next month is billed up to its
    hand-off time rather than midnight.
    """
    start, end = shift.start, shift.end
    if start < window.first_instant:
        start = copy_time_of_day(window.first_instant, shift.end)
    if end > window.last_instant:
        end = add_days(copy_time_of_day(window.last_instant, shift.end), 1)
    return start, end


def hours_between(start: datetime, end: datetime) -> int:
    # Elapsed time on the absolute timeline: spring-forward loses an hour.
    elapsed = end.astimezone(timezone.utc) - start.astimezone(timezone.utc)
    return int(elapsed.total_seconds() // 3600)


def days_between(start: datetime, end: datetime) -> int:
    calendar_days = (to_local(end, start.tzinfo).date() - start.date()).days
    return max(1, calendar_days)


def aggregate_shifts(
    raw_shifts: Iterable[Any],
    *,
    year: int,
    month: int,
    rate: Any,
    tz: tzinfo,
) -> AggregateResult:
    hourly_rate = validate_rate(rate)
    window = month_window(year, month, tz)
    parsed_shifts = [parse_shift(record, index, tz) for index, record in enumerate(raw_shifts)]

    shifts: list[ClippedShift] = []
    total_days = 0
    total_hours = 0
    bill = 0.0
    for shift in parsed_shifts:
        if not is_valid_shift(shift, window):
            logger.debug(
                "oncall_shift_skipped",
                extra={
                    "index": shift.index,
                    "start": shift.start.isoformat(),
                    "end": shift.end.isoformat(),
                },
            )
            continue

        start, end = clip_shift(shift, window)
        hours_in_shift = hours_between(start, end)
        days_in_shift = days_between(start, end)
        shift_bill = hours_in_shift * hourly_rate

        shifts.append(
            ClippedShift(
                start=start,
                end=end,
                hours_in_shift=hours_in_shift,
                days_in_shift=days_in_shift,
                shift_bill=shift_bill,
            )
        )
        total_hours += hours_in_shift
        total_days += days_in_shift
        bill += shift_bill

    logger.info(
        "oncall_payroll_aggregated",
        extra={
            "year": year,
            "month": month,
            "input_shifts": len(parsed_shifts),
            "billed_shifts": len(shifts),
            "total_days": total_days,
            "total_hours": total_hours,
            "bill": bill,
        },
    )
    return AggregateResult(
        total_days=total_days,
        total_hours=total_hours,
        bill=bill,
        shifts=tuple(shifts),
    )
