from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Any

from oncall_payroll.errors import (
    AmbiguousScheduleError,
    NoOnCallsFoundError,
    ScheduleNotFoundError,
    ScheduleSelectionError,
)
from oncall_payroll.schemas import (
    OnCallPayrollReport,
    OnCallShiftRead,
    ReportPeriod,
    ReportSchedule,
    ReportUser,
)
from oncall_payroll.services.oncall_calc import AggregateResult, aggregate_shifts, validate_rate
from oncall_payroll.services.oncall_calendar import fetch_window, timezone_name
from oncall_payroll.services.pager_duty import PagerDutyClient

logger = logging.getLogger("oncall_payroll.oncall_report")

SEPARATOR = "------- ------- -------"


def human_readable_datetime(value: datetime, with_time: bool = True) -> str:
    pattern = "%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y"
    return value.strftime(pattern)


def _count_label(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def build_report(
    aggregate: AggregateResult,
    *,
    year: int,
    month: int,
    user: dict[str, Any],
    schedule: dict[str, Any],
    rate: float,
    tz: tzinfo,
) -> OnCallPayrollReport:
    return OnCallPayrollReport(
        period=ReportPeriod(year=year, month=month),
        user=ReportUser(
            id=str(user.get("id") or ""),
            name=str(user.get("summary") or user.get("name") or ""),
        ),
        schedule=ReportSchedule(
            id=str(schedule.get("id") or ""),
            name=str(schedule.get("summary") or schedule.get("name") or ""),
            html_url=schedule.get("html_url"),
        ),
        rate=rate,
        timezone=timezone_name(tz),
        total_days=aggregate.total_days,
        total_hours=aggregate.total_hours,
        bill=aggregate.bill,
        shifts=[OnCallShiftRead.model_validate(shift) for shift in aggregate.shifts],
    )


def render_text_report(report: OnCallPayrollReport) -> str:
    lines = [
        f"Report for {report.period.year}-{report.period.month:02d}",
        f"      User: {report.user.name} [id: {report.user.id}]",
        f"  Schedule: {report.schedule.name} [id: {report.schedule.id}]",
    ]
    if report.schedule.html_url:
        lines.append(f"            {report.schedule.html_url}")
    lines.extend(
        [
            SEPARATOR,
            f"     Shifts: {len(report.shifts)}",
            f"       Days: {report.total_days}",
            f"      Hours: {report.total_hours}",
            SEPARATOR,
            f"       Rate: {report.rate:.2f}",
            f"  Total sum: {report.bill:.2f}",
            SEPARATOR,
            "",
        ]
    )
    for shift in report.shifts:
        date_range = f"{human_readable_datetime(shift.start)} - {human_readable_datetime(shift.end)}"
        days_label = _count_label(shift.days_in_shift, "day")
        hours_label = _count_label(shift.hours_in_shift, "hour")
        lines.append(f"{date_range} ({days_label}, {hours_label}) - {shift.shift_bill:.2f}")
    return "\n".join(lines) + "\n"


def render_json_report(report: OnCallPayrollReport) -> str:
    return report.model_dump_json()


def resolve_schedule(
    client: PagerDutyClient,
    *,
    schedule_id: str | None = None,
    schedule_query: str | None = None,
) -> dict[str, Any]:
    normalized_id = (schedule_id or "").strip()
    normalized_query = (schedule_query or "").strip()
    if normalized_id and normalized_query:
        raise ScheduleSelectionError("Provide either schedule ID or schedule query, not both")
    if normalized_id:
        return client.get_schedule(normalized_id)
    if not normalized_query:
        raise ScheduleSelectionError()

    schedules = client.find_schedules(normalized_query)
    if not schedules:
        raise ScheduleNotFoundError(f'No schedules found for query "{normalized_query}"')
    if len(schedules) == 1:
        return schedules[0]

    exact_matches = [
        item
        for item in schedules
        if str(item.get("summary") or item.get("name") or "").strip().lower() == normalized_query.lower()
    ]
    if len(exact_matches) == 1:
        return exact_matches[0]
    raise AmbiguousScheduleError(query=normalized_query, candidates=schedules)


def generate_oncall_report(
    client: PagerDutyClient,
    *,
    year: int,
    month: int,
    rate: Any,
    tz: tzinfo,
    schedule_id: str | None = None,
    schedule_query: str | None = None,
) -> OnCallPayrollReport:
    hourly_rate = validate_rate(rate)
    window = fetch_window(year, month, tz)

    user = client.get_current_user()
    schedule = resolve_schedule(client, schedule_id=schedule_id, schedule_query=schedule_query)
    resolved_schedule_id = str(schedule.get("id") or "")

    oncalls = client.list_oncalls(
        user_id=str(user.get("id") or ""),
        since=window.since,
        until=window.until,
        schedule_id=resolved_schedule_id or None,
    )
    if not oncalls:
        raise NoOnCallsFoundError(schedule_id=resolved_schedule_id, year=year, month=month)

    aggregate = aggregate_shifts(oncalls, year=year, month=month, rate=hourly_rate, tz=tz)
    report = build_report(
        aggregate,
        year=year,
        month=month,
        user=user,
        schedule=schedule,
        rate=hourly_rate,
        tz=tz,
    )
    logger.info(
        "oncall_report_generated",
        extra={
            "year": year,
            "month": month,
            "user_id": report.user.id,
            "schedule_id": report.schedule.id,
            "fetched_oncalls": len(oncalls),
            "billed_shifts": len(report.shifts),
        },
    )
    return report
