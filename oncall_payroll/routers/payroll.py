from fastapi import APIRouter, Depends, Query, Response

from oncall_payroll.schemas import OnCallAggregateResponse, OnCallCalculateRequest, OnCallPayrollReport, OnCallShiftRead
from oncall_payroll.services.exports import build_oncall_payroll_xlsx_bytes
from oncall_payroll.services.oncall_calc import aggregate_shifts
from oncall_payroll.services.oncall_calendar import (
    Clock,
    SystemClock,
    current_period,
    resolve_timezone,
    timezone_name,
)
from oncall_payroll.services.oncall_report import generate_oncall_report
from oncall_payroll.services.pager_duty import PagerDutyClient, get_pager_duty_client
from oncall_payroll.settings import get_settings

router = APIRouter(tags=["payroll"])
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_clock() -> Clock:
    return SystemClock(resolve_timezone(get_settings().payroll_timezone))


def _build_report(
    *,
    client: PagerDutyClient,
    clock: Clock,
    year: int | None,
    month: int | None,
    rate: float | None,
    schedule_id: str | None,
    schedule_query: str | None,
    timezone: str | None,
) -> OnCallPayrollReport:
    settings = get_settings()
    tz = resolve_timezone(timezone if timezone is not None else settings.payroll_timezone)
    current_year, current_month = current_period(clock)
    if not schedule_id and not schedule_query:
        schedule_id = settings.default_schedule_id

    return generate_oncall_report(
        client,
        year=year if year is not None else current_year,
        month=month if month is not None else current_month,
        rate=rate if rate is not None else settings.default_hourly_rate,
        tz=tz,
        schedule_id=schedule_id,
        schedule_query=schedule_query,
    )


@router.post("/api/payroll/oncall/calculate", response_model=OnCallAggregateResponse)
def calculate_oncall_payroll(payload: OnCallCalculateRequest) -> OnCallAggregateResponse:
    tz = resolve_timezone(payload.timezone if payload.timezone is not None else get_settings().payroll_timezone)
    result = aggregate_shifts(
        payload.shifts,
        year=payload.year,
        month=payload.month,
        rate=payload.rate,
        tz=tz,
    )
    return OnCallAggregateResponse(
        year=payload.year,
        month=payload.month,
        rate=payload.rate,
        timezone=timezone_name(tz),
        total_days=result.total_days,
        total_hours=result.total_hours,
        bill=result.bill,
        shifts=[OnCallShiftRead.model_validate(shift) for shift in result.shifts],
    )


@router.get("/api/payroll/oncall", response_model=OnCallPayrollReport)
def get_oncall_payroll_report(
    year: int | None = Query(default=None, ge=1970, le=9998),
    month: int | None = Query(default=None, ge=1, le=12),
    rate: float | None = Query(default=None),
    schedule_id: str | None = Query(default=None),
    schedule_query: str | None = Query(default=None),
    timezone: str | None = Query(default=None),
    client: PagerDutyClient = Depends(get_pager_duty_client),
    clock: Clock = Depends(get_clock),
) -> OnCallPayrollReport:
    return _build_report(
        client=client,
        clock=clock,
        year=year,
        month=month,
        rate=rate,
        schedule_id=schedule_id,
        schedule_query=schedule_query,
        timezone=timezone,
    )


@router.get("/api/payroll/oncall.xlsx")
def export_oncall_payroll_xlsx(
    year: int | None = Query(default=None, ge=1970, le=9998),
    month: int | None = Query(default=None, ge=1, le=12),
    rate: float | None = Query(default=None),
    schedule_id: str | None = Query(default=None),
    schedule_query: str | None = Query(default=None),
    timezone: str | None = Query(default=None),
    client: PagerDutyClient = Depends(get_pager_duty_client),
    clock: Clock = Depends(get_clock),
) -> Response:
    report = _build_report(
        client=client,
        clock=clock,
        year=year,
        month=month,
        rate=rate,
        schedule_id=schedule_id,
        schedule_query=schedule_query,
        timezone=timezone,
    )
    payload = build_oncall_payroll_xlsx_bytes(report)
    filename = f"oncall-payroll-{report.period.year}-{report.period.month:02d}.xlsx"
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )
