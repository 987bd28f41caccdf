from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class OnCallCalculateRequest(BaseModel):
    year: int = Field(ge=1970, le=9998)
    month: int
    rate: float
    timezone: str | None = None
    shifts: list[dict[str, Any]] = Field(default_factory=list)


class OnCallShiftRead(BaseModel):
    start: datetime
    end: datetime
    hours_in_shift: int
    days_in_shift: int
    shift_bill: float

    model_config = ConfigDict(from_attributes=True)


class OnCallAggregateResponse(BaseModel):
    year: int
    month: int
    rate: float
    timezone: str
    total_days: int
    total_hours: int
    bill: float
    shifts: list[OnCallShiftRead]


class ReportPeriod(BaseModel):
    year: int
    month: int


class ReportUser(BaseModel):
    id: str
    name: str


class ReportSchedule(BaseModel):
    id: str
    name: str
    html_url: str | None = None


class OnCallPayrollReport(BaseModel):
    period: ReportPeriod
    user: ReportUser
    schedule: ReportSchedule
    rate: float
    timezone: str
    total_days: int
    total_hours: int
    bill: float
    shifts: list[OnCallShiftRead] = Field(default_factory=list)
