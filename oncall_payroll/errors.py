from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class MalformedShiftError(ApiError):
    def __init__(self, *, index: int, record: Any, reason: str):
        super().__init__(
            422,
            "MALFORMED_SHIFT",
            f"Malformed on-call shift at position {index}: {reason}",
        )
        self.index = index
        self.record = record
        self.reason = reason


class InvalidRateError(ApiError):
    def __init__(self, rate: Any):
        super().__init__(422, "INVALID_RATE", f"Hourly rate must be a positive finite number, got {rate!r}")
        self.rate = rate


class InvalidMonthError(ApiError):
    def __init__(self, month: Any):
        super().__init__(422, "INVALID_MONTH", f"Month must be between 1 and 12, got {month!r}")
        self.month = month


class InvalidTimezoneError(ApiError):
    def __init__(self, name: str):
        super().__init__(422, "INVALID_TIMEZONE", f"Unknown time zone {name!r}")
        self.name = name


class ScheduleSelectionError(ApiError):
    def __init__(self, message: str = "Provide either schedule ID or schedule query"):
        super().__init__(422, "SCHEDULE_REQUIRED", message)


class ScheduleNotFoundError(ApiError):
    def __init__(self, message: str):
        super().__init__(404, "SCHEDULE_NOT_FOUND", message)


class AmbiguousScheduleError(ApiError):
    def __init__(self, *, query: str, candidates: list[dict[str, Any]]):
        labels = ", ".join(f"{item.get('summary')} [{item.get('id')}]" for item in candidates)
        super().__init__(
            409,
            "SCHEDULE_AMBIGUOUS",
            f'Found {len(candidates)} schedules matching query "{query}": {labels}',
        )
        self.query = query
        self.candidates = candidates


class NoOnCallsFoundError(ApiError):
    def __init__(self, *, schedule_id: str, year: int, month: int):
        super().__init__(
            404,
            "NO_ONCALLS",
            f"No on-calls found for schedule {schedule_id} for date {year}-{month:02d}",
        )


class PagerDutyError(ApiError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(502, "PAGERDUTY_ERROR", message)
        self.upstream_status_code = status_code


class PagerDutyNotConfiguredError(ApiError):
    def __init__(self) -> None:
        super().__init__(503, "PAGERDUTY_NOT_CONFIGURED", "PagerDuty access token is required")


class ConfigFileError(ApiError):
    def __init__(self, path: str, reason: str):
        super().__init__(500, "CONFIG_INVALID", f"Config file {path} is unreadable: {reason}")
        self.path = path


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
