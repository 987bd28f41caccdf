from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from oncall_payroll.errors import PagerDutyError, PagerDutyNotConfiguredError
from oncall_payroll.settings import get_pagerduty_api_url, get_settings

logger = logging.getLogger("oncall_payroll.pager_duty")

PAGERDUTY_ACCEPT = "application/vnd.pagerduty+json;version=2"
DEFAULT_API_URL = "https://api.pagerduty.com"
DEFAULT_PAGE_LIMIT = 50

QueryValue = str | int
QueryParams = list[tuple[str, QueryValue]]


def format_pagerduty_error(error: Any, context: list[str] | None = None) -> str:
    if not isinstance(error, dict):
        error = {"message": str(error)}
    reasons = ", ".join(str(item) for item in (error.get("errors") or []))
    reasons_message = f" [ {reasons} ]" if reasons else ""
    context_message = f" (args: [ {', '.join(context)} ])" if context else ""
    return f"[PD:{error.get('code')}]{reasons_message} {error.get('message')}{context_message}"


def _to_query_timestamp(value: datetime | str) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class PagerDutyClient:
    """Thin read-only client for the PagerDuty REST API v2."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = DEFAULT_API_URL,
        timeout_seconds: int = 15,
        page_limit: int = DEFAULT_PAGE_LIMIT,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.page_limit = page_limit

    def _build_url(self, endpoint: str, query: QueryParams | None) -> str:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        if query:
            url = f"{url}?{urllib_parse.urlencode(query)}"
        return url

    def _get_json(
        self,
        endpoint: str,
        query: QueryParams | None = None,
        *,
        operation: str,
        context: list[str] | None = None,
    ) -> dict[str, Any]:
        request = urllib_request.Request(
            url=self._build_url(endpoint, query),
            method="GET",
            headers={
                "Accept": PAGERDUTY_ACCEPT,
                "Content-Type": "application/json",
                "Authorization": f"Token token={self.token}",
            },
        )

        start = time.perf_counter()
        status_code: int | None = None
        try:
            with urllib_request.urlopen(request, timeout=max(1, self.timeout_seconds)) as response:
                status_code = int(getattr(response, "status", 200) or 200)
                body = response.read().decode("utf-8", errors="replace")
        except urllib_error.HTTPError as exc:
            status_code = int(exc.code)
            error_body = exc.read().decode("utf-8", errors="ignore")
            try:
                payload = json.loads(error_body) if error_body else {}
            except ValueError:
                payload = {}
            if isinstance(payload, dict) and payload.get("error"):
                raise PagerDutyError(
                    format_pagerduty_error(payload["error"], context),
                    status_code=status_code,
                ) from exc
            raise PagerDutyError(f"{operation}: [{exc.code}] {exc.reason}", status_code=status_code) from exc
        except OSError as exc:
            reason = getattr(exc, "reason", None) or exc
            raise PagerDutyError(f"{operation}: {reason}") from exc
        finally:
            logger.info(
                "pagerduty_request",
                extra={
                    "endpoint": endpoint,
                    "status_code": status_code,
                    "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise PagerDutyError(f"{operation}: invalid JSON response", status_code=status_code) from exc
        if not isinstance(data, dict):
            raise PagerDutyError(f"{operation}: unexpected response", status_code=status_code)
        if data.get("error"):
            raise PagerDutyError(format_pagerduty_error(data["error"], context), status_code=status_code)
        return data

    @staticmethod
    def _pick(data: dict[str, Any], key: str, operation: str) -> Any:
        if key not in data:
            raise PagerDutyError(f"{operation}: response has no '{key}'")
        return data[key]

    def get_current_user(self) -> dict[str, Any]:
        operation = "Error fetching user"
        data = self._get_json("/users/me", operation=operation)
        return self._pick(data, "user", operation)

    def get_schedule(self, schedule_id: str) -> dict[str, Any]:
        operation = "Error fetching schedule"
        data = self._get_json(
            f"/schedules/{urllib_parse.quote(schedule_id, safe='')}",
            operation=operation,
            context=[f"scheduleId: {schedule_id}"],
        )
        return self._pick(data, "schedule", operation)

    def find_schedules(self, query: str) -> list[dict[str, Any]]:
        operation = "Error fetching schedules"
        data = self._get_json(
            "/schedules",
            [("query", query)],
            operation=operation,
            context=[f"query: {query}"],
        )
        return list(self._pick(data, "schedules", operation) or [])

    def list_oncalls(
        self,
        *,
        user_id: str,
        since: datetime | str,
        until: datetime | str,
        schedule_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        operation = "Error fetching on-calls"
        since_value = _to_query_timestamp(since)
        until_value = _to_query_timestamp(until)
        query: QueryParams = [
            ("user_ids[]", user_id),
            ("since", since_value),
            ("until", until_value),
        ]
        if schedule_id:
            query.append(("schedule_ids[]", schedule_id))
        query.append(("limit", limit or self.page_limit))

        data = self._get_json(
            "/oncalls",
            query,
            operation=operation,
            context=[
                f"user: {user_id}",
                f"since: {since_value}",
                f"until: {until_value}",
                f"schedule: {schedule_id}",
            ],
        )
        return list(self._pick(data, "oncalls", operation) or [])


def get_pager_duty_client() -> PagerDutyClient:
    settings = get_settings()
    token = (settings.pagerduty_token or "").strip()
    if not token:
        raise PagerDutyNotConfiguredError()
    return PagerDutyClient(
        token=token,
        base_url=get_pagerduty_api_url(),
        timeout_seconds=settings.pagerduty_timeout_seconds,
        page_limit=settings.pagerduty_page_limit,
    )
