from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TextIO

from oncall_payroll.config_store import OPTION_FIELDS, ConfigStore
from oncall_payroll.errors import ApiError, PagerDutyNotConfiguredError
from oncall_payroll.logging_utils import setup_json_logging
from oncall_payroll.services.exports import build_oncall_payroll_xlsx_bytes
from oncall_payroll.services.oncall_calendar import Clock, SystemClock, current_period, resolve_timezone
from oncall_payroll.services.oncall_report import generate_oncall_report, render_json_report, render_text_report
from oncall_payroll.services.pager_duty import PagerDutyClient
from oncall_payroll.settings import Settings, get_pagerduty_api_url, get_settings

logger = logging.getLogger("oncall_payroll.cli")

PERIOD_PATTERN = re.compile(
    r"^(?:(?P<month>\d{1,2})(?:[-/](?P<year>\d{4}))?|(?P<iso_year>\d{4})-(?P<iso_month>\d{1,2}))$"
)

ClientFactory = Callable[[str], PagerDutyClient]


def parse_period_argument(value: str) -> tuple[int | None, int]:
    match = PERIOD_PATTERN.match(value.strip())
    if not match:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, use MM, MM-YYYY, MM/YYYY or YYYY-MM")
    month = int(match.group("month") or match.group("iso_month"))
    if not 1 <= month <= 12:
        raise argparse.ArgumentTypeError(f"invalid month {month}, must be between 1 and 12")
    year_raw = match.group("year") or match.group("iso_year")
    return (int(year_raw) if year_raw else None), month


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oncall-payroll",
        description="Generate PagerDuty on-call payroll for the current or chosen month.",
        epilog="[1] Provided value is persisted as default for future runs.",
    )
    parser.add_argument(
        "period",
        nargs="?",
        type=parse_period_argument,
        help="Month to report, as MM, MM-YYYY or YYYY-MM. Defaults to the current month.",
    )
    schedule_group = parser.add_mutually_exclusive_group()
    schedule_group.add_argument("-s", "--schedule", help="Schedule ID [1]")
    schedule_group.add_argument("--schedule-query", help='Schedule name query, e.g. "FE"')
    parser.add_argument("-r", "--rate", type=float, help="Hourly on-call flat rate [1]")
    parser.add_argument("-t", "--token", help="PagerDuty API token, used when PAGERDUTY_TOKEN is unset [1]")
    parser.add_argument("--timezone", help="IANA time zone for month boundaries. Defaults to system local.")
    parser.add_argument("--json", action="store_true", help="Raw JSON output")
    parser.add_argument("--xlsx", type=Path, metavar="PATH", help="Also write the report to an XLSX workbook")
    parser.add_argument(
        "-c",
        "--clear",
        nargs="?",
        const=True,
        default=False,
        choices=sorted(OPTION_FIELDS),
        help="Clear one stored default, or the whole config file when no field is given",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    return parser


def _fail(message: str, *, as_json: bool, stderr: TextIO) -> int:
    if as_json:
        stderr.write(json.dumps({"error": message}) + "\n")
    else:
        stderr.write(f"error: {message}\n")
    return 1


def _remembered(store: ConfigStore, option: str, value: Any) -> Any:
    if value is not None:
        store.update_option(option, value)
        return value
    return store.get_option(option)


def _resolve_token(args: argparse.Namespace, settings: Settings, store: ConfigStore) -> str:
    if args.token:
        store.update_option("token", args.token)
        return args.token
    env_token = (settings.pagerduty_token or "").strip()
    if env_token:
        return env_token
    return str(store.get_option("token") or "")


def _default_client_factory(token: str) -> PagerDutyClient:
    settings = get_settings()
    return PagerDutyClient(
        token=token,
        base_url=get_pagerduty_api_url(),
        timeout_seconds=settings.pagerduty_timeout_seconds,
        page_limit=settings.pagerduty_page_limit,
    )


def _run(
    args: argparse.Namespace,
    *,
    store: ConfigStore,
    clock: Clock | None,
    client_factory: ClientFactory,
    stdout: TextIO,
    stderr: TextIO,
) -> int:
    settings = get_settings()
    if args.clear is True:
        store.clear()
    elif args.clear:
        store.clear_option(args.clear)

    token = _resolve_token(args, settings, store)
    if not token:
        raise PagerDutyNotConfiguredError()

    rate = _remembered(store, "rate", args.rate)
    if rate is None:
        rate = settings.default_hourly_rate
    if rate is None:
        return _fail("Provide your hourly flat rate", as_json=args.json, stderr=stderr)

    schedule_id = None
    if not args.schedule_query:
        schedule_id = _remembered(store, "schedule", args.schedule) or settings.default_schedule_id
        if not schedule_id:
            return _fail("Provide either schedule ID or schedule query", as_json=args.json, stderr=stderr)

    tz = resolve_timezone(args.timezone if args.timezone is not None else settings.payroll_timezone)
    current_year, current_month = current_period(clock or SystemClock(tz))
    year, month = args.period or (None, None)

    report = generate_oncall_report(
        client_factory(token),
        year=year or current_year,
        month=month or current_month,
        rate=rate,
        tz=tz,
        schedule_id=schedule_id,
        schedule_query=args.schedule_query,
    )
    if args.schedule_query:
        store.update_option("schedule", report.schedule.id)

    if args.xlsx is not None:
        args.xlsx.write_bytes(build_oncall_payroll_xlsx_bytes(report))
        logger.info("oncall_report_xlsx_written", extra={"xlsx_path": str(args.xlsx)})

    if args.json:
        stdout.write(render_json_report(report) + "\n")
    else:
        stdout.write(render_text_report(report))
    return 0


def main(
    argv: Sequence[str] | None = None,
    *,
    clock: Clock | None = None,
    client_factory: ClientFactory | None = None,
    config_store: ConfigStore | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    args = build_parser().parse_args(argv)
    setup_json_logging(logging.INFO if args.verbose else logging.WARNING, stream=stderr)

    try:
        return _run(
            args,
            store=config_store or ConfigStore(),
            clock=clock,
            client_factory=client_factory or _default_client_factory,
            stdout=stdout,
            stderr=stderr,
        )
    except ApiError as exc:
        return _fail(exc.message, as_json=args.json, stderr=stderr)
    except OSError as exc:
        return _fail(str(exc), as_json=args.json, stderr=stderr)


if __name__ == "__main__":
    raise SystemExit(main())
