from __future__ import annotations

import unittest
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from oncall_payroll.errors import InvalidMonthError, InvalidRateError, MalformedShiftError
from oncall_payroll.services.oncall_calc import (
    aggregate_shifts,
    clip_shift,
    days_between,
    hours_between,
    is_valid_shift,
    parse_shift,
)
from oncall_payroll.services.oncall_calendar import month_window

WARSAW = ZoneInfo("Europe/Warsaw")
RATE = 17


def _local(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=WARSAW)


def _raw(start: str, end: str) -> dict[str, str]:
    return {"start": start, "end": end}


class ShiftValidityTests(unittest.TestCase):
    def setUp(self) -> None:
        self.window = month_window(2022, 1, WARSAW)

    def test_validity_around_month_edges(self) -> None:
        cases = [
            ("2022-01-01 09:00", "2022-01-02 17:00", True),
            ("2022-01-01 00:00", "2022-01-31 23:59:59", True),
            ("2021-12-31 17:00", "2022-01-02 17:00", True),
            ("2022-01-31 09:00", "2022-02-01 09:00", True),
            ("2021-12-31 20:00", "2022-01-01 09:00", False),
            ("2021-12-30 09:00", "2021-12-31 22:00", False),
            ("2022-02-01 09:00", "2022-02-02 21:00", False),
        ]
        for start, end, expected in cases:
            with self.subTest(start=start, end=end):
                shift = parse_shift(_raw(start, end), 0, WARSAW)
                self.assertEqual(is_valid_shift(shift, self.window), expected)

    def test_reversed_interval_is_invalid(self) -> None:
        shift = parse_shift(_raw("2022-01-10 09:00", "2022-01-09 09:00"), 0, WARSAW)
        self.assertFalse(is_valid_shift(shift, self.window))


class ShiftClippingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.window = month_window(2022, 1, WARSAW)

    def test_shift_inside_month_is_unchanged(self) -> None:
        shift = parse_shift(_raw("2022-01-10 17:00", "2022-01-12 09:00"), 0, WARSAW)
        self.assertEqual(clip_shift(shift, self.window), (shift.start, shift.end))

    def test_start_snaps_to_first_day_at_end_time(self) -> None:
        shift = parse_shift(_raw("2021-12-30 17:00", "2022-01-02 09:00"), 0, WARSAW)
        start, end = clip_shift(shift, self.window)

        self.assertEqual(start, _local("2022-01-01 09:00"))
        self.assertEqual(end, _local("2022-01-02 09:00"))

    def test_end_snaps_to_day_after_month_at_end_time(self) -> None:
        shift = parse_shift(_raw("2022-01-31 15:00", "2022-02-03 08:00"), 0, WARSAW)
        start, end = clip_shift(shift, self.window)

        self.assertEqual(start, _local("2022-01-31 15:00"))
        self.assertEqual(end, _local("2022-02-01 08:00"))

    def test_clipped_bounds_stay_within_month_plus_one_day(self) -> None:
        raw_shifts = [
            _raw("2021-12-30 09:00", "2022-02-02 09:00"),
            _raw("2021-12-31 17:00", "2022-01-02 17:00"),
            _raw("2022-01-31 09:00", "2022-02-05 23:00"),
            _raw("2022-01-15 09:00", "2022-01-16 09:00"),
        ]
        upper_bound = self.window.last_instant + timedelta(days=1)
        for index, raw in enumerate(raw_shifts):
            with self.subTest(raw=raw):
                start, end = clip_shift(parse_shift(raw, index, WARSAW), self.window)
                self.assertGreaterEqual(start, self.window.first_instant)
                self.assertLessEqual(end, upper_bound)
                self.assertLessEqual(start, end)


class ShiftDurationTests(unittest.TestCase):
    def test_hours_lost_on_spring_forward(self) -> None:
        self.assertEqual(hours_between(_local("2023-03-25 17:00"), _local("2023-03-26 09:00")), 15)

    def test_hours_gained_on_fall_back(self) -> None:
        self.assertEqual(hours_between(_local("2023-10-28 17:00"), _local("2023-10-29 09:00")), 17)

    def test_partial_hours_are_floored(self) -> None:
        self.assertEqual(hours_between(_local("2022-01-10 17:00"), _local("2022-01-10 19:59")), 2)

    def test_days_are_calendar_day_difference(self) -> None:
        # 40 hours over two date boundaries.
        self.assertEqual(days_between(_local("2022-01-02 17:00"), _local("2022-01-04 09:00")), 2)
        # 25 hours over one date boundary: one day, not ceil(25 / 24).
        self.assertEqual(days_between(_local("2022-01-10 20:00"), _local("2022-01-11 21:00")), 1)

    def test_days_floor_is_one(self) -> None:
        self.assertEqual(days_between(_local("2022-01-10 09:00"), _local("2022-01-10 17:00")), 1)
        self.assertEqual(days_between(_local("2022-01-10 09:00"), _local("2022-01-10 09:00")), 1)


class AggregateShiftsTests(unittest.TestCase):
    def _aggregate(self, raw_shifts: list[dict[str, str]], year: int = 2022, month: int = 1):
        return aggregate_shifts(raw_shifts, year=year, month=month, rate=RATE, tz=WARSAW)

    def test_single_shift_with_previous_month_noise(self) -> None:
        result = self._aggregate(
            [
                _raw("2021-12-28 17:00", "2021-12-31 09:00"),
                _raw("2022-01-02 17:00", "2022-01-03 09:00"),
            ]
        )

        self.assertEqual(result.total_days, 1)
        self.assertEqual(result.total_hours, 16)
        self.assertEqual(result.bill, 272)
        self.assertEqual(len(result.shifts), 1)
        shift = result.shifts[0]
        self.assertEqual(shift.start, _local("2022-01-02 17:00"))
        self.assertEqual(shift.end, _local("2022-01-03 09:00"))
        self.assertEqual(shift.hours_in_shift, 16)
        self.assertEqual(shift.days_in_shift, 1)
        self.assertEqual(shift.shift_bill, 272)

    def test_dst_transitions(self) -> None:
        cases = [
            ("no DST change", 2023, 10, "2023-10-27 17:00", "2023-10-28 09:00", 16),
            ("fall back", 2023, 10, "2023-10-28 17:00", "2023-10-29 09:00", 17),
            ("spring forward", 2023, 3, "2023-03-25 17:00", "2023-03-26 09:00", 15),
        ]
        for label, year, month, start, end, hours in cases:
            with self.subTest(label):
                result = self._aggregate([_raw(start, end)], year=year, month=month)
                self.assertEqual(result.total_hours, hours)
                self.assertEqual(result.total_days, 1)
                self.assertEqual(result.shifts[0].shift_bill, hours * RATE)

    def test_shift_overlapping_previous_month(self) -> None:
        result = self._aggregate([_raw("2021-12-30 17:00", "2022-01-02 09:00")])

        self.assertEqual(result.shifts[0].start, _local("2022-01-01 09:00"))
        self.assertEqual(result.total_hours, 24)
        self.assertEqual(result.total_days, 1)

    def test_shift_ending_in_next_month(self) -> None:
        result = self._aggregate([_raw("2022-01-31 15:00", "2022-02-03 08:00")])

        self.assertEqual(result.shifts[0].end, _local("2022-02-01 08:00"))
        self.assertEqual(result.total_hours, 17)
        self.assertEqual(result.total_days, 1)

    def test_two_shifts_overlapping_adjacent_months(self) -> None:
        result = self._aggregate(
            [
                _raw("2021-12-29 17:00", "2022-01-02 09:00"),
                _raw("2022-01-31 17:00", "2022-02-03 09:00"),
            ]
        )

        self.assertEqual(result.total_days, 2)
        self.assertEqual(result.total_hours, 40)
        self.assertEqual(result.bill, 40 * RATE)
        self.assertEqual(
            [(shift.start, shift.end) for shift in result.shifts],
            [
                (_local("2022-01-01 09:00"), _local("2022-01-02 09:00")),
                (_local("2022-01-31 17:00"), _local("2022-02-01 09:00")),
            ],
        )

    def test_shift_spanning_whole_month(self) -> None:
        result = self._aggregate([_raw("2021-12-30 09:00", "2022-02-02 09:00")])

        self.assertEqual(result.shifts[0].start, _local("2022-01-01 09:00"))
        self.assertEqual(result.shifts[0].end, _local("2022-02-01 09:00"))
        self.assertEqual(result.total_hours, 31 * 24)
        self.assertEqual(result.total_days, 31)

    def test_empty_input(self) -> None:
        result = self._aggregate([])

        self.assertEqual(result.total_days, 0)
        self.assertEqual(result.total_hours, 0)
        self.assertEqual(result.bill, 0)
        self.assertEqual(result.shifts, ())

    def test_input_order_is_preserved_and_totals_add_up(self) -> None:
        result = self._aggregate(
            [
                _raw("2022-01-20 17:00", "2022-01-22 09:00"),
                _raw("2022-02-10 17:00", "2022-02-11 09:00"),
                _raw("2022-01-03 17:00", "2022-01-04 09:00"),
                _raw("2022-01-10 09:00", "2022-01-10 21:30"),
            ]
        )

        self.assertEqual(
            [shift.start for shift in result.shifts],
            [_local("2022-01-20 17:00"), _local("2022-01-03 17:00"), _local("2022-01-10 09:00")],
        )
        self.assertEqual(result.total_hours, sum(shift.hours_in_shift for shift in result.shifts))
        self.assertEqual(result.total_days, sum(shift.days_in_shift for shift in result.shifts))
        self.assertEqual(result.bill, sum(shift.shift_bill for shift in result.shifts))
        self.assertEqual(result.total_hours, 40 + 16 + 12)
        self.assertEqual(result.total_days, 2 + 1 + 1)

    def test_pagerduty_utc_timestamps_are_read_in_local_zone(self) -> None:
        result = self._aggregate([_raw("2022-01-02T16:00:00Z", "2022-01-03T08:00:00Z")])

        self.assertEqual(result.shifts[0].start.replace(tzinfo=None), datetime(2022, 1, 2, 17, 0))
        self.assertEqual(result.total_hours, 16)

    def test_extra_fields_are_ignored(self) -> None:
        raw = {**_raw("2022-01-02 17:00", "2022-01-03 09:00"), "escalation_level": 1, "schedule": None}
        result = self._aggregate([raw])
        self.assertEqual(result.total_hours, 16)


class AggregateErrorTests(unittest.TestCase):
    def test_unparseable_timestamp_fails_fast(self) -> None:
        with self.assertRaises(MalformedShiftError) as ctx:
            aggregate_shifts(
                [_raw("2022-01-02 17:00", "2022-01-03 09:00"), _raw("not-a-date", "2022-01-05 09:00")],
                year=2022,
                month=1,
                rate=RATE,
                tz=WARSAW,
            )

        self.assertEqual(ctx.exception.index, 1)
        self.assertEqual(ctx.exception.code, "MALFORMED_SHIFT")
        self.assertEqual(ctx.exception.record["start"], "not-a-date")

    def test_malformed_shift_outside_month_still_fails(self) -> None:
        with self.assertRaises(MalformedShiftError):
            aggregate_shifts([_raw("2022-03-02 17:00", "garbage")], year=2022, month=1, rate=RATE, tz=WARSAW)

    def test_missing_field_and_wrong_type(self) -> None:
        for record in ({"start": "2022-01-02 17:00"}, {"start": 1641139200, "end": "2022-01-03 09:00"}, "shift"):
            with self.subTest(record=record):
                with self.assertRaises(MalformedShiftError):
                    aggregate_shifts([record], year=2022, month=1, rate=RATE, tz=WARSAW)

    def test_invalid_rate_rejected(self) -> None:
        for rate in (0, -5, float("nan"), float("inf"), "17", None, True):
            with self.subTest(rate=rate):
                with self.assertRaises(InvalidRateError):
                    aggregate_shifts([], year=2022, month=1, rate=rate, tz=WARSAW)

    def test_invalid_month_rejected(self) -> None:
        with self.assertRaises(InvalidMonthError):
            aggregate_shifts([], year=2022, month=13, rate=RATE, tz=WARSAW)


if __name__ == "__main__":
    unittest.main()
