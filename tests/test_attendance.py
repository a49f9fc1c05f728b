"""Unit tests for attendance status resolution."""

from datetime import date, datetime, time
from decimal import Decimal

import pytest

from payroll_core.calculators.attendance import (
    DEFAULT_SCHEDULE,
    minutes_to_clock,
    resolve_time_status,
    select_schedule,
    summarize_attendance,
    to_minutes,
)
from payroll_core.calculators.types import Schedule, TimeStatusLabel
from payroll_core.errors import FailedPreconditionError, InvalidArgumentError


class TestClockParsing:
    """Test conversion of clock values to minutes since midnight."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("08:45", 525),
            ("8:05", 485),
            ("08:45:30", 525),
            ("2024-03-01T08:45:00Z", 525),
            ("2024-03-01T17:30:00+08:00", 1050),
            (time(9, 15), 555),
            (datetime(2024, 3, 1, 13, 0), 780),
        ],
    )
    def test_accepted_formats(self, value, expected):
        assert to_minutes(value) == expected

    def test_absent_values(self):
        assert to_minutes(None) is None
        assert to_minutes("  ") is None

    @pytest.mark.parametrize("value", ["25:00", "12:75", "noon", "2024-13-45T10:00"])
    def test_invalid_values_rejected(self, value):
        with pytest.raises(InvalidArgumentError):
            to_minutes(value)

    def test_minutes_to_clock(self):
        assert minutes_to_clock(555) == "09:15"
        assert minutes_to_clock(0) == "00:00"


class TestResolveTimeStatus:
    """Test status labels and minute counts against the default schedule."""

    def test_full_day_is_on_time(self):
        status = resolve_time_status("09:00", "17:00")

        assert status.status == TimeStatusLabel.ON_TIME
        assert status.actual_work_minutes == 480
        assert status.work_minutes_minus_lunch == 420
        assert status.minutes_overtime == 0
        assert status.minutes_undertime == 0

    def test_extra_hour_counts_as_overtime(self):
        status = resolve_time_status("09:00", "18:00")

        assert status.status == TimeStatusLabel.ON_TIME
        assert status.minutes_overtime == 60

    def test_late_arrival(self):
        status = resolve_time_status("09:15", "17:00")

        assert status.status == TimeStatusLabel.LATE
        assert status.minutes_late == 15
        assert status.minutes_undertime == 15
        assert status.late_time_in == "09:15"
        assert status.early_time_out is None

    def test_early_departure(self):
        status = resolve_time_status("09:00", "16:30")

        assert status.status == TimeStatusLabel.EARLY_OUT
        assert status.minutes_early == 30
        assert status.early_time_out == "16:30"

    def test_late_takes_priority_over_early(self):
        status = resolve_time_status("09:30", "16:00")

        assert status.status == TimeStatusLabel.LATE
        assert status.minutes_late == 30
        assert status.minutes_early == 60

    def test_missing_time_in_is_absent(self):
        status = resolve_time_status(None, "17:00")

        assert status.status == TimeStatusLabel.ABSENT
        assert status.is_absent

    def test_missing_time_out_is_ongoing(self):
        status = resolve_time_status("09:00", None)

        assert status.status == TimeStatusLabel.ONGOING
        assert not status.is_absent

    @pytest.mark.parametrize("time_in,time_out", [("17:00", "09:00"), ("09:00", "09:00")])
    def test_time_out_not_after_time_in_rejected(self, time_in, time_out):
        with pytest.raises(FailedPreconditionError):
            resolve_time_status(time_in, time_out)

    def test_half_day_threshold(self):
        # 240 minutes of undertime is not yet a half day
        assert not resolve_time_status("09:00", "13:00").is_half_day
        assert resolve_time_status("09:00", "12:30").is_half_day

    def test_lunch_deduction_floors_at_zero(self):
        status = resolve_time_status("09:00", "09:30")

        assert status.work_minutes_minus_lunch == 0
        assert status.minutes_undertime == 420

    def test_custom_schedule(self):
        schedule = Schedule(start_time="08:00", end_time="17:00")
        status = resolve_time_status("08:00", "17:00", schedule)

        assert status.status == TimeStatusLabel.ON_TIME
        assert status.minutes_overtime == 60
        assert status.to_dict()["workStartTime"] == "08:00"

    def test_iso_datetimes(self):
        status = resolve_time_status("2024-03-01T09:10:00Z", "2024-03-01T17:00:00Z")

        assert status.status == TimeStatusLabel.LATE
        assert status.minutes_late == 10


class TestScheduleSelection:
    """Test schedule version selection by effective date."""

    SCHEDULES = [
        Schedule("08:00", "17:00", date(2024, 1, 1)),
        Schedule("10:00", "19:00", date(2024, 6, 1)),
    ]

    def test_latest_version_at_or_before_date(self):
        assert select_schedule(self.SCHEDULES, date(2024, 3, 1)).start_time == "08:00"
        assert select_schedule(self.SCHEDULES, date(2024, 6, 1)).start_time == "10:00"
        assert select_schedule(self.SCHEDULES, date(2024, 12, 31)).start_time == "10:00"

    def test_falls_back_to_default(self):
        assert select_schedule([], date(2024, 3, 1)) == DEFAULT_SCHEDULE
        assert select_schedule(self.SCHEDULES, date(2023, 12, 31)) == DEFAULT_SCHEDULE
        assert DEFAULT_SCHEDULE.start_time == "09:00"
        assert DEFAULT_SCHEDULE.end_time == "17:00"


class TestSummarizeAttendance:
    """Test folding daily statuses into an adjustment."""

    def test_summary(self):
        statuses = [
            resolve_time_status("09:15", "17:00"),
            resolve_time_status(None, None),
            resolve_time_status("09:00", "12:30"),
            resolve_time_status("09:00", "18:30"),
            resolve_time_status("09:00", None),
        ]

        adjustment = summarize_attendance(statuses)

        assert adjustment.minutes_late == Decimal("15")
        assert adjustment.undertime_minutes == Decimal("15")
        assert adjustment.absent_days == Decimal("1")
        assert adjustment.half_day_units == Decimal("270")
        assert adjustment.overtime_minutes == Decimal("90")

    def test_empty(self):
        adjustment = summarize_attendance([])
        assert adjustment.minutes_late == 0
        assert adjustment.absent_days == 0
