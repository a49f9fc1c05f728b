"""Attendance status resolution: clock values plus a schedule to minute counts."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime, time
from decimal import Decimal

from payroll_core.calculators.types import (
    AttendanceAdjustment,
    Schedule,
    TimeStatus,
    TimeStatusLabel,
)
from payroll_core.errors import FailedPreconditionError, InvalidArgumentError

DEFAULT_WORK_HOURS = 8
LUNCH_BREAK_MINUTES = 60
HALF_DAY_UNDERTIME_THRESHOLD = 240
DEFAULT_SCHEDULE = Schedule(start_time="09:00", end_time="17:00")

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")

ClockValue = str | time | datetime | None


def to_minutes(value: ClockValue) -> int | None:
    """Convert a clock value to minutes since midnight.

    Accepts "HH:MM", "HH:MM:SS", ISO datetimes ("2024-03-01T08:15:00Z",
    offsets allowed; the wall-clock time is used) and time/datetime objects.
    Returns None for an absent value.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.hour * 60 + value.minute
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise InvalidArgumentError(f"Unsupported clock value: {value!r}")

    text = value.strip()
    if not text:
        return None

    match = _CLOCK_RE.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise InvalidArgumentError(f"Invalid clock value: {value!r}")
        return hours * 60 + minutes

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid clock value: {value!r}") from e
    return parsed.hour * 60 + parsed.minute


def minutes_to_clock(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def select_schedule(schedules: Iterable[Schedule], target_date: date) -> Schedule:
    """Pick the latest schedule version effective on or before target_date.

    Falls back to the 09:00-17:00 default when nothing applies.
    """
    candidates = [
        s for s in schedules
        if s.effective_date is None or s.effective_date <= target_date
    ]
    if not candidates:
        return DEFAULT_SCHEDULE
    return max(candidates, key=lambda s: s.effective_date or date.min)


def resolve_time_status(
    time_in: ClockValue,
    time_out: ClockValue,
    schedule: Schedule | None = None,
) -> TimeStatus:
    """Resolve one day's attendance against a schedule.

    Lateness is measured from the schedule start; early departure from
    start + 8h. Overtime/undertime compare worked minutes (less a fixed
    60-minute lunch) to the 420-minute nominal day. When both late and early
    apply the label is Late.

    Raises:
        FailedPreconditionError: If time-out is not after time-in
    """
    schedule = schedule or DEFAULT_SCHEDULE
    minutes_in = to_minutes(time_in)
    minutes_out = to_minutes(time_out)

    if minutes_in is None:
        return TimeStatus(status=TimeStatusLabel.ABSENT, is_absent=True, schedule=schedule)
    if minutes_out is None:
        return TimeStatus(status=TimeStatusLabel.ONGOING, schedule=schedule)

    if minutes_out <= minutes_in:
        raise FailedPreconditionError(
            "Time out must be after time in",
            {"timeIn": minutes_to_clock(minutes_in), "timeOut": minutes_to_clock(minutes_out)},
        )

    work_start = to_minutes(schedule.start_time)
    if work_start is None:
        work_start = to_minutes(DEFAULT_SCHEDULE.start_time)

    actual_work_minutes = minutes_out - minutes_in
    work_minutes_minus_lunch = max(0, actual_work_minutes - LUNCH_BREAK_MINUTES)

    minutes_late = max(0, minutes_in - work_start)
    expected_end = work_start + DEFAULT_WORK_HOURS * 60
    minutes_early = max(0, expected_end - minutes_out)

    expected_work_minutes = DEFAULT_WORK_HOURS * 60 - LUNCH_BREAK_MINUTES
    minutes_overtime = max(0, work_minutes_minus_lunch - expected_work_minutes)
    minutes_undertime = max(0, expected_work_minutes - work_minutes_minus_lunch)

    if minutes_late > 0:
        status = TimeStatusLabel.LATE
    elif minutes_early > 0:
        status = TimeStatusLabel.EARLY_OUT
    else:
        status = TimeStatusLabel.ON_TIME

    return TimeStatus(
        status=status,
        minutes_late=minutes_late,
        minutes_early=minutes_early,
        minutes_overtime=minutes_overtime,
        minutes_undertime=minutes_undertime,
        actual_work_minutes=actual_work_minutes,
        work_minutes_minus_lunch=work_minutes_minus_lunch,
        is_absent=False,
        is_half_day=minutes_undertime > HALF_DAY_UNDERTIME_THRESHOLD,
        late_time_in=minutes_to_clock(minutes_in) if minutes_late > 0 else None,
        early_time_out=minutes_to_clock(minutes_out) if minutes_early > 0 else None,
        schedule=schedule,
    )


def summarize_attendance(statuses: Iterable[TimeStatus]) -> AttendanceAdjustment:
    """Fold daily statuses into the adjustment a pay run consumes.

    Half-day undertime is moved into half_day_units (minutes, valued at the
    per-minute rate) so it is not deducted twice. Ongoing days are skipped.
    """
    late = early = overtime = undertime = half_day = 0
    absent = 0

    for day in statuses:
        if day.is_absent:
            absent += 1
            continue
        if day.status == TimeStatusLabel.ONGOING:
            continue

        late += day.minutes_late
        early += day.minutes_early
        overtime += day.minutes_overtime
        if day.is_half_day:
            half_day += day.minutes_undertime
        else:
            undertime += day.minutes_undertime

    return AttendanceAdjustment(
        minutes_late=Decimal(late),
        minutes_early=Decimal(early),
        overtime_minutes=Decimal(overtime),
        undertime_minutes=Decimal(undertime),
        absent_days=Decimal(absent),
        half_day_units=Decimal(half_day),
    )
