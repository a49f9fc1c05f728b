"""Payroll services."""

from payroll_core.services.activity import (
    Activity,
    ActivityRecorder,
    InMemoryActivityRecorder,
    LoggingActivityRecorder,
    NullActivityRecorder,
)
from payroll_core.services.attendance_service import AttendanceService
from payroll_core.services.payroll_service import (
    BulkPayrollResult,
    PayrollCalculationResult,
    PayrollService,
)
from payroll_core.services.thirteenth_month_service import (
    MonthlyBucket,
    ThirteenthMonthReport,
    ThirteenthMonthService,
    ThirteenthMonthSummary,
)

__all__ = [
    "Activity",
    "ActivityRecorder",
    "InMemoryActivityRecorder",
    "LoggingActivityRecorder",
    "NullActivityRecorder",
    "AttendanceService",
    "BulkPayrollResult",
    "PayrollCalculationResult",
    "PayrollService",
    "MonthlyBucket",
    "ThirteenthMonthReport",
    "ThirteenthMonthService",
    "ThirteenthMonthSummary",
]
