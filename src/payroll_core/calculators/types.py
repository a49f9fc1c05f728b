"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def round_currency(value: Decimal | int | float | str | None) -> Decimal:
    """Round an amount to 2 decimal places (half up).

    Every component is rounded at the point it is computed; sums are built
    from already-rounded components.
    """
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite():
        return Decimal("0.00")
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class TimeStatusLabel(str, Enum):
    """Attendance status labels."""

    ON_TIME = "On-Time"
    LATE = "Late"
    EARLY_OUT = "Early Out"
    ABSENT = "Absent"
    ONGOING = "Ongoing"


@dataclass(frozen=True)
class Schedule:
    """Work schedule in effect for a date ("HH:MM" clock values)."""

    start_time: str = "09:00"
    end_time: str = "17:00"
    effective_date: date | None = None


@dataclass
class TimeStatus:
    """Result of resolving one day's clock-in/clock-out against a schedule."""

    status: TimeStatusLabel
    minutes_late: int = 0
    minutes_early: int = 0
    minutes_overtime: int = 0
    minutes_undertime: int = 0
    actual_work_minutes: int = 0
    work_minutes_minus_lunch: int = 0
    is_absent: bool = False
    is_half_day: bool = False
    late_time_in: str | None = None
    early_time_out: str | None = None
    schedule: Schedule = field(default_factory=Schedule)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "minutesLate": self.minutes_late,
            "minutesEarly": self.minutes_early,
            "minutesOvertime": self.minutes_overtime,
            "minutesUndertime": self.minutes_undertime,
            "actualWorkMinutes": self.actual_work_minutes,
            "workMinutesMinusLunch": self.work_minutes_minus_lunch,
            "isAbsent": self.is_absent,
            "isHalfDay": self.is_half_day,
            "lateTimeIn": self.late_time_in,
            "earlyTimeOut": self.early_time_out,
            "workStartTime": self.schedule.start_time,
            "workEndTime": self.schedule.end_time,
        }


@dataclass
class AttendanceAdjustment:
    """Attendance-derived adjustments for one pay run (never persisted)."""

    minutes_late: Decimal = ZERO
    minutes_early: Decimal = ZERO
    overtime_minutes: Decimal = ZERO
    undertime_minutes: Decimal = ZERO
    absent_days: Decimal = ZERO
    half_day_units: Decimal = ZERO


@dataclass(frozen=True)
class TaxBracket:
    """Progressive withholding bracket.

    tax = base_tax + (taxable - base_amount) * rate
    """

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    base_tax: Decimal
    base_amount: Decimal
    rate: Decimal  # As decimal, e.g., 0.25 for 25%

    def contains(self, taxable_income: Decimal) -> bool:
        return self.max_amount is None or taxable_income <= self.max_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "min": str(self.min_amount),
            "max": str(self.max_amount) if self.max_amount is not None else None,
            "baseTax": str(self.base_tax),
            "baseAmount": str(self.base_amount),
            "rate": str(self.rate),
        }


@dataclass(frozen=True)
class TaxConfiguration:
    """Withholding tax configuration: personal exemption plus sorted brackets."""

    personal_exemption: Decimal
    brackets: tuple[TaxBracket, ...]
    source: str = "default"
    version: str = "custom"

    def summary(self) -> dict[str, Any]:
        return {
            "personalExemption": str(round_currency(self.personal_exemption)),
            "source": self.source,
            "version": self.version,
        }


@dataclass(frozen=True)
class Contribution:
    """Employee/employer split of one statutory contribution."""

    employee: Decimal = Decimal("0.00")
    employer: Decimal = Decimal("0.00")


@dataclass
class StatutoryContributionResult:
    """Statutory contributions and withholding tax for one monthly salary.

    Always fully populated; every amount is zero when taxes are excluded.
    """

    include_taxes: bool
    monthly_salary: Decimal
    sss_employee: Decimal
    sss_employer: Decimal
    pagibig_employee: Decimal
    pagibig_employer: Decimal
    philhealth_employee: Decimal
    philhealth_employer: Decimal
    withholding_tax: Decimal
    statutory_employee_total: Decimal
    statutory_employer_total: Decimal
    additional_employee_deductions: Decimal
    total_employee_deductions: Decimal
    total_employer_contributions: Decimal
    tax_configuration: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "includeTaxes": self.include_taxes,
            "monthlySalary": self.monthly_salary,
            "sssEmployee": self.sss_employee,
            "sssEmployer": self.sss_employer,
            "pagibigEmployee": self.pagibig_employee,
            "pagibigEmployer": self.pagibig_employer,
            "philhealthEmployee": self.philhealth_employee,
            "philhealthEmployer": self.philhealth_employer,
            "withholdingTax": self.withholding_tax,
            "statutoryEmployeeTotal": self.statutory_employee_total,
            "statutoryEmployerTotal": self.statutory_employer_total,
            "additionalEmployeeDeductions": self.additional_employee_deductions,
            "totalEmployeeDeductions": self.total_employee_deductions,
            "totalEmployerContributions": self.total_employer_contributions,
            "taxConfiguration": self.tax_configuration,
        }


@dataclass
class PayrollComputationInput:
    """Validated, fully-resolved inputs for assembling one payroll record."""

    company_id: str
    employee_id: str
    cutoff_start_date: date
    cutoff_end_date: date
    pay_date: date
    basic_pay: Decimal
    working_days: int
    allowance: Decimal = ZERO
    transport_allowance: Decimal = ZERO
    refreshment: Decimal = ZERO
    cash_advance: Decimal = ZERO
    memo: Decimal = ZERO
    adjustment: AttendanceAdjustment = field(default_factory=AttendanceAdjustment)
    month: str | None = None


@dataclass
class PayrollComputation:
    """Every derived figure of one payroll record, all rounded to cents."""

    payroll_key: str
    month: str
    working_days: int
    basic_pay: Decimal
    allowance: Decimal
    transport_allowance: Decimal
    refreshment: Decimal
    cash_advance: Decimal
    memo: Decimal
    minutes_late: Decimal
    absent_days: Decimal
    half_day_units: Decimal
    overtime_minutes: Decimal
    undertime_minutes: Decimal
    daily_rate: Decimal
    per_hour_rate: Decimal
    per_minute_rate: Decimal
    total_late: Decimal
    total_undertime: Decimal
    absent_value: Decimal
    half_day_value: Decimal
    total_absent: Decimal
    overtime_rate_per_hour: Decimal
    overtime_pay: Decimal
    include_taxes: bool
    sss_employee: Decimal
    sss_employer: Decimal
    pagibig_employee: Decimal
    pagibig_employer: Decimal
    philhealth_employee: Decimal
    philhealth_employer: Decimal
    withholding_tax: Decimal
    total_tax_deductions: Decimal
    statutory_employee_total: Decimal
    statutory_employer_total: Decimal
    total_employer_contributions: Decimal
    additional_employee_deductions: Decimal
    total_deductions: Decimal
    gross_pay: Decimal
    net_pay: Decimal
    tax_configuration: dict[str, Any] = field(default_factory=dict)

    def record_fields(self) -> dict[str, Any]:
        """Column values for the persisted payroll record."""
        return {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
        }
