"""Persisted payroll record and 13th-month override models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_core.models.base import Base, JSONDocument, TimestampMixin


class PayrollRecord(Base, TimestampMixin):
    """One employee's payroll for one cutoff period.

    payroll_key (employeeId|cutoffStart|cutoffEnd|payDate) is unique; a
    recalculation of the same period overwrites the row in place.
    """

    __tablename__ = "payroll_record"

    payroll_id: Mapped[UUID] = mapped_column(primary_key=True)
    payroll_key: Mapped[str] = mapped_column(String, nullable=False)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    employee_name: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account: Mapped[str | None] = mapped_column(String, nullable=True)
    id_number: Mapped[str | None] = mapped_column(String, nullable=True)

    # Period
    cutoff_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    cutoff_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    working_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # Compensation inputs
    basic_pay: Mapped[Decimal] = mapped_column(nullable=False)
    allowance: Mapped[Decimal] = mapped_column(nullable=False)
    transport_allowance: Mapped[Decimal] = mapped_column(nullable=False)
    refreshment: Mapped[Decimal] = mapped_column(nullable=False)
    cash_advance: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[Decimal] = mapped_column(nullable=False)

    # Attendance adjustments
    minutes_late: Mapped[Decimal] = mapped_column(nullable=False)
    absent_days: Mapped[Decimal] = mapped_column(nullable=False)
    half_day_units: Mapped[Decimal] = mapped_column(nullable=False)
    overtime_minutes: Mapped[Decimal] = mapped_column(nullable=False)
    undertime_minutes: Mapped[Decimal] = mapped_column(nullable=False)

    # Derived rates and values
    daily_rate: Mapped[Decimal] = mapped_column(nullable=False)
    per_hour_rate: Mapped[Decimal] = mapped_column(nullable=False)
    per_minute_rate: Mapped[Decimal] = mapped_column(nullable=False)
    total_late: Mapped[Decimal] = mapped_column(nullable=False)
    total_undertime: Mapped[Decimal] = mapped_column(nullable=False)
    absent_value: Mapped[Decimal] = mapped_column(nullable=False)
    half_day_value: Mapped[Decimal] = mapped_column(nullable=False)
    total_absent: Mapped[Decimal] = mapped_column(nullable=False)
    overtime_rate_per_hour: Mapped[Decimal] = mapped_column(nullable=False)
    overtime_pay: Mapped[Decimal] = mapped_column(nullable=False)

    # Statutory
    include_taxes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sss_employee: Mapped[Decimal] = mapped_column(nullable=False)
    sss_employer: Mapped[Decimal] = mapped_column(nullable=False)
    pagibig_employee: Mapped[Decimal] = mapped_column(nullable=False)
    pagibig_employer: Mapped[Decimal] = mapped_column(nullable=False)
    philhealth_employee: Mapped[Decimal] = mapped_column(nullable=False)
    philhealth_employer: Mapped[Decimal] = mapped_column(nullable=False)
    withholding_tax: Mapped[Decimal] = mapped_column(nullable=False)
    total_tax_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    statutory_employee_total: Mapped[Decimal] = mapped_column(nullable=False)
    statutory_employer_total: Mapped[Decimal] = mapped_column(nullable=False)
    total_employer_contributions: Mapped[Decimal] = mapped_column(nullable=False)
    additional_employee_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    tax_configuration: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)

    # Totals
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)

    # Audit
    processed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_key", name="payroll_record_key_unique"),
    )


class ThirteenthMonthOverride(Base, TimestampMixin):
    """Saved per-month net pay values that replace computed 13th-month buckets.

    override_id is "{employeeId}_{year}".
    """

    __tablename__ = "thirteenth_month_override"

    override_id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONDocument, nullable=False, default=list
    )
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    saved_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "year", name="thirteenth_month_override_employee_year_unique"),
    )

    @staticmethod
    def make_id(employee_id: str, year: int) -> str:
        return f"{employee_id}_{year}"
