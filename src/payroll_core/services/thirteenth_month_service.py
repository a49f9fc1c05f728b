"""Thirteenth-month aggregation over a year of payroll records."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.calculators.types import round_currency
from payroll_core.errors import FailedPreconditionError, InternalError
from payroll_core.models import Employee, PayrollRecord, ThirteenthMonthOverride
from payroll_core.models.base import utcnow
from payroll_core.schemas import (
    EmployeeProfileInput,
    ThirteenthMonthInput,
    ThirteenthMonthOverrideInput,
    validate_input,
)
from payroll_core.services.activity import (
    Activity,
    ActivityRecorder,
    NullActivityRecorder,
    record_safely,
)

logger = logging.getLogger(__name__)

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
THIRTEENTH_MONTH_DIVISOR = 12

_MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass
class MonthlyBucket:
    """One calendar month of an employee's year."""

    month: int
    month_key: str
    month_name: str
    net_pay: Decimal = Decimal("0.00")
    gross_pay: Decimal = Decimal("0.00")
    basic_pay: Decimal = Decimal("0.00")
    allowances: Decimal = Decimal("0.00")
    other_earnings: Decimal = Decimal("0.00")
    total_deductions: Decimal = Decimal("0.00")
    payrolls: list[dict[str, Any]] = field(default_factory=list)
    saved: bool = False
    deductions: Decimal | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "month": self.month,
            "monthKey": self.month_key,
            "monthName": self.month_name,
            "netPay": self.net_pay,
            "grossPay": self.gross_pay,
            "basicPay": self.basic_pay,
            "allowances": self.allowances,
            "otherEarnings": self.other_earnings,
            "totalDeductions": self.total_deductions,
            "payrolls": self.payrolls,
        }
        if self.saved:
            data.update(saved=True, deductions=self.deductions, notes=self.notes)
        return data


@dataclass
class ThirteenthMonthSummary:
    """13th-month payout for one employee and year.

    thirteenth_month_pay always divides by 12, while average_monthly_net_pay
    divides by months_worked (months with positive net pay).
    """

    employee_id: str
    employee_name: str
    employee_id_number: str
    department: str
    position: str
    basic_salary: Decimal
    year: int
    total_net_pay: Decimal
    total_gross_pay: Decimal
    months_worked: int
    thirteenth_month_pay: Decimal
    average_monthly_net_pay: Decimal
    monthly_breakdown: list[MonthlyBucket]
    payroll_count: int
    saved_document_id: str | None
    payroll_documents: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "employeeId": self.employee_id,
            "employeeName": self.employee_name,
            "employeeIdNumber": self.employee_id_number,
            "department": self.department,
            "position": self.position,
            "basicSalary": self.basic_salary,
            "year": self.year,
            "totalNetPay": self.total_net_pay,
            "totalGrossPay": self.total_gross_pay,
            "monthsWorked": self.months_worked,
            "thirteenthMonthPay": self.thirteenth_month_pay,
            "averageMonthlyNetPay": self.average_monthly_net_pay,
            "monthlyBreakdown": [b.to_dict() for b in self.monthly_breakdown],
            "payrollCount": self.payroll_count,
            "savedDocumentId": self.saved_document_id,
            "source": {
                "payrollDocuments": self.payroll_documents,
                "saved": self.saved_document_id is not None,
            },
        }


@dataclass
class ThirteenthMonthReport:
    """13th-month payouts for several employees with company totals."""

    company_id: str
    year: int
    employees: list[ThirteenthMonthSummary] = field(default_factory=list)

    @property
    def totals(self) -> dict[str, Any]:
        return {
            "totalNetPay": round_currency(sum((e.total_net_pay for e in self.employees), Decimal("0"))),
            "totalThirteenthMonthPay": round_currency(
                sum((e.thirteenth_month_pay for e in self.employees), Decimal("0"))
            ),
            "totalGrossPay": round_currency(sum((e.total_gross_pay for e in self.employees), Decimal("0"))),
            "totalEmployees": len(self.employees),
            "totalMonthsWorked": sum(e.months_worked for e in self.employees),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "companyId": self.company_id,
            "year": self.year,
            "totals": self.totals,
            "employees": [e.to_dict() for e in self.employees],
        }


def build_monthly_skeleton(year: int) -> list[MonthlyBucket]:
    """Twelve empty buckets, January first."""
    return [
        MonthlyBucket(month=index + 1, month_key=f"{year}-{index + 1:02d}", month_name=name)
        for index, name in enumerate(MONTH_NAMES)
    ]


def resolve_month_key(record: PayrollRecord) -> str | None:
    """Bucket key for a record.

    The record's month ("YYYY-MM") when valid, else pay date, cutoff end,
    cutoff start and processing timestamp in that order.
    """
    if record.month:
        candidate = record.month[:7]
        if _MONTH_KEY_RE.match(candidate):
            return candidate

    for value in (record.pay_date, record.cutoff_end_date, record.cutoff_start_date, record.processed_at):
        if isinstance(value, (date, datetime)):
            return f"{value.year}-{value.month:02d}"
    return None


def aggregate_records(
    buckets: list[MonthlyBucket], records: list[PayrollRecord], year: int
) -> list[PayrollRecord]:
    """Accumulate records into buckets; returns the records that were counted."""
    by_key = {b.month_key: b for b in buckets}
    counted = []
    for record in records:
        month_key = resolve_month_key(record)
        if month_key is None or not month_key.startswith(f"{year}-"):
            continue
        bucket = by_key.get(month_key)
        if bucket is None:
            continue

        net_pay = round_currency(record.net_pay)
        gross_pay = round_currency(record.gross_pay)
        basic_pay = round_currency(record.basic_pay)
        allowances = round_currency((record.allowance or 0) + (record.transport_allowance or 0))
        other_earnings = round_currency(record.overtime_pay)
        total_deductions = round_currency(record.total_deductions)

        bucket.net_pay = round_currency(bucket.net_pay + net_pay)
        bucket.gross_pay = round_currency(bucket.gross_pay + gross_pay)
        bucket.basic_pay = round_currency(bucket.basic_pay + basic_pay)
        bucket.allowances = round_currency(bucket.allowances + allowances)
        bucket.other_earnings = round_currency(bucket.other_earnings + other_earnings)
        bucket.total_deductions = round_currency(bucket.total_deductions + total_deductions)
        bucket.payrolls.append(
            {
                "payrollId": str(record.payroll_id),
                "payrollKey": record.payroll_key,
                "payDate": record.pay_date.isoformat() if record.pay_date else "",
                "cutoffStartDate": record.cutoff_start_date.isoformat() if record.cutoff_start_date else "",
                "cutoffEndDate": record.cutoff_end_date.isoformat() if record.cutoff_end_date else "",
                "grossPay": gross_pay,
                "netPay": net_pay,
                "basicPay": basic_pay,
                "allowances": allowances,
                "otherEarnings": other_earnings,
                "totalDeductions": total_deductions,
            }
        )
        counted.append(record)
    return counted


def apply_override(buckets: list[MonthlyBucket], monthly_breakdown: list[dict[str, Any]]) -> None:
    """Replace net pay of overridden months; other figures stay computed."""
    saved_by_month: dict[int, dict[str, Any]] = {}
    for entry in monthly_breakdown or []:
        month = entry.get("month")
        if isinstance(month, str) and "-" in month:
            month = month.rsplit("-", 1)[1]
        try:
            saved_by_month[int(month)] = entry
        except (TypeError, ValueError):
            logger.warning("Skipping override entry with invalid month %r", month)

    for bucket in buckets:
        saved = saved_by_month.get(bucket.month)
        if saved is None:
            continue
        bucket.net_pay = round_currency(saved.get("netPay", bucket.net_pay))
        bucket.saved = True
        deductions = saved.get("deductions")
        bucket.deductions = round_currency(deductions) if deductions is not None else None
        bucket.notes = saved.get("notes")


class ThirteenthMonthService:
    """Aggregates persisted payroll records into 13th-month payouts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        recorder: ActivityRecorder | None = None,
    ):
        self.session_factory = session_factory
        self.recorder = recorder or NullActivityRecorder()

    async def compute_thirteenth_month_pay(
        self, payload: ThirteenthMonthInput | dict[str, Any]
    ) -> ThirteenthMonthReport:
        """Compute payouts for every requested employee."""
        data = validate_input(ThirteenthMonthInput, payload)
        report = ThirteenthMonthReport(company_id=data.company_id, year=data.year)

        async with self.session_factory() as session:
            for employee_id in data.employee_ids:
                summary = await self.compute_employee_thirteenth_month(
                    session,
                    company_id=data.company_id,
                    employee_id=employee_id,
                    year=data.year,
                    profile=data.profile_for(employee_id),
                    include_saved=data.include_saved,
                )
                report.employees.append(summary)

        logger.info(
            "13th-month report for company %s year %d: %d employee(s)",
            data.company_id,
            data.year,
            len(report.employees),
        )
        return report

    async def compute_employee_thirteenth_month(
        self,
        session: AsyncSession,
        company_id: str,
        employee_id: str,
        year: int,
        profile: EmployeeProfileInput | None = None,
        include_saved: bool = True,
    ) -> ThirteenthMonthSummary:
        """Compute one employee's payout for a year."""
        result = await session.execute(
            select(PayrollRecord)
            .where(
                PayrollRecord.employee_id == employee_id,
                PayrollRecord.company_id == company_id,
            )
            .order_by(PayrollRecord.pay_date)
        )
        records = list(result.scalars())

        buckets = build_monthly_skeleton(year)
        counted = aggregate_records(buckets, records, year)

        override = None
        if include_saved:
            override = await session.get(
                ThirteenthMonthOverride, ThirteenthMonthOverride.make_id(employee_id, year)
            )
            if override is not None and override.company_id != company_id:
                override = None
            if override is not None:
                apply_override(buckets, override.monthly_breakdown)

        total_net_pay = round_currency(sum((b.net_pay for b in buckets), Decimal("0")))
        total_gross_pay = round_currency(sum((b.gross_pay for b in buckets), Decimal("0")))
        months_worked = sum(1 for b in buckets if b.net_pay > 0)
        thirteenth_month_pay = round_currency(total_net_pay / THIRTEENTH_MONTH_DIVISOR)
        average = round_currency(total_net_pay / months_worked) if months_worked else Decimal("0.00")

        employee = profile
        if employee is None:
            employee = await session.get(Employee, employee_id)

        return ThirteenthMonthSummary(
            employee_id=employee_id,
            employee_name=(employee.full_name if employee is not None else "") or "",
            employee_id_number=(employee.id_number if employee is not None else None) or "",
            department=(employee.department if employee is not None else None) or "",
            position=(employee.position if employee is not None else None) or "",
            basic_salary=round_currency(employee.basic_pay if employee is not None else None),
            year=year,
            total_net_pay=total_net_pay,
            total_gross_pay=total_gross_pay,
            months_worked=months_worked,
            thirteenth_month_pay=thirteenth_month_pay,
            average_monthly_net_pay=average,
            monthly_breakdown=buckets,
            payroll_count=len(counted),
            saved_document_id=override.override_id if override is not None else None,
            payroll_documents=[str(r.payroll_id) for r in counted],
        )

    async def save_override(
        self, payload: ThirteenthMonthOverrideInput | dict[str, Any]
    ) -> dict[str, Any]:
        """Upsert the saved per-month net pay document for (employee, year).

        Raises:
            FailedPreconditionError: The document belongs to another company
        """
        data = validate_input(ThirteenthMonthOverrideInput, payload)
        override_id = ThirteenthMonthOverride.make_id(data.employee_id, data.year)
        breakdown = [
            {
                "month": entry.month,
                "netPay": str(round_currency(entry.net_pay)),
                "deductions": str(round_currency(entry.deductions)),
                "notes": entry.notes,
            }
            for entry in sorted(data.monthly_breakdown, key=lambda e: e.month)
        ]

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    existing = await session.get(ThirteenthMonthOverride, override_id, with_for_update=True)
                    if existing is not None and existing.company_id != data.company_id:
                        raise FailedPreconditionError(
                            f"13th-month document {override_id} belongs to another company.",
                            {"overrideId": override_id},
                        )
                    now = utcnow()
                    if existing is None:
                        existing = ThirteenthMonthOverride(
                            override_id=override_id,
                            company_id=data.company_id,
                            employee_id=data.employee_id,
                            year=data.year,
                            created_at=now,
                        )
                        session.add(existing)
                    existing.monthly_breakdown = breakdown
                    existing.notes = data.notes
                    existing.saved_by = data.saved_by
                    existing.updated_at = now
                    await session.flush()
                    saved = existing.to_dict()
            except SQLAlchemyError as e:
                logger.exception("Failed to save 13th-month document %s", override_id)
                raise InternalError("Failed to save 13th-month data.") from e

        await record_safely(
            self.recorder,
            Activity(
                action="thirteenth_month_saved",
                entity_type="thirteenth_month",
                entity_id=override_id,
                company_id=data.company_id,
                actor=data.saved_by,
                details={"year": data.year, "months": len(breakdown)},
            ),
        )
        return saved
