"""Payroll assembler - derives every figure of one payroll record."""

from __future__ import annotations

import hashlib
import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from payroll_core.calculators.types import (
    PayrollComputation,
    PayrollComputationInput,
    StatutoryContributionResult,
    round_currency,
)
from payroll_core.errors import InvalidArgumentError

if TYPE_CHECKING:
    from payroll_core.config import EngineConfig

logger = logging.getLogger(__name__)

PAYROLL_KEY_SEPARATOR = "|"
HOURS_PER_DAY = 8
MINUTES_PER_DAY = 480


def build_payroll_key(
    employee_id: str,
    cutoff_start_date: date | str,
    cutoff_end_date: date | str,
    pay_date: date | str,
) -> str:
    """Build the composite key employeeId|cutoffStart|cutoffEnd|payDate.

    The same four values always produce the same key, which makes repeated
    calculations for one period land on one record.
    """
    parts = []
    for name, value in (
        ("employeeId", employee_id),
        ("cutoffStartDate", cutoff_start_date),
        ("cutoffEndDate", cutoff_end_date),
        ("payDate", pay_date),
    ):
        text = value.isoformat() if isinstance(value, date) else str(value or "").strip()
        if not text:
            raise InvalidArgumentError(f"{name} is required to build a payroll key")
        if PAYROLL_KEY_SEPARATOR in text:
            raise InvalidArgumentError(f"{name} must not contain '{PAYROLL_KEY_SEPARATOR}'")
        parts.append(text)
    return PAYROLL_KEY_SEPARATOR.join(parts)


def payroll_id_for_key(payroll_key: str) -> UUID:
    """Derive the record id from its key (first 16 bytes of SHA-256)."""
    digest = hashlib.sha256(payroll_key.encode()).hexdigest()
    return UUID(digest[:32])


class PayrollAssembler:
    """Turns base pay, attendance adjustments and statutory figures into a record.

    Derivation order (each value rounded to cents before it feeds the next):
    1) daily, hourly and per-minute rates
    2) late, undertime, absence and half-day values
    3) overtime pay at the fixed hourly overtime rate, applied per minute
    4) total deductions, gross pay, net pay
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    def assemble(
        self,
        inputs: PayrollComputationInput,
        statutory: StatutoryContributionResult,
    ) -> PayrollComputation:
        working_days = max(1, int(inputs.working_days))
        basic_pay = round_currency(inputs.basic_pay)
        allowance = round_currency(inputs.allowance)
        transport_allowance = round_currency(inputs.transport_allowance)
        refreshment = round_currency(inputs.refreshment)
        cash_advance = round_currency(inputs.cash_advance)
        memo = round_currency(inputs.memo)
        adj = inputs.adjustment

        daily_rate = round_currency(basic_pay / working_days)
        per_hour_rate = round_currency(daily_rate / HOURS_PER_DAY)
        per_minute_rate = round_currency(daily_rate / MINUTES_PER_DAY)

        total_late = round_currency(adj.minutes_late * per_minute_rate)
        total_undertime = round_currency(adj.undertime_minutes * per_minute_rate)
        absent_value = round_currency(adj.absent_days * daily_rate)
        half_day_value = round_currency(adj.half_day_units * per_minute_rate)
        total_absent = round_currency(absent_value + half_day_value)

        overtime_rate = Decimal(self.config.overtime_rate_per_hour)
        overtime_pay = round_currency(adj.overtime_minutes * (overtime_rate / 60))

        if statutory.include_taxes:
            total_tax_deductions = round_currency(
                statutory.sss_employee
                + statutory.pagibig_employee
                + statutory.philhealth_employee
                + statutory.withholding_tax
            )
        else:
            total_tax_deductions = Decimal("0.00")

        total_deductions = round_currency(
            refreshment
            + total_late
            + total_undertime
            + total_absent
            + total_tax_deductions
            + cash_advance
        )
        gross_pay = round_currency(basic_pay + allowance + transport_allowance + overtime_pay)
        net_pay = round_currency(gross_pay - total_deductions)

        payroll_key = build_payroll_key(
            inputs.employee_id,
            inputs.cutoff_start_date,
            inputs.cutoff_end_date,
            inputs.pay_date,
        )
        month = inputs.month or inputs.cutoff_start_date.strftime("%Y-%m")

        logger.debug(
            "Assembled payroll %s: gross=%s deductions=%s net=%s",
            payroll_key,
            gross_pay,
            total_deductions,
            net_pay,
        )

        return PayrollComputation(
            payroll_key=payroll_key,
            month=month,
            working_days=working_days,
            basic_pay=basic_pay,
            allowance=allowance,
            transport_allowance=transport_allowance,
            refreshment=refreshment,
            cash_advance=cash_advance,
            memo=memo,
            minutes_late=adj.minutes_late,
            absent_days=adj.absent_days,
            half_day_units=adj.half_day_units,
            overtime_minutes=adj.overtime_minutes,
            undertime_minutes=adj.undertime_minutes,
            daily_rate=daily_rate,
            per_hour_rate=per_hour_rate,
            per_minute_rate=per_minute_rate,
            total_late=total_late,
            total_undertime=total_undertime,
            absent_value=absent_value,
            half_day_value=half_day_value,
            total_absent=total_absent,
            overtime_rate_per_hour=round_currency(overtime_rate),
            overtime_pay=overtime_pay,
            include_taxes=statutory.include_taxes,
            sss_employee=statutory.sss_employee,
            sss_employer=statutory.sss_employer,
            pagibig_employee=statutory.pagibig_employee,
            pagibig_employer=statutory.pagibig_employer,
            philhealth_employee=statutory.philhealth_employee,
            philhealth_employer=statutory.philhealth_employer,
            withholding_tax=statutory.withholding_tax,
            total_tax_deductions=total_tax_deductions,
            statutory_employee_total=statutory.statutory_employee_total,
            statutory_employer_total=statutory.statutory_employer_total,
            total_employer_contributions=statutory.total_employer_contributions,
            additional_employee_deductions=statutory.additional_employee_deductions,
            total_deductions=total_deductions,
            gross_pay=gross_pay,
            net_pay=net_pay,
            tax_configuration=statutory.tax_configuration,
        )
