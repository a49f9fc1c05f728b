"""Payroll calculation pipeline."""

from payroll_core.calculators.attendance import resolve_time_status, summarize_attendance
from payroll_core.calculators.engine import PayrollAssembler, build_payroll_key
from payroll_core.calculators.tax_calculator import TaxCalculator, TaxConfigurationResolver

__all__ = [
    "PayrollAssembler",
    "TaxCalculator",
    "TaxConfigurationResolver",
    "build_payroll_key",
    "resolve_time_status",
    "summarize_attendance",
]
