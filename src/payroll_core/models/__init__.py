"""ORM models."""

from payroll_core.models.base import Base, TimestampMixin
from payroll_core.models.company import Company, CompanyTaxConfig
from payroll_core.models.employee import Employee, EmployeeSchedule
from payroll_core.models.payroll import PayrollRecord, ThirteenthMonthOverride

__all__ = [
    "Base",
    "TimestampMixin",
    "Company",
    "CompanyTaxConfig",
    "Employee",
    "EmployeeSchedule",
    "PayrollRecord",
    "ThirteenthMonthOverride",
]
