"""Statutory contributions and progressive withholding tax."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import schemas
from payroll_core.calculators.types import (
    ZERO,
    Contribution,
    StatutoryContributionResult,
    TaxBracket,
    TaxConfiguration,
    round_currency,
)
from payroll_core.errors import InvalidArgumentError
from payroll_core.models import CompanyTaxConfig

if TYPE_CHECKING:
    from payroll_core.config import EngineConfig

logger = logging.getLogger(__name__)

SSS_SALARY_CREDIT_CAP = Decimal("20000")
SSS_EMPLOYEE_RATE = Decimal("0.085")
SSS_EMPLOYER_RATE = Decimal("0.115")

PAGIBIG_LOW_SALARY_THRESHOLD = Decimal("1500")
PAGIBIG_LOW_EMPLOYEE_RATE = Decimal("0.01")
PAGIBIG_RATE = Decimal("0.02")
PAGIBIG_CAP = Decimal("100")

PHILHEALTH_RATE = Decimal("0.025")
PHILHEALTH_FLOOR = Decimal("100")
PHILHEALTH_CEILING = Decimal("800")


def calculate_sss(monthly_salary: Decimal) -> Contribution:
    """SSS: 8.5% employee / 11.5% employer of the salary credit (capped at 20,000)."""
    if monthly_salary <= 0:
        return Contribution()
    credit = min(monthly_salary, SSS_SALARY_CREDIT_CAP)
    return Contribution(
        employee=round_currency(credit * SSS_EMPLOYEE_RATE),
        employer=round_currency(credit * SSS_EMPLOYER_RATE),
    )


def calculate_pagibig(monthly_salary: Decimal) -> Contribution:
    """Pag-IBIG: 1%/2% at or below 1,500, else 2%/2%; each share capped at 100."""
    if monthly_salary <= 0:
        return Contribution()
    if monthly_salary <= PAGIBIG_LOW_SALARY_THRESHOLD:
        employee_rate = PAGIBIG_LOW_EMPLOYEE_RATE
    else:
        employee_rate = PAGIBIG_RATE
    return Contribution(
        employee=round_currency(min(monthly_salary * employee_rate, PAGIBIG_CAP)),
        employer=round_currency(min(monthly_salary * PAGIBIG_RATE, PAGIBIG_CAP)),
    )


def calculate_philhealth(monthly_salary: Decimal) -> Contribution:
    """PhilHealth: 2.5% clamped to [100, 800], paid by both employee and employer."""
    if monthly_salary <= 0:
        return Contribution()
    share = round_currency(
        max(PHILHEALTH_FLOOR, min(monthly_salary * PHILHEALTH_RATE, PHILHEALTH_CEILING))
    )
    return Contribution(employee=share, employer=share)


def select_bracket(taxable_income: Decimal, brackets: Sequence[TaxBracket]) -> TaxBracket:
    """Select the first bracket whose upper bound covers taxable_income.

    Brackets are pre-sorted ascending. A malformed table with no covering
    bracket falls back to its last bracket.
    """
    if not brackets:
        raise InvalidArgumentError("Tax configuration has no brackets")
    for bracket in brackets:
        if bracket.contains(taxable_income):
            return bracket
    logger.warning(
        "No tax bracket covers taxable income %s; using last bracket (min %s)",
        taxable_income,
        brackets[-1].min_amount,
    )
    return brackets[-1]


def calculate_withholding_tax(
    monthly_salary: Decimal,
    statutory_employee_deductions: Decimal,
    additional_employee_deductions: Decimal,
    configuration: TaxConfiguration,
) -> Decimal:
    """Monthly withholding tax under the progressive bracket model."""
    if monthly_salary <= 0:
        return Decimal("0.00")

    taxable_income = (
        monthly_salary
        - configuration.personal_exemption
        - max(ZERO, statutory_employee_deductions)
        - max(ZERO, additional_employee_deductions)
    )
    if taxable_income <= 0:
        return Decimal("0.00")

    bracket = select_bracket(taxable_income, configuration.brackets)
    tax = bracket.base_tax + (taxable_income - bracket.base_amount) * bracket.rate
    return round_currency(max(ZERO, tax))


class TaxConfigurationResolver:
    """Resolves the tax configuration in effect for a calculation.

    Precedence: request-level override, then the company's stored
    configuration, then EngineConfig.default_tax_configuration.
    """

    def __init__(self, session: AsyncSession, config: EngineConfig):
        self.session = session
        self.config = config
        self._company_cache: dict[str, TaxConfiguration | None] = {}

    async def resolve(
        self,
        company_id: str | None = None,
        override: schemas.TaxConfigurationInput | None = None,
    ) -> TaxConfiguration:
        default = self.config.default_tax_configuration
        if override is not None:
            return override.to_configuration(fallback=default, source="override")

        if company_id:
            company_config = await self._get_company_configuration(company_id)
            if company_config is not None:
                return company_config

        return default

    async def _get_company_configuration(self, company_id: str) -> TaxConfiguration | None:
        """Load and normalize a company's stored tax configuration."""
        if company_id in self._company_cache:
            return self._company_cache[company_id]

        row = await self.session.get(CompanyTaxConfig, company_id)
        configuration = None
        if row is not None:
            try:
                parsed = schemas.validate_input(
                    schemas.TaxConfigurationInput,
                    {"personalExemption": row.personal_exemption, "brackets": row.brackets or []},
                )
                if row.brackets and not parsed.brackets:
                    raise InvalidArgumentError(
                        "No valid tax brackets",
                        [{"field": "brackets", "message": "every bracket was invalid"}],
                    )
                configuration = parsed.to_configuration(
                    fallback=self.config.default_tax_configuration,
                    source=f"company:{company_id}",
                    version=row.version,
                )
            except InvalidArgumentError as e:
                logger.warning(
                    "Ignoring malformed tax configuration for company %s: %s",
                    company_id,
                    e.details,
                )

        self._company_cache[company_id] = configuration
        return configuration


class TaxCalculator:
    """Computes statutory contributions and withholding tax."""

    def __init__(self, config: EngineConfig):
        self.config = config

    def compute(
        self,
        monthly_salary: Decimal,
        include_taxes: bool = True,
        additional_employee_deductions: Decimal = ZERO,
        configuration: TaxConfiguration | None = None,
    ) -> StatutoryContributionResult:
        """Compute contributions and withholding for one monthly salary.

        Every figure is rounded where it is produced. With include_taxes
        off (or a non-positive salary) every amount is zero.
        """
        salary = max(ZERO, monthly_salary)
        include = bool(include_taxes) and salary > 0
        configuration = configuration or self.config.default_tax_configuration

        if include:
            sss = calculate_sss(salary)
            pagibig = calculate_pagibig(salary)
            philhealth = calculate_philhealth(salary)
        else:
            sss = pagibig = philhealth = Contribution()

        zero = Decimal("0.00")
        statutory_employee = (
            round_currency(sss.employee + pagibig.employee + philhealth.employee) if include else zero
        )
        statutory_employer = (
            round_currency(sss.employer + pagibig.employer + philhealth.employer) if include else zero
        )
        additional = (
            round_currency(max(ZERO, additional_employee_deductions)) if include else zero
        )
        withholding = (
            calculate_withholding_tax(salary, statutory_employee, additional, configuration)
            if include
            else zero
        )

        return StatutoryContributionResult(
            include_taxes=include,
            monthly_salary=round_currency(salary),
            sss_employee=sss.employee,
            sss_employer=sss.employer,
            pagibig_employee=pagibig.employee,
            pagibig_employer=pagibig.employer,
            philhealth_employee=philhealth.employee,
            philhealth_employer=philhealth.employer,
            withholding_tax=withholding,
            statutory_employee_total=statutory_employee,
            statutory_employer_total=statutory_employer,
            additional_employee_deductions=additional,
            total_employee_deductions=(
                round_currency(statutory_employee + additional + withholding) if include else zero
            ),
            total_employer_contributions=statutory_employer,
            tax_configuration=configuration.summary(),
        )
