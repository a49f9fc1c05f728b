"""Unit tests for statutory contributions and withholding tax."""

import logging
from decimal import Decimal

import pytest

from payroll_core.calculators.tax_calculator import (
    TaxCalculator,
    calculate_pagibig,
    calculate_philhealth,
    calculate_sss,
    calculate_withholding_tax,
    select_bracket,
)
from payroll_core.calculators.types import TaxBracket, TaxConfiguration
from payroll_core.config import EngineConfig, builtin_tax_configuration
from payroll_core.errors import InvalidArgumentError


@pytest.fixture
def calculator() -> TaxCalculator:
    return TaxCalculator(EngineConfig())


def flat_configuration(rate: str, exemption: str = "0") -> TaxConfiguration:
    return TaxConfiguration(
        personal_exemption=Decimal(exemption),
        brackets=(TaxBracket(Decimal("0"), None, Decimal("0"), Decimal("0"), Decimal(rate)),),
        source="test",
        version="flat",
    )


class TestContributions:
    """Test SSS, Pag-IBIG and PhilHealth shares."""

    def test_sss_below_cap(self):
        sss = calculate_sss(Decimal("15000"))
        assert sss.employee == Decimal("1275.00")
        assert sss.employer == Decimal("1725.00")

    def test_sss_salary_credit_capped(self):
        sss = calculate_sss(Decimal("50000"))
        assert sss.employee == Decimal("1700.00")
        assert sss.employer == Decimal("2300.00")

    def test_pagibig_low_salary(self):
        pagibig = calculate_pagibig(Decimal("1500"))
        assert pagibig.employee == Decimal("15.00")
        assert pagibig.employer == Decimal("30.00")

    def test_pagibig_capped(self):
        pagibig = calculate_pagibig(Decimal("11000"))
        assert pagibig.employee == Decimal("100.00")
        assert pagibig.employer == Decimal("100.00")

    def test_philhealth_floor_and_ceiling(self):
        assert calculate_philhealth(Decimal("1000")).employee == Decimal("100.00")
        assert calculate_philhealth(Decimal("11000")).employee == Decimal("275.00")
        assert calculate_philhealth(Decimal("50000")).employer == Decimal("800.00")

    def test_zero_salary_pays_nothing(self):
        for contribution in (
            calculate_sss(Decimal("0")),
            calculate_pagibig(Decimal("0")),
            calculate_philhealth(Decimal("0")),
        ):
            assert contribution.employee == Decimal("0.00")
            assert contribution.employer == Decimal("0.00")


class TestWithholdingTax:
    """Test progressive bracket withholding."""

    def test_zero_below_exemption(self):
        tax = calculate_withholding_tax(
            Decimal("15000"), Decimal("0"), Decimal("0"), builtin_tax_configuration()
        )
        assert tax == Decimal("0.00")

    def test_bracket_formula(self):
        # taxable = 50000 - 20833.33 - 2600 = 26566.67 -> 6250 + 1566.67 * 0.32
        tax = calculate_withholding_tax(
            Decimal("50000"), Decimal("2600"), Decimal("0"), builtin_tax_configuration()
        )
        assert tax == Decimal("6751.33")

    def test_additional_deductions_reduce_taxable_income(self):
        tax = calculate_withholding_tax(
            Decimal("50000"), Decimal("2600"), Decimal("1000"), builtin_tax_configuration()
        )
        assert tax == Decimal("6431.33")

    def test_last_bracket_is_unbounded(self):
        bracket = select_bracket(Decimal("1000000"), builtin_tax_configuration().brackets)
        assert bracket.max_amount is None
        assert bracket.rate == Decimal("0.40")

    def test_uncovered_income_falls_back_to_last_bracket(self, caplog):
        brackets = (
            TaxBracket(Decimal("0"), Decimal("1000"), Decimal("0"), Decimal("0"), Decimal("0.05")),
            TaxBracket(Decimal("1000.01"), Decimal("2000"), Decimal("50"), Decimal("1000"), Decimal("0.10")),
        )

        with caplog.at_level(logging.WARNING, logger="payroll_core.calculators.tax_calculator"):
            bracket = select_bracket(Decimal("5000"), brackets)

        assert bracket is brackets[-1]
        assert "No tax bracket covers" in caplog.text

    def test_empty_brackets_rejected(self):
        with pytest.raises(InvalidArgumentError):
            select_bracket(Decimal("100"), ())


class TestCompute:
    """Test the full statutory result."""

    def test_includes_all_components(self, calculator):
        result = calculator.compute(Decimal("50000"))

        assert result.include_taxes is True
        assert result.statutory_employee_total == Decimal("2600.00")
        assert result.statutory_employer_total == Decimal("3200.00")
        assert result.withholding_tax == Decimal("6751.33")
        assert result.total_employee_deductions == Decimal("9351.33")
        assert result.total_employer_contributions == Decimal("3200.00")
        assert result.tax_configuration["version"] == "builtin-2023"

    def test_salary_below_exemption(self, calculator):
        result = calculator.compute(Decimal("15000"))

        assert result.withholding_tax == Decimal("0.00")
        assert result.sss_employee == Decimal("1275.00")
        assert result.philhealth_employee == Decimal("375.00")

    def test_excluded_taxes_return_zeroed_shape(self, calculator):
        result = calculator.compute(Decimal("50000"), include_taxes=False)
        data = result.to_dict()

        assert result.include_taxes is False
        for key in (
            "sssEmployee",
            "sssEmployer",
            "pagibigEmployee",
            "pagibigEmployer",
            "philhealthEmployee",
            "philhealthEmployer",
            "withholdingTax",
            "statutoryEmployeeTotal",
            "totalEmployeeDeductions",
            "totalEmployerContributions",
        ):
            assert data[key] == Decimal("0.00"), key
        assert data["taxConfiguration"]["source"] == "default"

    def test_zero_salary_disables_taxes(self, calculator):
        result = calculator.compute(Decimal("0"), include_taxes=True)

        assert result.include_taxes is False
        assert result.total_employee_deductions == Decimal("0.00")

    def test_additional_deductions_reported(self, calculator):
        result = calculator.compute(Decimal("50000"), additional_employee_deductions=Decimal("1000"))

        assert result.additional_employee_deductions == Decimal("1000.00")
        assert result.withholding_tax == Decimal("6431.33")
        assert result.total_employee_deductions == Decimal("10031.33")

    def test_injected_default_table(self):
        config = EngineConfig(default_tax_configuration=flat_configuration("0.10"))
        result = TaxCalculator(config).compute(Decimal("10000"))

        # statutory 850 + 100 + 250 = 1200; taxable 8800
        assert result.statutory_employee_total == Decimal("1200.00")
        assert result.withholding_tax == Decimal("880.00")
        assert result.tax_configuration["version"] == "flat"

    def test_explicit_configuration_wins(self, calculator):
        result = calculator.compute(Decimal("10000"), configuration=flat_configuration("0.05"))

        assert result.withholding_tax == Decimal("440.00")
