"""Unit tests for payroll assembly and payroll keys."""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from payroll_core.calculators.engine import (
    PayrollAssembler,
    build_payroll_key,
    payroll_id_for_key,
)
from payroll_core.calculators.tax_calculator import TaxCalculator
from payroll_core.calculators.types import AttendanceAdjustment, PayrollComputationInput, round_currency
from payroll_core.config import EngineConfig
from payroll_core.errors import InvalidArgumentError


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def assembler(config) -> PayrollAssembler:
    return PayrollAssembler(config)


def make_inputs(**overrides) -> PayrollComputationInput:
    values = dict(
        company_id="acme",
        employee_id="emp-001",
        cutoff_start_date=date(2024, 3, 1),
        cutoff_end_date=date(2024, 3, 15),
        pay_date=date(2024, 3, 20),
        basic_pay=Decimal("11000"),
        working_days=22,
    )
    values.update(overrides)
    return PayrollComputationInput(**values)


def assemble(assembler, config, include_taxes=False, **overrides):
    inputs = make_inputs(**overrides)
    statutory = TaxCalculator(config).compute(inputs.basic_pay, include_taxes=include_taxes)
    return assembler.assemble(inputs, statutory)


class TestRates:
    """Test derived daily, hourly and per-minute rates."""

    def test_rates_rounded_at_each_step(self, assembler, config):
        result = assemble(assembler, config)

        assert result.daily_rate == Decimal("500.00")
        assert result.per_hour_rate == Decimal("62.50")
        # 500 / 480 = 1.0416.. -> 1.04
        assert result.per_minute_rate == Decimal("1.04")

    def test_late_uses_rounded_per_minute_rate(self, assembler, config):
        result = assemble(
            assembler, config, adjustment=AttendanceAdjustment(minutes_late=Decimal("15"))
        )

        assert result.total_late == Decimal("15.60")
        assert result.net_pay == Decimal("10984.40")

    @pytest.mark.parametrize("working_days", [0, -3])
    def test_working_days_floor_at_one(self, assembler, config, working_days):
        inputs = make_inputs(working_days=working_days)
        statutory = TaxCalculator(config).compute(inputs.basic_pay, include_taxes=False)

        result = assembler.assemble(inputs, statutory)

        assert result.working_days == 1
        assert result.daily_rate == Decimal("11000.00")


class TestAssemble:
    """Test full record derivation."""

    FULL = dict(
        allowance=Decimal("1000"),
        transport_allowance=Decimal("500"),
        refreshment=Decimal("100"),
        cash_advance=Decimal("200"),
        memo=Decimal("50"),
        adjustment=AttendanceAdjustment(
            minutes_late=Decimal("15"),
            undertime_minutes=Decimal("30"),
            absent_days=Decimal("1"),
            half_day_units=Decimal("240"),
            overtime_minutes=Decimal("120"),
        ),
    )

    def test_full_example(self, assembler, config):
        result = assemble(assembler, config, **self.FULL)

        assert result.total_late == Decimal("15.60")
        assert result.total_undertime == Decimal("31.20")
        assert result.absent_value == Decimal("500.00")
        assert result.half_day_value == Decimal("249.60")
        assert result.total_absent == Decimal("749.60")
        assert result.overtime_pay == Decimal("257.70")
        assert result.total_tax_deductions == Decimal("0.00")
        assert result.total_deductions == Decimal("1096.40")
        assert result.gross_pay == Decimal("12757.70")
        assert result.net_pay == Decimal("11661.30")

    def test_memo_is_stored_but_not_deducted(self, assembler, config):
        with_memo = assemble(assembler, config, memo=Decimal("999"))
        without_memo = assemble(assembler, config)

        assert with_memo.memo == Decimal("999.00")
        assert with_memo.net_pay == without_memo.net_pay

    def test_with_taxes(self, assembler, config):
        result = assemble(assembler, config, include_taxes=True, **self.FULL)

        # sss 935 + pag-ibig 100 + philhealth 275, no withholding below exemption
        assert result.include_taxes is True
        assert result.sss_employee == Decimal("935.00")
        assert result.withholding_tax == Decimal("0.00")
        assert result.total_tax_deductions == Decimal("1310.00")
        assert result.total_deductions == Decimal("2406.40")
        assert result.net_pay == Decimal("10351.30")

    def test_net_pay_identity(self, assembler, config):
        result = assemble(assembler, config, include_taxes=True, **self.FULL)

        assert result.net_pay == result.gross_pay - result.total_deductions
        assert result.total_absent == result.absent_value + result.half_day_value
        assert result.gross_pay == (
            result.basic_pay + result.allowance + result.transport_allowance + result.overtime_pay
        )

    def test_custom_overtime_rate(self, config):
        assembler = PayrollAssembler(EngineConfig(overtime_rate_per_hour=Decimal("150")))
        result = assemble(
            assembler, config, adjustment=AttendanceAdjustment(overtime_minutes=Decimal("30"))
        )

        assert result.overtime_rate_per_hour == Decimal("150.00")
        assert result.overtime_pay == Decimal("75.00")

    def test_month_defaults_to_cutoff_start(self, assembler, config):
        assert assemble(assembler, config).month == "2024-03"
        assert assemble(assembler, config, month="2024-04").month == "2024-04"

    def test_zero_basic_pay(self, assembler, config):
        result = assemble(assembler, config, basic_pay=Decimal("0"))

        assert result.daily_rate == Decimal("0.00")
        assert result.net_pay == Decimal("0.00")


class TestPayrollKey:
    """Test composite key construction and derived ids."""

    def test_key_format(self):
        key = build_payroll_key("emp-001", date(2024, 3, 1), "2024-03-15", date(2024, 3, 20))
        assert key == "emp-001|2024-03-01|2024-03-15|2024-03-20"

    def test_assembled_record_carries_key(self, assembler, config):
        assert assemble(assembler, config).payroll_key == "emp-001|2024-03-01|2024-03-15|2024-03-20"

    @pytest.mark.parametrize(
        "parts",
        [
            ("", "2024-03-01", "2024-03-15", "2024-03-20"),
            ("emp-001", None, "2024-03-15", "2024-03-20"),
            ("emp|001", "2024-03-01", "2024-03-15", "2024-03-20"),
        ],
    )
    def test_invalid_parts_rejected(self, parts):
        with pytest.raises(InvalidArgumentError):
            build_payroll_key(*parts)

    def test_payroll_id_is_deterministic(self):
        key = "emp-001|2024-03-01|2024-03-15|2024-03-20"

        assert payroll_id_for_key(key) == payroll_id_for_key(key)
        assert payroll_id_for_key(key) != payroll_id_for_key(key.replace("emp-001", "emp-002"))


amounts = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("500000"), places=2, allow_nan=False, allow_infinity=False
)
counts = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("600"), places=0, allow_nan=False, allow_infinity=False
)


class TestAssemblyProperties:
    """Property tests for the record identities over random inputs."""

    @given(
        basic_pay=amounts,
        allowance=amounts,
        transport_allowance=amounts,
        refreshment=amounts,
        cash_advance=amounts,
        working_days=st.integers(min_value=-5, max_value=31),
        minutes_late=counts,
        undertime_minutes=counts,
        absent_days=st.decimals(min_value=Decimal("0"), max_value=Decimal("31"), places=1),
        half_day_units=counts,
        overtime_minutes=counts,
        include_taxes=st.booleans(),
    )
    @settings(max_examples=100, deadline=None)
    def test_record_identities_hold(
        self,
        basic_pay,
        allowance,
        transport_allowance,
        refreshment,
        cash_advance,
        working_days,
        minutes_late,
        undertime_minutes,
        absent_days,
        half_day_units,
        overtime_minutes,
        include_taxes,
    ):
        """Net, gross and absence totals are always consistent with their parts."""
        config = EngineConfig()
        inputs = make_inputs(
            basic_pay=basic_pay,
            allowance=allowance,
            transport_allowance=transport_allowance,
            refreshment=refreshment,
            cash_advance=cash_advance,
            working_days=working_days,
            adjustment=AttendanceAdjustment(
                minutes_late=minutes_late,
                undertime_minutes=undertime_minutes,
                absent_days=absent_days,
                half_day_units=half_day_units,
                overtime_minutes=overtime_minutes,
            ),
        )
        statutory = TaxCalculator(config).compute(basic_pay, include_taxes=include_taxes)

        result = PayrollAssembler(config).assemble(inputs, statutory)

        assert result.working_days == max(1, working_days)
        assert result.net_pay == round_currency(result.gross_pay - result.total_deductions)
        assert result.gross_pay == (
            result.basic_pay + result.allowance + result.transport_allowance + result.overtime_pay
        )
        assert result.total_absent == result.absent_value + result.half_day_value
        assert result.total_deductions == (
            result.refreshment
            + result.total_late
            + result.total_undertime
            + result.total_absent
            + result.total_tax_deductions
            + result.cash_advance
        )
        if not include_taxes:
            assert result.total_tax_deductions == Decimal("0.00")
