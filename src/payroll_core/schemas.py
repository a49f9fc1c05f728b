"""Pydantic schemas for engine inputs.

Payloads are validated once at the boundary; the calculators only ever see
the typed values these models produce.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from payroll_core.calculators.types import (
    AttendanceAdjustment,
    TaxBracket,
    TaxConfiguration,
)
from payroll_core.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _blank_to_zero(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return Decimal("0")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


Amount = Annotated[Decimal, BeforeValidator(_blank_to_zero), Field(ge=0)]
NonNegativeDecimal = Annotated[Decimal, Field(ge=0)]
OptionalAmount = Annotated[NonNegativeDecimal | None, BeforeValidator(_blank_to_none)]
Identifier = Annotated[str, Field(min_length=1)]


def validate_input(model: type[ModelT], payload: Any) -> ModelT:
    """Validate a raw payload, raising InvalidArgumentError on failure.

    The error details carry pydantic's per-field error list (loc/msg/type).
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        details = [
            {
                "field": ".".join(str(p) for p in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in e.errors()
        ]
        fields = ", ".join(d["field"] or "payload" for d in details)
        raise InvalidArgumentError(f"Invalid {model.__name__}: {fields}", details) from e


class InputModel(BaseModel):
    """Base input schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


# ============================================================================
# Tax configuration
# ============================================================================


class TaxBracketInput(InputModel):
    """One bracket of a tax table: {min, max, baseTax, baseAmount, rate}."""

    min_amount: Decimal = Field(default=Decimal("0"), ge=0, alias="min")
    max_amount: Decimal | None = Field(default=None, alias="max")
    base_tax: Amount = Decimal("0")
    base_amount: Decimal | None = Field(default=None, ge=0)
    rate: Decimal

    @field_validator("max_amount", mode="before")
    @classmethod
    def _unbounded(cls, value: Any) -> Any:
        # null, "" and Infinity all mean "no upper limit"
        if value is None or value == "" or value in ("Infinity", "inf"):
            return None
        return value

    @field_validator("rate")
    @classmethod
    def _normalize_rate(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("rate must not be negative")
        # 20 means 20%
        if value > 1:
            return value / 100
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> TaxBracketInput:
        if self.max_amount is not None and self.max_amount < self.min_amount:
            raise ValueError("max must not be below min")
        if self.base_amount is None:
            self.base_amount = self.min_amount
        return self

    def to_bracket(self) -> TaxBracket:
        return TaxBracket(
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            base_tax=self.base_tax,
            base_amount=self.base_amount if self.base_amount is not None else self.min_amount,
            rate=self.rate,
        )


class TaxConfigurationInput(InputModel):
    """A tax table supplied by a request, a company, or a file."""

    version: str | None = None
    personal_exemption: OptionalAmount = None
    brackets: list[TaxBracketInput] = Field(default_factory=list)

    @field_validator("brackets", mode="before")
    @classmethod
    def _drop_invalid_brackets(cls, value: Any) -> Any:
        # a bad bracket is dropped; the rest of the table still applies
        if not isinstance(value, list):
            return value
        kept = []
        for index, entry in enumerate(value):
            try:
                kept.append(TaxBracketInput.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    "Dropping invalid tax bracket %d (%s): %s",
                    index,
                    entry,
                    "; ".join(err["msg"] for err in e.errors()),
                )
        return kept

    def to_configuration(
        self,
        fallback: TaxConfiguration,
        source: str,
        version: str | None = None,
    ) -> TaxConfiguration:
        """Normalize into a TaxConfiguration, filling gaps from fallback.

        Brackets are sorted by min; an empty list keeps the fallback brackets.
        """
        brackets = tuple(
            b.to_bracket() for b in sorted(self.brackets, key=lambda b: b.min_amount)
        )
        return TaxConfiguration(
            personal_exemption=(
                self.personal_exemption
                if self.personal_exemption is not None
                else fallback.personal_exemption
            ),
            brackets=brackets or fallback.brackets,
            source=source,
            version=version or self.version or "custom",
        )


# ============================================================================
# Profiles
# ============================================================================


class EmployeeProfileInput(InputModel):
    """Embedded employee profile; skips the store lookup when supplied."""

    id: Identifier = Field(validation_alias=AliasChoices("id", "employeeId", "employee_id"))
    first_name: str = ""
    middle_name: str | None = None
    last_name: str = ""
    department: str | None = None
    position: str | None = None
    basic_pay: OptionalAmount = Field(
        default=None, validation_alias=AliasChoices("basicPay", "basicSalary", "basic_pay")
    )
    allowance: OptionalAmount = None
    transport_allowance: OptionalAmount = Field(
        default=None,
        validation_alias=AliasChoices("transportAllowance", "transpoAllowance", "transport_allowance"),
    )
    bank_account: str | None = None
    id_number: str | None = None
    working_days: int | None = Field(default=None, ge=0)

    @property
    def full_name(self) -> str:
        parts = [self.first_name]
        if self.middle_name:
            parts.append(f"{self.middle_name[0]}.")
        parts.append(self.last_name)
        return " ".join(p for p in parts if p).strip()


class CompanyProfileInput(InputModel):
    """Embedded company profile."""

    id: Identifier = Field(validation_alias=AliasChoices("id", "companyId", "company_id"))
    name: str = ""


# ============================================================================
# Payroll
# ============================================================================

ADJUSTMENT_FIELDS = {
    "minutesLate": ("minutesLate", "mins"),
    "minutesEarly": ("minutesEarly",),
    "overtimeMinutes": ("overtimeMinutes", "otMinutes"),
    "undertimeMinutes": ("undertimeMinutes", "undertime"),
    "absentDays": ("absentDays", "absent"),
    "halfDayUnits": ("halfDayUnits", "halfDay", "halfDayMinutes", "halfDays"),
}


class AttendanceAdjustmentInput(InputModel):
    """Attendance-derived adjustments for one pay run."""

    minutes_late: Amount = Decimal("0")
    minutes_early: Amount = Decimal("0")
    overtime_minutes: Amount = Decimal("0")
    undertime_minutes: Amount = Decimal("0")
    absent_days: Amount = Decimal("0")
    half_day_units: Amount = Decimal("0")

    def to_adjustment(self) -> AttendanceAdjustment:
        return AttendanceAdjustment(
            minutes_late=self.minutes_late,
            minutes_early=self.minutes_early,
            overtime_minutes=self.overtime_minutes,
            undertime_minutes=self.undertime_minutes,
            absent_days=self.absent_days,
            half_day_units=self.half_day_units,
        )


class PayrollPeriodInput(InputModel):
    """Cutoff period shared by a single or bulk payroll run."""

    cutoff_start_date: date
    cutoff_end_date: date
    pay_date: date
    month: str | None = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    working_days: int | None = Field(default=None, ge=0)

    @field_validator("month", mode="before")
    @classmethod
    def _blank_month(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @model_validator(mode="after")
    def _check_period(self) -> PayrollPeriodInput:
        if self.cutoff_end_date < self.cutoff_start_date:
            raise ValueError("cutoffEndDate must not be before cutoffStartDate")
        return self


class PayrollInput(PayrollPeriodInput):
    """Input for one payroll calculation.

    Attendance adjustments may be given nested under "adjustments" or at the
    top level (minutesLate, absentDays, ...); nested values win.
    """

    company_id: Identifier
    employee_id: Identifier
    employee: EmployeeProfileInput | None = None
    company: CompanyProfileInput | None = None
    basic_pay: OptionalAmount = Field(
        default=None, validation_alias=AliasChoices("basicPay", "basicSalary", "basic_pay")
    )
    allowance: OptionalAmount = None
    transport_allowance: OptionalAmount = Field(
        default=None,
        validation_alias=AliasChoices("transportAllowance", "transpoAllowance", "transport_allowance"),
    )
    refreshment: Amount = Decimal("0")
    cash_advance: Amount = Decimal("0")
    memo: Amount = Decimal("0")
    adjustments: AttendanceAdjustmentInput = Field(default_factory=AttendanceAdjustmentInput)
    include_taxes: bool = False
    additional_employee_deductions: Amount = Decimal("0")
    tax_configuration: TaxConfigurationInput | None = None
    processed_by: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        profile = data.get("employee")
        if not data.get("employeeId") and not data.get("employee_id") and isinstance(profile, dict):
            employee_id = profile.get("id") or profile.get("employeeId") or profile.get("employee_id")
            if employee_id:
                data = {**data, "employeeId": employee_id}
        period = data.get("payrollPeriod")
        if isinstance(period, dict):
            data = {**period, **{k: v for k, v in data.items() if v is not None}}
        nested = data.get("adjustments")
        nested = dict(nested) if isinstance(nested, dict) else {}
        for target, names in ADJUSTMENT_FIELDS.items():
            if target in nested:
                continue
            for name in names:
                if data.get(name) is not None:
                    nested[target] = data[name]
                    break
        return {**data, "adjustments": nested}


class BulkPayrollInput(InputModel):
    """Input for a bulk run.

    Entries stay raw here: each is merged with the shared period and company
    and validated on its own, so one malformed entry fails alone.
    """

    company_id: str | None = None
    payroll_period: dict[str, Any] = Field(default_factory=dict)
    employees: list[dict[str, Any]] = Field(min_length=1)
    include_taxes: bool | None = None
    processed_by: str | None = None
    chunk_size: int | None = None

    @field_validator("employees", mode="before")
    @classmethod
    def _entries_are_objects(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [v if isinstance(v, dict) else {"invalidEntry": v} for v in value]
        return value

    def entry_payload(self, entry: dict[str, Any]) -> dict[str, Any]:
        """Merge shared fields under one entry (entry values win)."""
        merged: dict[str, Any] = {}
        merged.update(self.payroll_period)
        entry_period = entry.get("payrollPeriod")
        if isinstance(entry_period, dict):
            merged.update(entry_period)
        if self.company_id:
            merged["companyId"] = self.company_id
        if self.include_taxes is not None:
            merged["includeTaxes"] = self.include_taxes
        if self.processed_by:
            merged["processedBy"] = self.processed_by
        merged.update({k: v for k, v in entry.items() if v is not None and k != "payrollPeriod"})
        return merged


class StatutoryDeductionInput(InputModel):
    """Input for a stand-alone statutory deduction computation."""

    monthly_salary: Amount = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("monthlySalary", "basicPay", "monthly_salary"),
    )
    include_taxes: bool = True
    company_id: str | None = None
    additional_employee_deductions: Amount = Decimal("0")
    tax_configuration: TaxConfigurationInput | None = None


# ============================================================================
# Attendance
# ============================================================================


class AttendanceInput(InputModel):
    """One day's clock values for an employee."""

    employee_id: Identifier
    work_date: date = Field(validation_alias=AliasChoices("date", "workDate", "work_date"))
    time_in: str | None = None
    time_out: str | None = None

    @field_validator("time_in", "time_out", mode="before")
    @classmethod
    def _blank_time(cls, value: Any) -> Any:
        return _blank_to_none(value)


# ============================================================================
# Thirteenth month
# ============================================================================


class ThirteenthMonthInput(InputModel):
    """Input for a 13th-month report over one or more employees."""

    company_id: Identifier
    year: int = Field(default_factory=lambda: date.today().year, ge=1900, le=9999)
    employee_ids: list[Identifier] = Field(default_factory=list)
    employees: list[EmployeeProfileInput] = Field(default_factory=list)
    include_saved: bool = True

    @model_validator(mode="before")
    @classmethod
    def _split_employee_entries(cls, data: Any) -> Any:
        # employees may mix bare ids and profiles; a single employeeId also works
        if not isinstance(data, dict):
            return data
        data = dict(data)
        snake_ids = data.pop("employee_ids", None)
        ids = data.pop("employeeIds", None) or snake_ids or []
        if isinstance(ids, str):
            ids = [ids]
        elif isinstance(ids, list):
            ids = list(ids)
        else:
            return {**data, "employeeIds": ids}
        single = data.get("employeeId") or data.get("employee_id")
        if isinstance(single, str):
            ids.append(single)
        entries = data.get("employees")
        if isinstance(entries, list):
            ids.extend(e for e in entries if isinstance(e, str))
            data["employees"] = [e for e in entries if not isinstance(e, str)]
        data["employeeIds"] = ids
        return data

    @model_validator(mode="after")
    def _collect_employee_ids(self) -> ThirteenthMonthInput:
        ids = list(dict.fromkeys([*self.employee_ids, *(e.id for e in self.employees)]))
        if not ids:
            raise ValueError("At least one employeeId is required")
        self.employee_ids = ids
        return self

    def profile_for(self, employee_id: str) -> EmployeeProfileInput | None:
        return next((e for e in self.employees if e.id == employee_id), None)


class MonthlyOverrideInput(InputModel):
    """One saved month of a 13th-month override."""

    month: int = Field(ge=1, le=12)
    net_pay: Amount
    deductions: Amount = Decimal("0")
    notes: str | None = None

    @field_validator("month", mode="before")
    @classmethod
    def _month_number(cls, value: Any) -> Any:
        # "2024-03" -> 3
        if isinstance(value, str) and "-" in value:
            return value.rsplit("-", 1)[1]
        return value


class ThirteenthMonthOverrideInput(InputModel):
    """Saved per-month net pay values for one employee and year."""

    company_id: Identifier
    employee_id: Identifier
    year: int = Field(ge=1900, le=9999)
    monthly_breakdown: list[MonthlyOverrideInput] = Field(default_factory=list)
    notes: str | None = None
    saved_by: str | None = None
