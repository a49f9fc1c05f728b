"""Payroll service - calculation, idempotent persistence and bulk runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.calculators.engine import PayrollAssembler, payroll_id_for_key
from payroll_core.calculators.tax_calculator import TaxCalculator, TaxConfigurationResolver
from payroll_core.calculators.types import (
    PayrollComputation,
    PayrollComputationInput,
    StatutoryContributionResult,
    TaxConfiguration,
)
from payroll_core.errors import (
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PayrollError,
)
from payroll_core.models import Company, Employee, PayrollRecord
from payroll_core.models.base import utcnow
from payroll_core.schemas import (
    BulkPayrollInput,
    CompanyProfileInput,
    EmployeeProfileInput,
    PayrollInput,
    StatutoryDeductionInput,
    validate_input,
)
from payroll_core.services.activity import (
    Activity,
    ActivityRecorder,
    NullActivityRecorder,
    record_safely,
)

if TYPE_CHECKING:
    from payroll_core.config import EngineConfig

logger = logging.getLogger(__name__)


@dataclass
class PayrollCalculationResult:
    """Outcome of one calculation: the stored record and whether it was new."""

    payroll_id: UUID
    payroll_key: str
    employee_id: str
    company_id: str
    created: bool
    payroll: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "payrollId": str(self.payroll_id),
            "payrollKey": self.payroll_key,
            "employeeId": self.employee_id,
            "companyId": self.company_id,
            "created": self.created,
            "payroll": self.payroll,
        }


@dataclass
class BulkPayrollResult:
    """Outcome of a bulk run; successful entries are committed regardless of failures."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    results: list[PayrollCalculationResult] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
        }


@dataclass
class _Profiles:
    employee_id: str
    employee_name: str
    department: str | None
    position: str | None
    bank_account: str | None
    id_number: str | None
    basic_pay: Decimal | None
    allowance: Decimal | None
    transport_allowance: Decimal | None
    working_days: int | None
    company_id: str
    company_name: str


class PayrollService:
    """Computes payroll records and persists them idempotently by payroll key.

    Every write is a read-modify-write inside one transaction: the existing
    row is read FOR UPDATE, so concurrent calculations of the same key
    serialize. An insert that loses a race to a concurrent insert hits the
    unique constraint inside its savepoint and is applied as an update.

    Bulk runs commit one transaction per chunk; each entry runs in its own
    savepoint so a failing entry is skipped without aborting the chunk.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: EngineConfig,
        recorder: ActivityRecorder | None = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.recorder = recorder or NullActivityRecorder()
        self.tax_calculator = TaxCalculator(config)
        self.assembler = PayrollAssembler(config)

    # ------------------------------------------------------------------
    # Single calculation
    # ------------------------------------------------------------------

    async def calculate_payroll(self, payload: PayrollInput | dict[str, Any]) -> PayrollCalculationResult:
        """Calculate and persist one payroll record.

        Raises:
            InvalidArgumentError: Malformed payload
            NotFoundError: Employee or company does not exist
            FailedPreconditionError: Key already belongs to another company
            InternalError: Tax computation or persistence failure
        """
        data = validate_input(PayrollInput, payload)

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    outcome = await self._calculate_and_upsert(session, data)
            except PayrollError:
                raise
            except SQLAlchemyError as e:
                logger.exception("Failed to persist payroll for employee %s", data.employee_id)
                raise InternalError("Failed to persist payroll record.") from e

        logger.info(
            "Payroll %s %s (net %s)",
            outcome.payroll_key,
            "created" if outcome.created else "updated",
            outcome.payroll["net_pay"],
        )
        await self._record(outcome, data.processed_by)
        return outcome

    # ------------------------------------------------------------------
    # Bulk calculation
    # ------------------------------------------------------------------

    async def bulk_calculate_payroll(self, payload: BulkPayrollInput | dict[str, Any]) -> BulkPayrollResult:
        """Calculate many payroll records in fixed-size chunks.

        Failures are isolated per entry and reported in errors; a chunk's
        successful entries commit together. A failed chunk commit marks only
        that chunk's entries as failed. Cancelling the run leaves already
        committed chunks in place.
        """
        bulk = validate_input(BulkPayrollInput, payload)
        chunk_size = self._clamp_chunk_size(bulk.chunk_size)
        entries = bulk.employees
        result = BulkPayrollResult()

        for start in range(0, len(entries), chunk_size):
            chunk = entries[start:start + chunk_size]
            await self._process_chunk(bulk, chunk, start, result)

        result.errors.sort(key=lambda e: e["index"])
        logger.info(
            "Bulk payroll finished: processed=%d created=%d updated=%d failed=%d",
            result.processed,
            result.created,
            result.updated,
            result.failed,
        )
        return result

    def _clamp_chunk_size(self, requested: int | None) -> int:
        size = requested if requested is not None else self.config.bulk_chunk_size
        return min(max(1, size), self.config.max_batch_size)

    async def _process_chunk(
        self,
        bulk: BulkPayrollInput,
        chunk: list[dict[str, Any]],
        start: int,
        result: BulkPayrollResult,
    ) -> None:
        """Run one chunk inside a single transaction."""
        outcomes: list[tuple[int, PayrollCalculationResult]] = []
        errors: list[dict[str, Any]] = []

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    for offset, entry in enumerate(chunk):
                        index = start + offset
                        employee_id = _entry_employee_id(entry)
                        try:
                            data = validate_input(PayrollInput, bulk.entry_payload(entry))
                            async with session.begin_nested():
                                outcome = await self._calculate_and_upsert(session, data)
                        except PayrollError as e:
                            logger.warning(
                                "Bulk entry %d (employee %s) failed: %s %s",
                                index,
                                employee_id,
                                e.code,
                                e.message,
                            )
                            errors.append(_entry_error(index, employee_id, e))
                            continue
                        except Exception as e:
                            logger.exception("Bulk entry %d (employee %s) failed", index, employee_id)
                            errors.append(
                                _entry_error(
                                    index,
                                    employee_id,
                                    InternalError(f"Failed to process payroll entry: {e}"),
                                )
                            )
                            continue
                        outcomes.append((index, outcome))
            except SQLAlchemyError:
                logger.exception("Bulk chunk starting at %d failed to commit", start)
                commit_error = InternalError("Failed to commit payroll batch.")
                errors.extend(
                    _entry_error(index, outcome.employee_id, commit_error)
                    for index, outcome in outcomes
                )
                outcomes = []

        result.errors.extend(errors)
        result.failed += len(errors)
        for _, outcome in outcomes:
            result.processed += 1
            if outcome.created:
                result.created += 1
            else:
                result.updated += 1
            result.results.append(outcome)

        logger.info(
            "Bulk chunk at %d committed %d entries (%d failed)",
            start,
            len(outcomes),
            len(errors),
        )
        for _, outcome in outcomes:
            await self._record(outcome, bulk.processed_by)

    # ------------------------------------------------------------------
    # Statutory deductions
    # ------------------------------------------------------------------

    async def compute_statutory_deductions(
        self, payload: StatutoryDeductionInput | dict[str, Any]
    ) -> StatutoryContributionResult:
        """Compute contributions and withholding without persisting anything."""
        data = validate_input(StatutoryDeductionInput, payload)
        async with self.session_factory() as session:
            resolver = TaxConfigurationResolver(session, self.config)
            configuration = await resolver.resolve(data.company_id, data.tax_configuration)
        return self._compute_statutory(
            data.monthly_salary,
            data.include_taxes,
            data.additional_employee_deductions,
            configuration,
        )

    def _compute_statutory(
        self,
        monthly_salary: Decimal,
        include_taxes: bool,
        additional: Decimal,
        configuration: TaxConfiguration,
    ) -> StatutoryContributionResult:
        try:
            return self.tax_calculator.compute(
                monthly_salary,
                include_taxes=include_taxes,
                additional_employee_deductions=additional,
                configuration=configuration,
            )
        except PayrollError:
            raise
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.exception("Statutory deduction computation failed")
            raise InternalError("Failed to compute statutory deductions.") from e

    # ------------------------------------------------------------------
    # Reads and deletes
    # ------------------------------------------------------------------

    async def get_payroll(self, payroll_key: str) -> dict[str, Any]:
        """Point read of a payroll record by key."""
        async with self.session_factory() as session:
            record = await self._find_by_key(session, payroll_key, for_update=False)
        if record is None:
            raise NotFoundError("Payroll", payroll_key)
        return record.to_dict()

    async def delete_payroll_by_period(
        self,
        company_id: str,
        pay_date: date | str,
        cutoff_start_date: date | str | None = None,
        cutoff_end_date: date | str | None = None,
    ) -> int:
        """Delete a company's records for a pay date. Returns the number deleted."""
        if not company_id:
            raise InvalidArgumentError("companyId and payDate are required")
        return await self._delete_where(
            company_id,
            _parse_date("payDate", pay_date),
            None,
            _parse_date("cutoffStartDate", cutoff_start_date, required=False),
            _parse_date("cutoffEndDate", cutoff_end_date, required=False),
        )

    async def delete_payroll_by_employee(
        self,
        company_id: str,
        pay_date: date | str,
        employee_id: str,
        cutoff_start_date: date | str | None = None,
        cutoff_end_date: date | str | None = None,
    ) -> int:
        """Delete one employee's records for a pay date. Returns the number deleted."""
        if not company_id or not employee_id:
            raise InvalidArgumentError("companyId, payDate and employeeId are required")
        return await self._delete_where(
            company_id,
            _parse_date("payDate", pay_date),
            employee_id,
            _parse_date("cutoffStartDate", cutoff_start_date, required=False),
            _parse_date("cutoffEndDate", cutoff_end_date, required=False),
        )

    async def _delete_where(
        self,
        company_id: str,
        pay_date: date,
        employee_id: str | None,
        cutoff_start_date: date | None,
        cutoff_end_date: date | None,
    ) -> int:
        stmt = delete(PayrollRecord).where(
            PayrollRecord.company_id == company_id,
            PayrollRecord.pay_date == pay_date,
        )
        if employee_id:
            stmt = stmt.where(PayrollRecord.employee_id == employee_id)
        if cutoff_start_date:
            stmt = stmt.where(PayrollRecord.cutoff_start_date == cutoff_start_date)
        if cutoff_end_date:
            stmt = stmt.where(PayrollRecord.cutoff_end_date == cutoff_end_date)

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    result = await session.execute(stmt)
            except SQLAlchemyError as e:
                logger.exception("Failed to delete payroll records for company %s", company_id)
                raise InternalError("Failed to delete payroll records.") from e

        deleted = result.rowcount or 0
        logger.info(
            "Deleted %d payroll record(s) for company %s pay date %s",
            deleted,
            company_id,
            pay_date,
        )
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _calculate_and_upsert(
        self, session: AsyncSession, data: PayrollInput
    ) -> PayrollCalculationResult:
        """Resolve profiles, compute, and upsert inside the caller's transaction."""
        profiles = await self._resolve_profiles(session, data)

        resolver = TaxConfigurationResolver(session, self.config)
        configuration = await resolver.resolve(data.company_id, data.tax_configuration)

        basic_pay = _first_not_none(data.basic_pay, profiles.basic_pay, Decimal("0"))
        statutory = self._compute_statutory(
            basic_pay,
            data.include_taxes,
            data.additional_employee_deductions,
            configuration,
        )

        working_days = _first_not_none(
            data.working_days,
            profiles.working_days,
            self.config.default_working_days,
        )
        computation = self.assembler.assemble(
            PayrollComputationInput(
                company_id=data.company_id,
                employee_id=data.employee_id,
                cutoff_start_date=data.cutoff_start_date,
                cutoff_end_date=data.cutoff_end_date,
                pay_date=data.pay_date,
                basic_pay=basic_pay,
                working_days=max(1, working_days),
                allowance=_first_not_none(data.allowance, profiles.allowance, Decimal("0")),
                transport_allowance=_first_not_none(
                    data.transport_allowance, profiles.transport_allowance, Decimal("0")
                ),
                refreshment=data.refreshment,
                cash_advance=data.cash_advance,
                memo=data.memo,
                adjustment=data.adjustments.to_adjustment(),
                month=data.month,
            ),
            statutory,
        )

        values = self._record_values(computation, data, profiles)
        return await self._upsert(session, computation.payroll_key, values)

    async def _resolve_profiles(self, session: AsyncSession, data: PayrollInput) -> _Profiles:
        """Use embedded profiles when given, otherwise read the store."""
        if data.employee is not None:
            employee: EmployeeProfileInput | Employee = data.employee
        else:
            found = await session.get(Employee, data.employee_id)
            if found is None:
                raise NotFoundError("Employee", data.employee_id)
            employee = found

        if data.company is not None:
            company: CompanyProfileInput | Company = data.company
        else:
            found_company = await session.get(Company, data.company_id)
            if found_company is None:
                raise NotFoundError("Company", data.company_id)
            company = found_company

        return _Profiles(
            employee_id=data.employee_id,
            employee_name=employee.full_name or data.employee_id,
            department=employee.department,
            position=employee.position,
            bank_account=employee.bank_account,
            id_number=employee.id_number,
            basic_pay=employee.basic_pay,
            allowance=employee.allowance,
            transport_allowance=employee.transport_allowance,
            working_days=employee.working_days,
            company_id=data.company_id,
            company_name=company.name,
        )

    def _record_values(
        self,
        computation: PayrollComputation,
        data: PayrollInput,
        profiles: _Profiles,
    ) -> dict[str, Any]:
        values = computation.record_fields()
        values.update(
            company_id=data.company_id,
            company_name=profiles.company_name,
            employee_id=data.employee_id,
            employee_name=profiles.employee_name,
            department=profiles.department,
            position=profiles.position,
            bank_account=profiles.bank_account,
            id_number=profiles.id_number,
            cutoff_start_date=data.cutoff_start_date,
            cutoff_end_date=data.cutoff_end_date,
            pay_date=data.pay_date,
            processed_by=data.processed_by,
            processed_at=utcnow(),
        )
        return values

    async def _find_by_key(
        self, session: AsyncSession, payroll_key: str, for_update: bool = True
    ) -> PayrollRecord | None:
        stmt = select(PayrollRecord).where(PayrollRecord.payroll_key == payroll_key).limit(1)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _upsert(
        self, session: AsyncSession, payroll_key: str, values: dict[str, Any]
    ) -> PayrollCalculationResult:
        """Insert or overwrite the record for payroll_key (created_at preserved)."""
        existing = await self._find_by_key(session, payroll_key)
        created = existing is None

        if existing is None:
            now = utcnow()
            record = PayrollRecord(
                payroll_id=payroll_id_for_key(payroll_key),
                created_at=now,
                updated_at=now,
                **values,
            )
            try:
                async with session.begin_nested():
                    session.add(record)
                    await session.flush()
            except IntegrityError:
                # A concurrent calculation inserted the same key first.
                logger.info("Payroll %s inserted concurrently; applying as update", payroll_key)
                existing = await self._find_by_key(session, payroll_key)
                if existing is None:
                    raise
                created = False

        if existing is not None:
            if existing.company_id != values["company_id"]:
                raise FailedPreconditionError(
                    f"Payroll {payroll_key} belongs to another company.",
                    {"payrollKey": payroll_key, "companyId": values["company_id"]},
                )
            for name, value in values.items():
                setattr(existing, name, value)
            existing.updated_at = utcnow()
            await session.flush()
            record = existing

        return PayrollCalculationResult(
            payroll_id=record.payroll_id,
            payroll_key=payroll_key,
            employee_id=record.employee_id,
            company_id=record.company_id,
            created=created,
            payroll=record.to_dict(),
        )

    async def _record(self, outcome: PayrollCalculationResult, actor: str | None) -> None:
        await record_safely(
            self.recorder,
            Activity(
                action="payroll_created" if outcome.created else "payroll_updated",
                entity_type="payroll",
                entity_id=outcome.payroll_key,
                company_id=outcome.company_id,
                actor=actor,
                details={
                    "payrollId": str(outcome.payroll_id),
                    "employeeId": outcome.employee_id,
                    "netPay": str(outcome.payroll["net_pay"]),
                },
            ),
        )


def _first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _entry_employee_id(entry: dict[str, Any]) -> str | None:
    employee_id = entry.get("employeeId") or entry.get("employee_id")
    if not employee_id and isinstance(entry.get("employee"), dict):
        employee_id = entry["employee"].get("id") or entry["employee"].get("employeeId")
    return str(employee_id) if employee_id else None


def _entry_error(index: int, employee_id: str | None, error: PayrollError) -> dict[str, Any]:
    return {
        "index": index,
        "employeeId": employee_id,
        "code": error.code,
        "message": error.message,
        "failed": True,
    }


def _parse_date(name: str, value: date | str | None, required: bool = True) -> date | None:
    if isinstance(value, date):
        return value
    text = (value or "").strip()
    if not text:
        if required:
            raise InvalidArgumentError(f"{name} is required")
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise InvalidArgumentError(f"{name} must be an ISO date (YYYY-MM-DD)") from e
