"""Pytest fixtures for payroll core tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from payroll_core.config import EngineConfig
from payroll_core.database import create_all, create_session_factory, get_engine
from payroll_core.models import Company, Employee, EmployeeSchedule
from payroll_core.services import (
    AttendanceService,
    InMemoryActivityRecorder,
    PayrollService,
    ThirteenthMonthService,
)

COMPANY_ID = "acme"
OTHER_COMPANY_ID = "globex"
EMPLOYEE_ID = "emp-001"
SECOND_EMPLOYEE_ID = "emp-002"
THIRD_EMPLOYEE_ID = "emp-003"

PERIOD = {
    "cutoffStartDate": "2024-03-01",
    "cutoffEndDate": "2024-03-15",
    "payDate": "2024-03-20",
}


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database, fresh for each test."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def seeded_factory(
    session_factory: async_sessionmaker[AsyncSession],
) -> async_sessionmaker[AsyncSession]:
    """Session factory over a database holding two companies and four employees."""
    async with session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    Company(company_id=COMPANY_ID, name="Acme Corp"),
                    Company(company_id=OTHER_COMPANY_ID, name="Globex"),
                ]
            )
            await session.flush()
            session.add_all(
                [
                    Employee(
                        employee_id=EMPLOYEE_ID,
                        company_id=COMPANY_ID,
                        first_name="Juan",
                        middle_name="Santos",
                        last_name="Dela Cruz",
                        department="Engineering",
                        position="Developer",
                        basic_pay=Decimal("11000"),
                        allowance=Decimal("1000"),
                        transport_allowance=Decimal("500"),
                        bank_account="1234-5678",
                        id_number="ACME-001",
                    ),
                    Employee(
                        employee_id=SECOND_EMPLOYEE_ID,
                        company_id=COMPANY_ID,
                        first_name="Maria",
                        last_name="Santos",
                        department="Finance",
                        position="Accountant",
                        basic_pay=Decimal("30000"),
                        id_number="ACME-002",
                    ),
                    Employee(
                        employee_id=THIRD_EMPLOYEE_ID,
                        company_id=COMPANY_ID,
                        first_name="Pedro",
                        last_name="Reyes",
                        basic_pay=Decimal("15000"),
                        working_days=20,
                    ),
                    Employee(
                        employee_id="globex-001",
                        company_id=OTHER_COMPANY_ID,
                        first_name="Ana",
                        last_name="Lim",
                        basic_pay=Decimal("20000"),
                    ),
                ]
            )
            await session.flush()
            session.add_all(
                [
                    EmployeeSchedule(
                        employee_id=EMPLOYEE_ID,
                        start_time="08:00",
                        end_time="17:00",
                        effective_date=date(2024, 1, 1),
                    ),
                    EmployeeSchedule(
                        employee_id=EMPLOYEE_ID,
                        start_time="10:00",
                        end_time="19:00",
                        effective_date=date(2024, 6, 1),
                    ),
                ]
            )
    return session_factory


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def recorder() -> InMemoryActivityRecorder:
    return InMemoryActivityRecorder()


@pytest.fixture
def payroll_service(seeded_factory, engine_config, recorder) -> PayrollService:
    return PayrollService(seeded_factory, engine_config, recorder)


@pytest.fixture
def thirteenth_month_service(seeded_factory, recorder) -> ThirteenthMonthService:
    return ThirteenthMonthService(seeded_factory, recorder)


@pytest.fixture
def attendance_service(seeded_factory) -> AttendanceService:
    return AttendanceService(seeded_factory)


def payroll_payload(employee_id: str = EMPLOYEE_ID, **overrides) -> dict:
    """A single-calculation payload for the default March period."""
    payload = {"companyId": COMPANY_ID, "employeeId": employee_id, **PERIOD}
    payload.update(overrides)
    return payload
