"""Attendance service - resolves daily statuses against stored schedules."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_core.calculators.attendance import (
    DEFAULT_SCHEDULE,
    resolve_time_status,
    select_schedule,
    summarize_attendance,
)
from payroll_core.calculators.types import AttendanceAdjustment, Schedule, TimeStatus
from payroll_core.models import EmployeeSchedule
from payroll_core.schemas import AttendanceInput, validate_input

logger = logging.getLogger(__name__)


class AttendanceService:
    """Resolves attendance for employees. Nothing is cached or stored."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def resolve_schedule(self, employee_id: str, target_date: date) -> Schedule:
        """Latest schedule version effective on target_date (09:00-17:00 if none)."""
        async with self.session_factory() as session:
            schedules = await self._load_schedules(session, employee_id, target_date)
        schedule = select_schedule(schedules, target_date)
        if schedule is DEFAULT_SCHEDULE:
            logger.debug("No schedule for employee %s on %s; using default", employee_id, target_date)
        return schedule

    async def resolve_day(self, payload: AttendanceInput | dict[str, Any]) -> TimeStatus:
        """Validate one day's clock values and resolve its status."""
        data = validate_input(AttendanceInput, payload)
        schedule = await self.resolve_schedule(data.employee_id, data.work_date)
        return resolve_time_status(data.time_in, data.time_out, schedule)

    async def build_adjustment(
        self,
        employee_id: str,
        days: Iterable[AttendanceInput | dict[str, Any]],
    ) -> AttendanceAdjustment:
        """Resolve several days for one employee and fold them into an adjustment."""
        parsed = [
            validate_input(AttendanceInput, {"employeeId": employee_id, **day})
            if isinstance(day, dict)
            else day
            for day in days
        ]
        if not parsed:
            return AttendanceAdjustment()

        last_day = max(d.work_date for d in parsed)
        async with self.session_factory() as session:
            schedules = await self._load_schedules(session, employee_id, last_day)

        statuses = [
            resolve_time_status(d.time_in, d.time_out, select_schedule(schedules, d.work_date))
            for d in parsed
        ]
        return summarize_attendance(statuses)

    async def _load_schedules(
        self, session: AsyncSession, employee_id: str, up_to: date
    ) -> list[Schedule]:
        result = await session.execute(
            select(EmployeeSchedule)
            .where(
                EmployeeSchedule.employee_id == employee_id,
                EmployeeSchedule.effective_date <= up_to,
            )
            .order_by(EmployeeSchedule.effective_date)
        )
        return [
            Schedule(
                start_time=row.start_time,
                end_time=row.end_time,
                effective_date=row.effective_date,
            )
            for row in result.scalars()
        ]
