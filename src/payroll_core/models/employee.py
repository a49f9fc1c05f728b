"""Employee profile and schedule models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payroll_core.models.company import Company


class Employee(Base, TimestampMixin):
    """Employee profile consumed read-only by the payroll engine."""

    __tablename__ = "employee"

    employee_id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    middle_name: Mapped[str | None] = mapped_column(String, nullable=True)
    last_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    basic_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    allowance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    transport_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    bank_account: Mapped[str | None] = mapped_column(String, nullable=True)
    id_number: Mapped[str | None] = mapped_column(String, nullable=True)
    working_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")
    schedules: Mapped[list[EmployeeSchedule]] = relationship(
        back_populates="employee",
        order_by="EmployeeSchedule.effective_date",
    )

    @property
    def full_name(self) -> str:
        """Get full name ("First M. Last")."""
        parts = [self.first_name]
        if self.middle_name:
            parts.append(f"{self.middle_name[0]}.")
        parts.append(self.last_name)
        return " ".join(p for p in parts if p).strip()


class EmployeeSchedule(Base, TimestampMixin):
    """Versioned work schedule; the latest version at or before a date applies."""

    __tablename__ = "employee_schedule"

    schedule_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time: Mapped[str] = mapped_column(String(8), nullable=False, default="09:00")
    end_time: Mapped[str] = mapped_column(String(8), nullable=False, default="17:00")
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    employee: Mapped[Employee] = relationship(back_populates="schedules")

    __table_args__ = (
        UniqueConstraint("employee_id", "effective_date", name="employee_schedule_effective_unique"),
    )
