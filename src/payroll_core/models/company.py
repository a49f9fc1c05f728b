"""Company and company tax configuration models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_core.models.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from payroll_core.models.employee import Employee


class Company(Base, TimestampMixin):
    """Company (tenant) that owns employees and payroll records."""

    __tablename__ = "company"

    company_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")
    tax_config: Mapped[CompanyTaxConfig | None] = relationship(back_populates="company")


class CompanyTaxConfig(Base, TimestampMixin):
    """Company-level withholding tax table.

    brackets holds the raw list [{min, max, baseTax, baseAmount, rate}, ...]
    and is normalized on read.
    """

    __tablename__ = "company_tax_config"

    company_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("company.company_id", ondelete="CASCADE"),
        primary_key=True,
    )
    version: Mapped[str] = mapped_column(String, nullable=False, default="custom")
    personal_exemption: Mapped[Decimal | None] = mapped_column(nullable=True)
    brackets: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    company: Mapped[Company] = relationship(back_populates="tax_config")
