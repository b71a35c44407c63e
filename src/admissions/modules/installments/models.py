"""
Billing Models

Financial plans are a read-only catalog maintained elsewhere. Installments
are the per-enrollment payment schedule generated from a plan.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from admissions.modules.shared import BaseModel


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class InstallmentStatus(str, enum.Enum):
    """
    Installment status.

    ``OVERDUE`` is never stored; it is derived when a pending installment's
    due date has passed.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class NegotiationType(str, enum.Enum):
    DISCOUNT = "discount"
    SURCHARGE = "surcharge"


class FinancialPlan(BaseModel):
    """Tuition plan: a total split into a fixed number of monthly installments."""

    __tablename__ = "financial_plans"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    installments_count: Mapped[int] = mapped_column(Integer, nullable=False)
    due_day: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default=text("5")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )


class Installment(BaseModel):
    """A single charge in an enrollment's payment schedule."""

    __tablename__ = "installments"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    original_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    surcharge_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )

    status: Mapped[InstallmentStatus] = mapped_column(
        Enum(InstallmentStatus, name="installment_status", values_callable=_enum_values),
        nullable=False,
        default=InstallmentStatus.PENDING,
    )
    is_published: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    negotiation_type: Mapped[NegotiationType | None] = mapped_column(
        Enum(NegotiationType, name="negotiation_type", values_callable=_enum_values),
        nullable=True,
    )
    negotiation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    negotiation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "enrollment_id", "installment_number", name="uq_installments_enrollment_number"
        ),
    )
