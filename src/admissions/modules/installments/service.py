"""
Installments Service

Generates and maintains the payment schedule of an enrollment.

Generation splits a plan's total into ``installments_count`` monthly
charges due on the plan's due day of each month after the generation
month. Amounts are ``Decimal`` rounded half-up to cents, and the rounding
remainder is added to the last installment so the schedule always sums to
the plan total. Regenerating replaces the previous schedule in the same
transaction, unless something was already paid.

``overdue`` is never stored: a pending installment whose due date has
passed is reported as overdue when read.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.config import settings
from admissions.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from admissions.modules.enrollments import repository as enrollment_repository
from admissions.modules.enrollments.models import EnrollmentStatus
from admissions.modules.enrollments.service import EnrollmentNotFoundError
from admissions.modules.installments import repository
from admissions.modules.installments.models import (
    Installment,
    InstallmentStatus,
    NegotiationType,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
BULK_PAYMENT_METHOD = "bulk_manual"

# Fields staff may edit one at a time
EDITABLE_FIELDS = frozenset(
    {"due_date", "value", "status", "paid_at", "payment_method", "is_published"}
)

# Statuses that may be stored (overdue is derived)
STORABLE_STATUSES = {
    InstallmentStatus.PENDING,
    InstallmentStatus.PAID,
    InstallmentStatus.CANCELLED,
}


class AdjustmentMode(str, Enum):
    FIXED = "fixed"
    PERCENT = "percent"


class InstallmentNotFoundError(NotFoundError):
    def __init__(self, installment_id: UUID):
        super().__init__("Installment", installment_id)


class FinancialPlanNotFoundError(NotFoundError):
    def __init__(self, plan_id: UUID):
        super().__init__("Financial plan", plan_id)


@dataclass(frozen=True)
class ScheduledInstallment:
    number: int
    due_date: date
    value: Decimal


def to_cents(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _add_months(start: date, months: int, day: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def build_schedule(
    total_value: Decimal,
    installments_count: int,
    due_day: int,
    generated_on: date,
) -> list[ScheduledInstallment]:
    """
    Split a total into monthly installments.

    Args:
        total_value: Plan total
        installments_count: Number of installments (at least 1)
        due_day: Day of the month each installment is due (clamped to the
                 month's last day)
        generated_on: Generation date; the first installment is due the
                      following month

    Returns:
        Installments numbered 1..N whose values sum to ``total_value``

    Raises:
        ValidationError: If the count or total is not usable
    """
    if installments_count < 1:
        raise ValidationError("A financial plan needs at least one installment.")
    total = to_cents(Decimal(total_value))
    if total < 0:
        raise ValidationError("A financial plan total cannot be negative.")

    base_value = to_cents(total / installments_count)
    remainder = total - base_value * installments_count

    schedule = []
    for number in range(1, installments_count + 1):
        value = base_value
        if number == installments_count:
            value += remainder
        schedule.append(
            ScheduledInstallment(
                number=number,
                due_date=_add_months(generated_on, number, due_day),
                value=value,
            )
        )
    return schedule


def effective_status(installment: Installment, today: date | None = None) -> InstallmentStatus:
    """Stored status, or ``OVERDUE`` for a pending installment past its due date."""
    today = today or datetime.now(UTC).date()
    if installment.status == InstallmentStatus.PENDING and installment.due_date < today:
        return InstallmentStatus.OVERDUE
    return installment.status


async def list_installments(db: AsyncSession, enrollment_id: UUID) -> list[Installment]:
    """
    Installments of an enrollment ordered by number.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
    """
    if not await enrollment_repository.get_by_id(db, enrollment_id):
        raise EnrollmentNotFoundError(enrollment_id)
    return await repository.list_for_enrollment(db, enrollment_id)


async def generate_installments(
    db: AsyncSession,
    enrollment_id: UUID,
    plan_id: UUID,
    staff_id: UUID | None = None,
) -> list[Installment]:
    """
    Replace an enrollment's schedule with one generated from a plan.

    Deleting the previous schedule, inserting the new one and linking the
    plan to the enrollment happen in a single commit.

    Raises:
        EnrollmentNotFoundError: If the enrollment doesn't exist
        FinancialPlanNotFoundError: If the plan doesn't exist
        InvalidTransitionError: If the enrollment is cancelled
        ValidationError: If the plan is inactive or an installment was already paid
    """
    enrollment = await enrollment_repository.get_by_id_for_update(db, enrollment_id)
    if not enrollment:
        raise EnrollmentNotFoundError(enrollment_id)
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(f"Enrollment {enrollment_id} is cancelled.")

    plan = await repository.get_plan(db, plan_id)
    if not plan:
        raise FinancialPlanNotFoundError(plan_id)
    if not plan.is_active:
        raise ValidationError(f"Financial plan '{plan.name}' is not active.")

    if await repository.has_paid_installments(db, enrollment_id):
        raise ValidationError(
            "This enrollment already has paid installments; the schedule cannot be regenerated.",
            error_code="INSTALLMENTS_ALREADY_PAID",
        )

    schedule = build_schedule(
        plan.total_value,
        plan.installments_count,
        plan.due_day or settings.installment_due_day,
        datetime.now(UTC).date(),
    )

    try:
        removed = await repository.delete_for_enrollment(db, enrollment_id)
        installments = [
            Installment(
                enrollment_id=enrollment_id,
                installment_number=item.number,
                due_date=item.due_date,
                value=item.value,
                original_value=item.value,
                discount_value=Decimal("0.00"),
                surcharge_value=Decimal("0.00"),
                status=InstallmentStatus.PENDING,
                is_published=False,
            )
            for item in schedule
        ]
        await repository.add_batch(db, installments)
        enrollment.financial_plan_id = plan.id
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Staff {staff_id} generated {len(installments)} installments for enrollment "
        f"{enrollment_id} from plan {plan_id} (replaced {removed})"
    )
    return installments


async def _get_installment(db: AsyncSession, installment_id: UUID) -> Installment:
    installment = await repository.get_by_id(db, installment_id)
    if not installment:
        raise InstallmentNotFoundError(installment_id)
    return installment


def _parse_field(field: str, value: Any) -> Any:
    """Validate and convert a single editable field value."""
    try:
        if field == "due_date":
            return value if isinstance(value, date) else date.fromisoformat(str(value))
        if field == "value":
            amount = to_cents(Decimal(str(value)))
            if amount <= 0:
                raise ValidationError("An installment value must be positive.")
            return amount
        if field == "status":
            status = InstallmentStatus(value)
            if status not in STORABLE_STATUSES:
                raise ValidationError(f"Status '{status.value}' is derived and cannot be set.")
            return status
        if field == "paid_at":
            if value is None:
                return None
            parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        if field == "payment_method":
            if value is None:
                return None
            method = str(value).strip()
            if not method or len(method) > 50:
                raise ValidationError("A payment method must have 1 to 50 characters.")
            return method
        if field == "is_published":
            if not isinstance(value, bool):
                raise ValidationError("is_published must be true or false.")
            return value
    except (ValueError, TypeError, InvalidOperation) as e:
        raise ValidationError(f"Invalid value for {field}: {value!r}") from e
    raise ValidationError(f"Field '{field}' cannot be edited.")


async def update_installment(
    db: AsyncSession,
    installment_id: UUID,
    field: str,
    value: Any,
) -> Installment:
    """
    Change a single field of an installment.

    Marking an installment paid stamps ``paid_at`` when it is not set;
    moving it back to pending clears the payment data.

    Raises:
        InstallmentNotFoundError: If the installment doesn't exist
        ValidationError: If the field is not editable or the value is invalid
    """
    if field not in EDITABLE_FIELDS:
        raise ValidationError(f"Field '{field}' cannot be edited.")
    parsed = _parse_field(field, value)

    installment = await _get_installment(db, installment_id)
    setattr(installment, field, parsed)

    if field == "status":
        if parsed == InstallmentStatus.PAID and installment.paid_at is None:
            installment.paid_at = datetime.now(UTC)
        elif parsed == InstallmentStatus.PENDING:
            installment.paid_at = None
            installment.payment_method = None
        elif parsed == InstallmentStatus.CANCELLED:
            installment.is_published = False

    await db.commit()
    await db.refresh(installment)

    logger.info(f"Installment {installment_id} updated: {field}")
    return installment


async def mark_paid(
    db: AsyncSession,
    installment_id: UUID,
    *,
    payment_method: str,
    paid_at: datetime | None = None,
) -> Installment:
    """
    Record a payment for one installment.

    Raises:
        InstallmentNotFoundError: If the installment doesn't exist
        InvalidTransitionError: If the installment is cancelled or already paid
    """
    installment = await _get_installment(db, installment_id)
    if installment.status != InstallmentStatus.PENDING:
        raise InvalidTransitionError(
            f"Cannot mark installment as paid in status: {installment.status.value}."
        )

    installment.status = InstallmentStatus.PAID
    installment.paid_at = paid_at or datetime.now(UTC)
    installment.payment_method = _parse_field("payment_method", payment_method)
    await db.commit()
    await db.refresh(installment)

    logger.info(f"Installment {installment_id} marked paid via {installment.payment_method}")
    return installment


async def bulk_mark_paid(db: AsyncSession, installment_ids: list[UUID]) -> list[UUID]:
    """
    Mark several installments as paid in one transaction.

    Cancelled and already paid installments are skipped.

    Returns:
        IDs of the installments that were marked paid
    """
    if not installment_ids:
        return []

    updated = await repository.mark_paid_where_pending(
        db, installment_ids, payment_method=BULK_PAYMENT_METHOD
    )
    await db.commit()

    logger.info(f"Bulk marked {len(updated)} of {len(installment_ids)} installments as paid")
    return updated


async def bulk_set_published(
    db: AsyncSession,
    installment_ids: list[UUID],
    published: bool,
) -> list[UUID]:
    """
    Publish or unpublish several installments.

    Returns:
        IDs of the installments whose flag changed
    """
    if not installment_ids:
        return []

    updated = await repository.set_published(db, installment_ids, published)
    await db.commit()

    logger.info(
        f"Bulk {'published' if published else 'unpublished'} "
        f"{len(updated)} of {len(installment_ids)} installments"
    )
    return updated


def compute_adjustment(
    original_value: Decimal,
    mode: AdjustmentMode,
    amount: Decimal,
) -> Decimal:
    """Adjustment in currency: ``amount`` itself, or ``amount`` percent of the original."""
    amount = Decimal(amount)
    if amount < 0:
        raise ValidationError("An adjustment cannot be negative.")
    if mode == AdjustmentMode.PERCENT:
        return to_cents(Decimal(original_value) * amount / 100)
    return to_cents(amount)


async def renegotiate(
    db: AsyncSession,
    installment_id: UUID,
    negotiation_type: NegotiationType,
    mode: AdjustmentMode,
    amount: Decimal,
    notes: str | None = None,
) -> Installment:
    """
    Apply a discount or surcharge to a pending installment.

    The adjustment is always computed from the original value, so repeated
    renegotiations replace each other instead of compounding.

    Raises:
        InstallmentNotFoundError: If the installment doesn't exist
        InvalidTransitionError: If the installment is paid or cancelled
        ValidationError: If a discount exceeds the original value
    """
    installment = await _get_installment(db, installment_id)
    if installment.status != InstallmentStatus.PENDING:
        raise InvalidTransitionError(
            f"Cannot renegotiate installment in status: {installment.status.value}."
        )

    original = installment.original_value
    adjustment = compute_adjustment(original, mode, amount)

    if negotiation_type == NegotiationType.DISCOUNT:
        if adjustment > original:
            raise ValidationError("A discount cannot be larger than the installment value.")
        installment.discount_value = adjustment
        installment.surcharge_value = Decimal("0.00")
        installment.value = original - adjustment
    else:
        installment.discount_value = Decimal("0.00")
        installment.surcharge_value = adjustment
        installment.value = original + adjustment

    installment.negotiation_type = negotiation_type
    installment.negotiation_notes = (notes or "").strip() or None
    installment.negotiation_date = datetime.now(UTC)

    await db.commit()
    await db.refresh(installment)

    logger.info(
        f"Installment {installment_id} renegotiated: {negotiation_type.value} "
        f"{adjustment} ({mode.value})"
    )
    return installment


async def cancel_installment(db: AsyncSession, installment_id: UUID) -> Installment:
    """
    Cancel an installment and hide it from the guardian portal.

    Raises:
        InstallmentNotFoundError: If the installment doesn't exist
        InvalidTransitionError: If the installment is already paid or cancelled
    """
    installment = await _get_installment(db, installment_id)
    if installment.status in (InstallmentStatus.PAID, InstallmentStatus.CANCELLED):
        raise InvalidTransitionError(
            f"Cannot cancel installment in status: {installment.status.value}."
        )

    installment.status = InstallmentStatus.CANCELLED
    installment.is_published = False
    await db.commit()
    await db.refresh(installment)

    logger.info(f"Installment {installment_id} cancelled")
    return installment
