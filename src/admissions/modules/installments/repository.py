"""
Installments Repository

Database operations for financial plans and installment schedules.
Functions flush but never commit.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import FinancialPlan, Installment, InstallmentStatus


async def get_plan(db: AsyncSession, plan_id: UUID) -> FinancialPlan | None:
    """Get a financial plan by ID."""
    return await db.get(FinancialPlan, plan_id)


async def list_for_enrollment(db: AsyncSession, enrollment_id: UUID) -> list[Installment]:
    """Installments of an enrollment ordered by number."""
    result = await db.execute(
        select(Installment)
        .where(Installment.enrollment_id == enrollment_id)
        .order_by(Installment.installment_number)
    )
    return list(result.scalars().all())


async def get_by_id(db: AsyncSession, installment_id: UUID) -> Installment | None:
    """Get an installment holding a row lock until the transaction ends."""
    result = await db.execute(
        select(Installment)
        .where(Installment.id == installment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def has_paid_installments(db: AsyncSession, enrollment_id: UUID) -> bool:
    result = await db.execute(
        select(
            exists().where(
                Installment.enrollment_id == enrollment_id,
                Installment.status == InstallmentStatus.PAID,
            )
        )
    )
    return bool(result.scalar())


async def delete_for_enrollment(db: AsyncSession, enrollment_id: UUID) -> int:
    """Delete the whole schedule of an enrollment. Returns rows deleted."""
    result = await db.execute(
        delete(Installment).where(Installment.enrollment_id == enrollment_id)
    )
    await db.flush()
    return result.rowcount


async def add_batch(db: AsyncSession, installments: Sequence[Installment]) -> None:
    db.add_all(installments)
    await db.flush()


async def mark_paid_where_pending(
    db: AsyncSession,
    installment_ids: Sequence[UUID],
    *,
    payment_method: str,
) -> list[UUID]:
    """
    Mark pending installments as paid.

    Cancelled and already paid installments are left untouched.

    Returns:
        IDs of the installments that changed
    """
    result = await db.execute(
        update(Installment)
        .where(
            Installment.id.in_(installment_ids),
            Installment.status == InstallmentStatus.PENDING,
        )
        .values(
            status=InstallmentStatus.PAID,
            paid_at=datetime.now(UTC),
            payment_method=payment_method,
        )
        .returning(Installment.id)
        .execution_options(synchronize_session=False)
    )
    return list(result.scalars().all())


async def set_published(
    db: AsyncSession,
    installment_ids: Sequence[UUID],
    published: bool,
) -> list[UUID]:
    """
    Publish or unpublish installments to the guardian portal.

    Cancelled installments are never published.

    Returns:
        IDs of the installments that changed
    """
    result = await db.execute(
        update(Installment)
        .where(
            Installment.id.in_(installment_ids),
            Installment.status != InstallmentStatus.CANCELLED,
            Installment.is_published.is_not(published),
        )
        .values(is_published=published)
        .returning(Installment.id)
        .execution_options(synchronize_session=False)
    )
    return list(result.scalars().all())
