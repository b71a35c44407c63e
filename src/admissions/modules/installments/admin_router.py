"""
Installments Admin Router

Staff endpoints that act on individual installments. Listing and
generating a schedule are enrollment-scoped and live on the enrollments
admin router.

Endpoints:
- PATCH /admin/installments/{id} - Change one field
- POST /admin/installments/{id}/mark-paid - Record a payment
- POST /admin/installments/{id}/renegotiate - Apply a discount or surcharge
- POST /admin/installments/{id}/cancel - Cancel an installment
- POST /admin/installments/bulk/mark-paid - Mark several as paid
- POST /admin/installments/bulk/publish - Publish or unpublish several

Security:
- All endpoints require a staff JWT
- Rate limiting on bulk endpoints
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import StaffUser, get_current_staff_user
from admissions.core.database import get_db
from admissions.core.errors import AdmissionsServiceError
from admissions.core.rate_limit import rate_limit, staff_action_rate_limit
from admissions.modules.installments import service
from admissions.modules.installments.schemas import (
    BulkInstallmentsRequest,
    BulkPublishRequest,
    BulkResult,
    InstallmentFieldUpdate,
    InstallmentResponse,
    MarkPaidRequest,
    RenegotiateRequest,
    to_installment_response,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: AdmissionsServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# Bulk Endpoints
# ============================================


@router.post(
    "/bulk/mark-paid",
    response_model=BulkResult,
    summary="Bulk Mark Installments Paid",
    description="""
Mark several installments as paid with payment method `bulk_manual`.

Cancelled and already paid installments are skipped and left out of
`updated_ids`.
""",
)
@rate_limit(limit=20, window_seconds=60, key_func=staff_action_rate_limit)
async def bulk_mark_paid(
    request: Request,
    data: BulkInstallmentsRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> BulkResult:
    try:
        updated = await service.bulk_mark_paid(db, data.ids)
        logger.info(f"Staff {staff.id} bulk marked {len(updated)} installments paid")
        return BulkResult(requested=len(data.ids), updated=len(updated), updated_ids=updated)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error bulk marking installments paid: {e}")
        raise _internal_error() from e


@router.post(
    "/bulk/publish",
    response_model=BulkResult,
    summary="Bulk Publish Installments",
    description="Publish (or unpublish) several installments to the guardian portal.",
)
@rate_limit(limit=20, window_seconds=60, key_func=staff_action_rate_limit)
async def bulk_publish(
    request: Request,
    data: BulkPublishRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> BulkResult:
    try:
        updated = await service.bulk_set_published(db, data.ids, data.published)
        logger.info(
            f"Staff {staff.id} set published={data.published} on {len(updated)} installments"
        )
        return BulkResult(requested=len(data.ids), updated=len(updated), updated_ids=updated)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error bulk publishing installments: {e}")
        raise _internal_error() from e


# ============================================
# Single Installment Endpoints
# ============================================


@router.patch(
    "/{installment_id}",
    response_model=InstallmentResponse,
    summary="Update Installment Field",
    description="""
Change one field of an installment.

Editable fields: `due_date`, `value`, `status` (pending, paid, cancelled),
`paid_at`, `payment_method`, `is_published`.
""",
    responses={
        404: {"description": "Installment not found"},
        422: {"description": "Field not editable or invalid value"},
    },
)
async def update_installment(
    installment_id: UUID,
    data: InstallmentFieldUpdate,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InstallmentResponse:
    try:
        installment = await service.update_installment(db, installment_id, data.field, data.value)
        logger.info(f"Staff {staff.id} updated {data.field} of installment {installment_id}")
        return to_installment_response(installment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating installment {installment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{installment_id}/mark-paid",
    response_model=InstallmentResponse,
    summary="Mark Installment Paid",
    responses={
        404: {"description": "Installment not found"},
        409: {"description": "Installment is not pending"},
    },
)
async def mark_paid(
    installment_id: UUID,
    data: MarkPaidRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InstallmentResponse:
    try:
        installment = await service.mark_paid(
            db, installment_id, payment_method=data.payment_method, paid_at=data.paid_at
        )
        logger.info(f"Staff {staff.id} recorded payment of installment {installment_id}")
        return to_installment_response(installment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error marking installment {installment_id} paid: {e}")
        raise _internal_error() from e


@router.post(
    "/{installment_id}/renegotiate",
    response_model=InstallmentResponse,
    summary="Renegotiate Installment",
    description="""
Apply a discount or surcharge to a pending installment.

`mode=fixed` takes `amount` as currency; `mode=percent` takes it as a
percentage of the original value. A new renegotiation replaces the previous
one.
""",
    responses={
        404: {"description": "Installment not found"},
        409: {"description": "Installment is paid or cancelled"},
        422: {"description": "Discount larger than the value"},
    },
)
async def renegotiate(
    installment_id: UUID,
    data: RenegotiateRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InstallmentResponse:
    try:
        installment = await service.renegotiate(
            db, installment_id, data.type, data.mode, data.amount, data.notes
        )
        logger.info(f"Staff {staff.id} renegotiated installment {installment_id}")
        return to_installment_response(installment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error renegotiating installment {installment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{installment_id}/cancel",
    response_model=InstallmentResponse,
    summary="Cancel Installment",
    responses={
        404: {"description": "Installment not found"},
        409: {"description": "Installment is paid or already cancelled"},
    },
)
async def cancel_installment(
    installment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InstallmentResponse:
    try:
        installment = await service.cancel_installment(db, installment_id)
        logger.info(f"Staff {staff.id} cancelled installment {installment_id}")
        return to_installment_response(installment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error cancelling installment {installment_id}: {e}")
        raise _internal_error() from e
