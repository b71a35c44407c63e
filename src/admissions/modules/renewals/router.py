"""
Renewals Admin Router

Endpoints:
- POST /admin/renewals - Start a renewal from a student or enrollment id

The enrollment-scoped shortcut POST /admin/enrollments/{id}/renew lives
on the enrollments admin router and uses the same service.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import StaffUser, get_current_staff_user
from admissions.core.database import get_db
from admissions.core.errors import AdmissionsServiceError
from admissions.core.rate_limit import rate_limit, staff_action_rate_limit
from admissions.modules.renewals import service
from admissions.modules.renewals.schemas import RenewalRequest, RenewalResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def to_renewal_response(result: service.RenewalResult) -> RenewalResponse:
    enrollment = result.enrollment
    return RenewalResponse(
        id=enrollment.id,
        academic_year=enrollment.academic_year,
        status=enrollment.status,
        created=result.created,
        invite_url=result.invite_url,
        email_sent=result.email_sent,
        message=(
            "Renewal created. The family was invited to review their data."
            if result.created
            else "An enrollment for this year already exists."
        ),
    )


@router.post(
    "",
    response_model=RenewalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start Renewal",
    description="""
Create next year's draft enrollment for a returning student.

`source_id` may be an enrollment id or a student id (the student's latest
enrollment is used). When an enrollment for the target year already exists
it is returned with `created=false` and status 200.
""",
    responses={
        200: {"description": "Existing enrollment returned"},
        404: {"description": "Source not found"},
        422: {"description": "Target year not after the source year"},
    },
)
@rate_limit(limit=30, window_seconds=60, key_func=staff_action_rate_limit)
async def start_renewal(
    request: Request,
    response: Response,
    data: RenewalRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> RenewalResponse:
    try:
        result = await service.start_renewal(db, data.source_id, data.target_year, staff.id)
        if not result.created:
            response.status_code = status.HTTP_200_OK
        return to_renewal_response(result)

    except AdmissionsServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.error_code, "message": e.message},
        ) from e
    except Exception as e:
        logger.exception(f"Error starting renewal from {data.source_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            },
        ) from e
