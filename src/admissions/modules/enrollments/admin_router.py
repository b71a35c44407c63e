"""
Enrollments Admin Router

Staff endpoints for the admissions console.
All endpoints require a staff JWT (admin, secretary or coordinator).

Endpoints:
- GET /admin/enrollments - List enrollments with filters and pagination
- POST /admin/enrollments - Create a draft and invite the parent
- GET /admin/enrollments/{id} - Enrollment details
- PATCH /admin/enrollments/{id} - Edit an enrollment
- DELETE /admin/enrollments/{id} - Delete a draft
- POST /admin/enrollments/{id}/submit - Send for review
- POST /admin/enrollments/{id}/reopen - Return to draft for parent editing
- POST /admin/enrollments/{id}/cancel - Cancel (not after approval)
- POST /admin/enrollments/{id}/transfer - Student leaves the school
- POST /admin/enrollments/{id}/approve - Approve and create the student
- POST /admin/enrollments/{id}/guardian-access - Guardian portal access
- POST /admin/enrollments/{id}/renew - Start next year's enrollment
- POST /admin/enrollments/{id}/invite - New invitation link
- GET /admin/enrollments/{id}/documents - Document checklist
- POST /admin/enrollments/{id}/documents/{kind} - Upload on the family's behalf
- POST /admin/enrollments/{id}/documents/{kind}/review - Approve or reject
- DELETE /admin/enrollments/{id}/documents/{kind} - Remove a document
- GET /admin/enrollments/{id}/documents/{kind}/download - Stored file
- GET /admin/enrollments/{id}/installments - Payment schedule
- POST /admin/enrollments/{id}/installments/generate - Generate from a plan

Security:
- Structured error responses, audit logging of staff actions
- Rate limiting on endpoints that send e-mail or provision accounts
"""

import logging
from uuid import UUID

from fastapi import (
    APIRouter,
    Body,
    Depends,
    File,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.auth import StaffUser, get_current_staff_user
from admissions.core.config import settings
from admissions.core.database import get_db
from admissions.core.errors import AdmissionsServiceError
from admissions.core.rate_limit import rate_limit, staff_action_rate_limit
from admissions.modules.approvals import service as approval_service
from admissions.modules.approvals.schemas import (
    ApproveRequest,
    ApproveResponse,
    GuardianAccessInfo,
    GuardianAccessRequest,
)
from admissions.modules.documents import service as document_service
from admissions.modules.documents.models import DocumentKind
from admissions.modules.documents.schemas import (
    DocumentInfo,
    DocumentReviewRequest,
    build_document_list,
    to_document_info,
)
from admissions.modules.enrollments import service
from admissions.modules.enrollments.models import EnrollmentStatus
from admissions.modules.enrollments.schemas import (
    EnrollmentCreate,
    EnrollmentCreateResponse,
    EnrollmentDetail,
    EnrollmentListItem,
    EnrollmentListResponse,
    EnrollmentUpdate,
    InviteResponse,
    ReasonRequest,
    StatusChangeResponse,
)
from admissions.modules.installments import service as installment_service
from admissions.modules.installments.schemas import (
    GenerateInstallmentsRequest,
    InstallmentListResponse,
    to_installment_list,
)
from admissions.modules.renewals import service as renewal_service
from admissions.modules.renewals.router import to_renewal_response
from admissions.modules.renewals.schemas import RenewalResponse, RenewEnrollmentRequest

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Helper Functions
# ============================================


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


def _status_response(enrollment, message: str) -> StatusChangeResponse:
    return StatusChangeResponse(id=enrollment.id, status=enrollment.status, message=message)


# ============================================
# List, Create & Detail
# ============================================


@router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List Enrollments",
    description="""
Get a paginated list of enrollments.

**Filters:** `status`, `academic_year`, `search` (candidate name, parent
name or parent e-mail).

**Sorting:** `sort_by` (created_at, candidate_name, academic_year) and
`sort_order` (asc, desc). Default: newest first.
""",
)
async def list_enrollments(
    status_filter: EnrollmentStatus | None = Query(None, alias="status"),
    academic_year: int | None = Query(None, ge=2000, le=2100),
    search: str | None = Query(None, min_length=1, max_length=100),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> EnrollmentListResponse:
    try:
        result = await service.list_enrollments(
            db,
            status=status_filter,
            academic_year=academic_year,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
        )

        logger.info(
            f"Staff {staff.id} listed enrollments: "
            f"total={result['total']}, returned={len(result['enrollments'])}"
        )

        return EnrollmentListResponse(
            enrollments=[
                EnrollmentListItem.model_validate(enrollment)
                for enrollment in result["enrollments"]
            ],
            total=result["total"],
            skip=result["skip"],
            limit=result["limit"],
        )

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing enrollments: {e}")
        raise _internal_error() from e


@router.post(
    "",
    response_model=EnrollmentCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Enrollment",
    description="""
Create a draft enrollment and invite the parent.

The invitation link is returned so it can be shared manually, and it is
e-mailed when `parent_email` is given.
""",
)
@rate_limit(limit=30, window_seconds=60, key_func=staff_action_rate_limit)
async def create_enrollment(
    request: Request,
    data: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> EnrollmentCreateResponse:
    try:
        enrollment, invite_url = await service.create_enrollment(db, data, staff.id)
        return EnrollmentCreateResponse(
            id=enrollment.id,
            status=enrollment.status,
            invite_url=invite_url,
            message="Enrollment created. Share the invitation link with the family.",
        )

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating enrollment: {e}")
        raise _internal_error() from e


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentDetail,
    summary="Get Enrollment Details",
    responses={404: {"description": "Enrollment not found"}},
)
async def get_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> EnrollmentDetail:
    try:
        enrollment = await service.get_enrollment(db, enrollment_id)
        logger.info(f"Staff {staff.id} viewed enrollment {enrollment_id}")
        return service.to_detail(enrollment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error getting enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.patch(
    "/{enrollment_id}",
    response_model=EnrollmentDetail,
    summary="Update Enrollment",
    description="""
Edit an enrollment in any status except cancelled.

Send `expected_version` to refuse the edit when someone else changed the
enrollment in the meantime (409). Edits to an approved enrollment are
copied to the student record in the background.
""",
    responses={
        404: {"description": "Enrollment not found"},
        409: {"description": "Cancelled, or edited concurrently"},
    },
)
async def update_enrollment(
    enrollment_id: UUID,
    data: EnrollmentUpdate,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> EnrollmentDetail:
    try:
        enrollment = await service.update_enrollment(db, enrollment_id, data, staff.id)
        return service.to_detail(enrollment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.delete(
    "/{enrollment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Draft Enrollment",
    responses={
        404: {"description": "Enrollment not found"},
        409: {"description": "Only drafts can be deleted"},
    },
)
async def delete_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> Response:
    try:
        await service.delete_draft(db, enrollment_id, staff.id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error deleting enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


# ============================================
# Status Transitions
# ============================================


@router.post(
    "/{enrollment_id}/submit",
    response_model=StatusChangeResponse,
    summary="Submit Enrollment For Review",
    responses={409: {"description": "Not a draft"}},
)
async def submit_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> StatusChangeResponse:
    try:
        enrollment = await service.submit_for_review(db, enrollment_id, staff.id)
        return _status_response(enrollment, "Enrollment submitted for review.")

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error submitting enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/reopen",
    response_model=StatusChangeResponse,
    summary="Reopen Enrollment For Editing",
    description="Return a submitted enrollment to draft so the family can edit it again.",
    responses={409: {"description": "Not submitted"}},
)
async def reopen_enrollment(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> StatusChangeResponse:
    try:
        enrollment = await service.reopen_for_editing(db, enrollment_id, staff.id)
        return _status_response(enrollment, "Enrollment reopened for editing.")

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error reopening enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/cancel",
    response_model=StatusChangeResponse,
    summary="Cancel Enrollment",
    description="""
Cancel an enrollment that was not approved. A reason is required.

Approved enrollments cannot be cancelled; use `/transfer` instead.
""",
    responses={
        409: {"description": "Approved or already cancelled"},
        422: {"description": "Missing reason"},
    },
)
async def cancel_enrollment(
    enrollment_id: UUID,
    data: ReasonRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> StatusChangeResponse:
    try:
        enrollment = await service.cancel_enrollment(db, enrollment_id, data.reason, staff.id)
        return _status_response(enrollment, "Enrollment cancelled.")

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error cancelling enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/transfer",
    response_model=StatusChangeResponse,
    summary="Transfer Student Out",
    description="""
Record that the student is leaving the school.

Cancels the enrollment (also when approved) and marks the student as
transferred. A reason is required.
""",
    responses={
        409: {"description": "Already cancelled"},
        422: {"description": "Missing reason"},
    },
)
async def transfer_enrollment(
    enrollment_id: UUID,
    data: ReasonRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> StatusChangeResponse:
    try:
        enrollment = await service.transfer_enrollment(db, enrollment_id, data.reason, staff.id)
        return _status_response(enrollment, "Transfer recorded.")

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error transferring enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


# ============================================
# Approval, Guardian Access & Renewal
# ============================================


@router.post(
    "/{enrollment_id}/approve",
    response_model=ApproveResponse,
    summary="Approve Enrollment",
    description="""
Approve the enrollment and create the student record in one transaction.

Approval does not require every document to be approved:
`documents_complete` reports whether they are. With
`provision_guardian=true` the financial responsible also receives guardian
portal access; a failure there never undoes the approval.
""",
    responses={
        404: {"description": "Enrollment not found"},
        409: {"description": "Already approved or cancelled"},
        503: {"description": "Student record could not be created; nothing changed"},
    },
)
@rate_limit(limit=10, window_seconds=60, key_func=staff_action_rate_limit)
async def approve_enrollment(
    request: Request,
    enrollment_id: UUID,
    data: ApproveRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> ApproveResponse:
    data = data or ApproveRequest()
    try:
        result = await approval_service.approve_enrollment(
            db,
            enrollment_id,
            staff.id,
            provision_guardian=data.provision_guardian,
        )

        guardian_access = None
        if result.guardian_access:
            guardian_access = GuardianAccessInfo(
                guardian_id=result.guardian_access.guardian_id,
                created=result.guardian_access.created,
                email_sent=result.guardian_access.email_sent,
            )

        return ApproveResponse(
            id=result.enrollment_id,
            student_id=result.student_id,
            documents_complete=result.documents_complete,
            guardian_access=guardian_access,
            message=(
                "Enrollment approved and student created."
                if result.documents_complete
                else "Enrollment approved and student created. Some documents are still pending."
            ),
        )

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error approving enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/guardian-access",
    response_model=GuardianAccessInfo,
    summary="Grant Guardian Access",
    description="""
Give the guardian of an approved enrollment access to the guardian portal.

An existing account with the same e-mail is linked to the student; a new
account receives a temporary password by e-mail.
""",
    responses={
        409: {"description": "Enrollment not approved"},
        422: {"description": "No valid e-mail"},
    },
)
@rate_limit(limit=10, window_seconds=60, key_func=staff_action_rate_limit)
async def grant_guardian_access(
    request: Request,
    enrollment_id: UUID,
    data: GuardianAccessRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> GuardianAccessInfo:
    data = data or GuardianAccessRequest()
    try:
        result = await approval_service.grant_guardian_access(
            db,
            enrollment_id,
            email=str(data.email) if data.email else None,
            name=data.name,
        )
        logger.info(f"Staff {staff.id} granted guardian access for enrollment {enrollment_id}")
        return GuardianAccessInfo(
            guardian_id=result.guardian_id,
            created=result.created,
            email_sent=result.email_sent,
        )

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error granting guardian access for {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/renew",
    response_model=RenewalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Renew Enrollment",
    description="""
Start next year's enrollment from this one. Returns the existing
enrollment with `created=false` (status 200) when it was already renewed.
""",
)
@rate_limit(limit=30, window_seconds=60, key_func=staff_action_rate_limit)
async def renew_enrollment(
    request: Request,
    response: Response,
    enrollment_id: UUID,
    data: RenewEnrollmentRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> RenewalResponse:
    target_year = data.target_year if data else None
    try:
        result = await renewal_service.start_renewal(db, enrollment_id, target_year, staff.id)
        if not result.created:
            response.status_code = status.HTTP_200_OK
        return to_renewal_response(result)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error renewing enrollment {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/invite",
    response_model=InviteResponse,
    summary="Regenerate Invitation",
    description="Issue a new invitation link. The previous link stops working.",
    responses={409: {"description": "Enrollment cancelled"}},
)
@rate_limit(limit=10, window_seconds=60, key_func=staff_action_rate_limit)
async def regenerate_invite(
    request: Request,
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InviteResponse:
    try:
        enrollment, invite_url, email_sent = await service.regenerate_invite(db, enrollment_id)
        logger.info(f"Staff {staff.id} regenerated invitation for enrollment {enrollment_id}")
        return InviteResponse(id=enrollment.id, invite_url=invite_url, email_sent=email_sent)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error regenerating invitation for {enrollment_id}: {e}")
        raise _internal_error() from e


# ============================================
# Documents
# ============================================


@router.get(
    "/{enrollment_id}/documents",
    response_model=list[DocumentInfo],
    summary="List Enrollment Documents",
    description="Every catalog document with its status (`pending` when never uploaded).",
)
async def list_documents(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> list[DocumentInfo]:
    try:
        enrollment = await service.get_enrollment(db, enrollment_id)
        return build_document_list(enrollment.documents)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing documents of {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/documents/{kind}",
    response_model=DocumentInfo,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Document For The Family",
    responses={
        409: {"description": "Document already uploaded or approved"},
        413: {"description": "File too large"},
        415: {"description": "Unsupported file type"},
    },
)
async def upload_document(
    enrollment_id: UUID,
    kind: DocumentKind,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> DocumentInfo:
    try:
        enrollment = await service.get_enrollment(db, enrollment_id)
        content = await file.read(settings.max_upload_bytes + 1)
        document = await document_service.upload_document(
            db,
            enrollment,
            kind,
            content=content,
            content_type=file.content_type or "",
            file_name=file.filename or kind.value,
            declared_size=file.size,
            uploader=document_service.Uploader.STAFF,
        )
        logger.info(f"Staff {staff.id} uploaded {kind.value} for enrollment {enrollment_id}")
        return to_document_info(document)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error uploading {kind.value} for {enrollment_id}: {e}")
        raise _internal_error() from e
    finally:
        await file.close()


@router.post(
    "/{enrollment_id}/documents/{kind}/review",
    response_model=DocumentInfo,
    summary="Review Document",
    description="Approve or reject an uploaded document. Rejections need a reason.",
    responses={
        409: {"description": "Document is not waiting for review"},
        422: {"description": "Rejection without a reason"},
    },
)
async def review_document(
    enrollment_id: UUID,
    kind: DocumentKind,
    data: DocumentReviewRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> DocumentInfo:
    try:
        enrollment = await service.get_enrollment(db, enrollment_id)
        document = await document_service.review_document(
            db,
            enrollment,
            kind,
            data.decision,
            reason=data.reason,
            reviewer_id=staff.id,
        )
        return to_document_info(document)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error reviewing {kind.value} of {enrollment_id}: {e}")
        raise _internal_error() from e


@router.delete(
    "/{enrollment_id}/documents/{kind}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove Document",
    description="Delete the stored file; the document goes back to pending.",
    responses={
        404: {"description": "Nothing uploaded for this kind"},
        503: {"description": "Document storage unavailable"},
    },
)
async def remove_document(
    enrollment_id: UUID,
    kind: DocumentKind,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> Response:
    try:
        enrollment = await service.get_enrollment(db, enrollment_id)
        await document_service.remove_document(db, enrollment, kind)
        logger.info(f"Staff {staff.id} removed {kind.value} from enrollment {enrollment_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error removing {kind.value} of {enrollment_id}: {e}")
        raise _internal_error() from e


@router.get(
    "/{enrollment_id}/documents/{kind}/download",
    summary="Download Document",
    response_class=Response,
    responses={
        200: {"description": "The stored file"},
        404: {"description": "Nothing uploaded for this kind"},
    },
)
async def download_document(
    enrollment_id: UUID,
    kind: DocumentKind,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> Response:
    try:
        document, content = await document_service.get_document_content(db, enrollment_id, kind)
        logger.info(f"Staff {staff.id} downloaded {kind.value} of enrollment {enrollment_id}")
        return Response(
            content=content,
            media_type=document.content_type,
            headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'},
        )

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error downloading {kind.value} of {enrollment_id}: {e}")
        raise _internal_error() from e


# ============================================
# Installments
# ============================================


@router.get(
    "/{enrollment_id}/installments",
    response_model=InstallmentListResponse,
    summary="List Installments",
    description="Payment schedule; pending installments past their due date show as `overdue`.",
)
async def list_installments(
    enrollment_id: UUID,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InstallmentListResponse:
    try:
        installments = await installment_service.list_installments(db, enrollment_id)
        return to_installment_list(installments)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing installments of {enrollment_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{enrollment_id}/installments/generate",
    response_model=InstallmentListResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate Installments",
    description="""
Replace the payment schedule with one generated from a financial plan.

Refused when any installment of the current schedule was already paid.
""",
    responses={
        404: {"description": "Enrollment or plan not found"},
        422: {"description": "Paid installments exist, or the plan is inactive"},
    },
)
async def generate_installments(
    enrollment_id: UUID,
    data: GenerateInstallmentsRequest,
    db: AsyncSession = Depends(get_db),
    staff: StaffUser = Depends(get_current_staff_user),
) -> InstallmentListResponse:
    try:
        installments = await installment_service.generate_installments(
            db, enrollment_id, data.plan_id, staff.id
        )
        return to_installment_list(installments)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error generating installments for {enrollment_id}: {e}")
        raise _internal_error() from e
