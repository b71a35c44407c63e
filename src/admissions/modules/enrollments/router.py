"""
Enrollment Invites Router

Parent-facing endpoints. A parent is authorized by the invitation token in
the URL; there is no account or session.

Endpoints:
- GET /enrollment-invites/{token} - Current enrollment state and mode
- PUT /enrollment-invites/{token} - Autosave wizard progress
- POST /enrollment-invites/{token}/submit - Finalize the wizard
- POST /enrollment-invites/{token}/documents/{kind} - Upload a document

Security:
- Only the SHA-256 hash of the token is stored
- Cancelled enrollments are not reachable through their token
- Rate limiting on every endpoint (token guessing, upload floods)
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.config import settings
from admissions.core.database import get_db
from admissions.core.errors import AdmissionsServiceError
from admissions.core.rate_limit import rate_limit
from admissions.modules.documents import service as document_service
from admissions.modules.documents.models import DocumentKind
from admissions.modules.documents.schemas import DocumentInfo, to_document_info
from admissions.modules.enrollments import service
from admissions.modules.enrollments.schemas import (
    AutosaveResponse,
    EnrollmentDraftUpdate,
    EnrollmentPublicView,
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
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get(
    "/{token}",
    response_model=EnrollmentPublicView,
    summary="Get Enrollment By Invitation",
    description="""
Load the enrollment behind an invitation link.

`mode` tells the frontend what to show:
- `wizard`: the form is editable
- `analysis`: submitted, waiting for the school
- `action_required`: at least one document was rejected and must be sent again
- `success`: the enrollment was approved
""",
    responses={
        404: {"description": "Unknown, regenerated or cancelled invitation"},
        429: {"description": "Too many requests"},
    },
)
@rate_limit(limit=60, window_seconds=60)
async def get_invite(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> EnrollmentPublicView:
    try:
        enrollment = await service.get_enrollment_by_token(db, token)
        return service.to_public_view(enrollment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error loading enrollment invitation: {e}")
        raise _internal_error() from e


@router.put(
    "/{token}",
    response_model=AutosaveResponse,
    summary="Autosave Enrollment Draft",
    description="""
Save wizard progress. Only the fields present in the body change.

Send `expected_version` (the `version` last received) to detect edits made
elsewhere. A stale version is not an error: the response has
`saved=false, conflict=true` and nothing is written.
""",
    responses={
        404: {"description": "Unknown or cancelled invitation"},
        409: {"description": "The enrollment is no longer a draft"},
    },
)
@rate_limit(limit=120, window_seconds=60)
async def autosave(
    request: Request,
    token: str,
    data: EnrollmentDraftUpdate,
    db: AsyncSession = Depends(get_db),
) -> AutosaveResponse:
    try:
        return await service.autosave_draft(db, token, data)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error autosaving enrollment: {e}")
        raise _internal_error() from e


@router.post(
    "/{token}/submit",
    response_model=EnrollmentPublicView,
    summary="Submit Enrollment For Review",
    description="""
Finalize the wizard and send the enrollment to the school.

Requires the financial responsible's name and CPF. After submission the
form is read-only until the school reopens it.
""",
    responses={
        404: {"description": "Unknown or cancelled invitation"},
        409: {"description": "Already submitted"},
        422: {"description": "Required fields are missing"},
    },
)
@rate_limit(limit=10, window_seconds=60)
async def submit(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> EnrollmentPublicView:
    try:
        enrollment = await service.submit_draft(db, token)
        return service.to_public_view(enrollment)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error submitting enrollment: {e}")
        raise _internal_error() from e


@router.post(
    "/{token}/documents/{kind}",
    response_model=DocumentInfo,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Enrollment Document",
    description="""
Upload one document of the enrollment checklist.

Accepted types: JPEG, PNG and PDF, up to 5 MB. A document can be uploaded
while it is pending or after it was rejected.
""",
    responses={
        404: {"description": "Unknown or cancelled invitation"},
        409: {"description": "Document already uploaded or approved"},
        413: {"description": "File too large"},
        415: {"description": "Unsupported file type"},
        503: {"description": "Document storage unavailable"},
    },
)
@rate_limit(limit=20, window_seconds=60)
async def upload_document(
    request: Request,
    token: str,
    kind: DocumentKind,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
) -> DocumentInfo:
    try:
        enrollment = await service.get_enrollment_by_token(db, token)

        # Read one byte past the limit so oversized files are detected
        content = await file.read(settings.max_upload_bytes + 1)

        document = await document_service.upload_document(
            db,
            enrollment,
            kind,
            content=content,
            content_type=file.content_type or "",
            file_name=file.filename or kind.value,
            declared_size=file.size,
        )

        return to_document_info(document)

    except AdmissionsServiceError as e:
        _handle_service_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error uploading document: {e}")
        raise _internal_error() from e
    finally:
        await file.close()
