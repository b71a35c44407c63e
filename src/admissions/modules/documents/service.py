"""
Document Verification Service

Per-document lifecycle for enrollment paperwork:

    pending -> uploaded -> approved
                        -> rejected -> uploaded -> ...

Rules:
- Uploads are accepted only for kinds that are pending or rejected.
- Only an uploaded document can be reviewed; rejections need a reason.
- Removing a document deletes the stored file and returns the kind to pending.
- A new upload after a rejection notifies the admissions staff.

Operations on different kinds of the same enrollment never touch the same
row. Operations on the same kind are serialized by the conditional updates
in the repository.
"""

import logging
import uuid
from collections.abc import Iterable
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from admissions.core.config import settings
from admissions.core.errors import (
    AdmissionsServiceError,
    DependencyFailureError,
    FileTooLargeError,
    InvalidTransitionError,
    NotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)
from admissions.modules.documents import repository
from admissions.modules.documents.models import (
    DOCUMENT_LABELS,
    REQUIRED_DOCUMENT_KINDS,
    UPLOADABLE_STATUSES,
    DocumentKind,
    DocumentStatus,
    EnrollmentDocument,
)
from admissions.modules.documents.storage import (
    DocumentStoreError,
    build_storage_key,
    get_document_store,
)
from admissions.modules.enrollments.models import Enrollment, EnrollmentStatus
from admissions.modules.notifications import NotificationKind, notify

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "application/pdf",
    }
)

# Parents may upload while filling in the wizard and while the enrollment
# is under analysis (to answer a rejection)
PARENT_UPLOAD_STATUSES = {EnrollmentStatus.DRAFT, EnrollmentStatus.SENT}


class Uploader(str, Enum):
    PARENT = "parent"
    STAFF = "staff"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class InvalidDocumentStateError(AdmissionsServiceError):
    """Raised when a document operation is illegal in the document's status."""

    def __init__(self, kind: DocumentKind, current: DocumentStatus, action: str):
        self.kind = kind
        self.current = current
        super().__init__(
            message=f"Cannot {action} document '{kind.value}' in status: {current.value}.",
            error_code="INVALID_DOCUMENT_STATE",
            status_code=409,
        )


def validate_upload(content_type: str, size_bytes: int) -> None:
    """
    Check an upload against the size limit and the content type allow-list.

    Raises:
        FileTooLargeError: If the file exceeds ``settings.max_upload_bytes``
        UnsupportedFileTypeError: If the type is not an accepted image or PDF
    """
    if size_bytes > settings.max_upload_bytes:
        raise FileTooLargeError(size_bytes, settings.max_upload_bytes)

    normalized = (content_type or "").split(";")[0].strip().lower()
    if normalized not in ALLOWED_CONTENT_TYPES:
        raise UnsupportedFileTypeError(content_type, ALLOWED_CONTENT_TYPES)


def document_statuses(documents: Iterable[EnrollmentDocument]) -> dict[DocumentKind, DocumentStatus]:
    """Status of every catalog kind, with ``PENDING`` for kinds never uploaded."""
    statuses = {kind: DocumentStatus.PENDING for kind in DocumentKind}
    for document in documents:
        statuses[document.kind] = document.status
    return statuses


def all_required_approved(documents: Iterable[EnrollmentDocument]) -> bool:
    """True iff every required document kind is approved."""
    statuses = document_statuses(documents)
    return all(statuses[kind] == DocumentStatus.APPROVED for kind in REQUIRED_DOCUMENT_KINDS)


def _check_enrollment_accepts_uploads(enrollment: Enrollment, uploader: Uploader) -> None:
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(
            f"Enrollment {enrollment.id} is cancelled; documents can no longer change."
        )
    if uploader == Uploader.PARENT and enrollment.status not in PARENT_UPLOAD_STATUSES:
        raise InvalidTransitionError(
            f"Enrollment {enrollment.id} is {enrollment.status.value}; "
            "parents can no longer upload documents."
        )


async def _discard_blob(ref: str) -> None:
    """Delete a stored file that is no longer referenced. Best effort."""
    try:
        await get_document_store().delete(ref)
    except DocumentStoreError as e:
        logger.error(f"Failed to delete orphaned document file {ref}: {e}")


async def upload_document(
    db: AsyncSession,
    enrollment: Enrollment,
    kind: DocumentKind,
    *,
    content: bytes,
    content_type: str,
    file_name: str,
    declared_size: int | None = None,
    uploader: Uploader = Uploader.PARENT,
) -> EnrollmentDocument:
    """
    Store a file for a document kind and mark it uploaded.

    Args:
        db: Database session
        enrollment: The enrollment the document belongs to
        kind: Document kind from the catalog
        content: File bytes
        content_type: Declared MIME type
        file_name: Original file name
        declared_size: Size announced by the client, if any
        uploader: Whether a parent (token) or staff member is uploading

    Returns:
        The document row after the upload

    Raises:
        FileTooLargeError: If the file exceeds the size limit
        UnsupportedFileTypeError: If the type is not accepted
        InvalidTransitionError: If the enrollment no longer accepts uploads
        InvalidDocumentStateError: If the kind is uploaded or approved
        DependencyFailureError: If the document store fails
    """
    validate_upload(content_type, max(declared_size or 0, len(content)))
    _check_enrollment_accepts_uploads(enrollment, uploader)

    existing = await repository.get_document(db, enrollment.id, kind)
    current = existing.status if existing else DocumentStatus.PENDING
    if current not in UPLOADABLE_STATUSES:
        raise InvalidDocumentStateError(kind, current, "upload")

    # Unique key per upload so a failed attempt never overwrites a stored file
    key = build_storage_key(enrollment.id, f"{kind.value}_{uuid.uuid4().hex[:8]}", file_name)
    store = get_document_store()
    try:
        ref = await store.put(key, content, content_type)
    except DocumentStoreError as e:
        logger.error(f"Document store failed for enrollment {enrollment.id} ({kind.value}): {e}")
        raise DependencyFailureError(
            "The document could not be stored. Please try again.",
            error_code="DOCUMENT_STORE_UNAVAILABLE",
        ) from e

    previous_ref = existing.storage_ref if existing else None
    try:
        if existing:
            updated = await repository.replace_rejected_upload(
                db,
                existing.id,
                storage_ref=ref,
                file_name=file_name,
                content_type=content_type,
                size_bytes=len(content),
            )
            if not updated:
                raise InvalidDocumentStateError(kind, DocumentStatus.UPLOADED, "upload")
        else:
            await repository.create_document(
                db,
                enrollment_id=enrollment.id,
                kind=kind,
                storage_ref=ref,
                file_name=file_name,
                content_type=content_type,
                size_bytes=len(content),
            )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        await _discard_blob(ref)
        logger.warning(f"Concurrent first upload of {kind.value} for enrollment {enrollment.id}")
        raise InvalidDocumentStateError(kind, DocumentStatus.UPLOADED, "upload") from e
    except Exception:
        await db.rollback()
        await _discard_blob(ref)
        raise

    logger.info(f"Document {kind.value} uploaded for enrollment {enrollment.id} by {uploader.value}")

    if previous_ref and previous_ref != ref:
        await _discard_blob(previous_ref)

    if current == DocumentStatus.REJECTED:
        await notify(
            NotificationKind.DOCUMENT_RESUBMITTED,
            enrollment.id,
            f"{enrollment.candidate_name}: '{DOCUMENT_LABELS[kind]}' was sent again and "
            "is waiting for review.",
        )

    document = await repository.get_document(db, enrollment.id, kind)
    if document is None:
        raise NotFoundError("Document", kind.value)
    await db.refresh(document)
    return document


async def review_document(
    db: AsyncSession,
    enrollment: Enrollment,
    kind: DocumentKind,
    decision: ReviewDecision,
    *,
    reason: str | None = None,
    reviewer_id: UUID | None = None,
) -> EnrollmentDocument:
    """
    Approve or reject an uploaded document.

    Raises:
        ValidationError: If rejecting without a reason
        InvalidTransitionError: If the enrollment is cancelled
        InvalidDocumentStateError: If the document is not currently uploaded
    """
    reason = (reason or "").strip() or None
    if decision == ReviewDecision.REJECT and not reason:
        raise ValidationError("A reason is required to reject a document.")

    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(
            f"Enrollment {enrollment.id} is cancelled; documents can no longer change."
        )

    document = await repository.get_document(db, enrollment.id, kind)
    if document is None:
        raise InvalidDocumentStateError(kind, DocumentStatus.PENDING, decision.value)
    if document.status != DocumentStatus.UPLOADED:
        raise InvalidDocumentStateError(kind, document.status, decision.value)

    new_status = (
        DocumentStatus.APPROVED if decision == ReviewDecision.APPROVE else DocumentStatus.REJECTED
    )
    updated = await repository.set_review_decision(
        db,
        document.id,
        status=new_status,
        reviewed_by=reviewer_id,
        rejection_reason=reason if new_status == DocumentStatus.REJECTED else None,
    )
    if not updated:
        await db.rollback()
        raise InvalidDocumentStateError(kind, DocumentStatus.UPLOADED, decision.value)

    await db.commit()
    await db.refresh(document)

    logger.info(
        f"Document {kind.value} of enrollment {enrollment.id} {new_status.value} by {reviewer_id}"
    )
    return document


async def remove_document(
    db: AsyncSession,
    enrollment: Enrollment,
    kind: DocumentKind,
) -> None:
    """
    Delete a document's metadata and stored file, returning the kind to pending.

    The row is committed away before the file is discarded, so a failure
    can leave an unreferenced file but never a row pointing at a missing one.

    Raises:
        NotFoundError: If nothing was uploaded for the kind
        InvalidTransitionError: If the enrollment is cancelled
    """
    if enrollment.status == EnrollmentStatus.CANCELLED:
        raise InvalidTransitionError(
            f"Enrollment {enrollment.id} is cancelled; documents can no longer change."
        )

    document = await repository.get_document(db, enrollment.id, kind)
    if document is None:
        raise NotFoundError("Document", kind.value)

    ref = document.storage_ref
    try:
        await repository.delete_document(db, document.id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await _discard_blob(ref)
    logger.info(f"Document {kind.value} removed from enrollment {enrollment.id}")


async def get_document_content(
    db: AsyncSession,
    enrollment_id: UUID,
    kind: DocumentKind,
) -> tuple[EnrollmentDocument, bytes]:
    """
    Load a document's metadata and stored bytes.

    Raises:
        NotFoundError: If nothing was uploaded for the kind
        DependencyFailureError: If the stored file cannot be read
    """
    document = await repository.get_document(db, enrollment_id, kind)
    if document is None:
        raise NotFoundError("Document", kind.value)

    try:
        content = await get_document_store().get(document.storage_ref)
    except DocumentStoreError as e:
        logger.error(f"Failed to read stored file for {kind.value} of {enrollment_id}: {e}")
        raise DependencyFailureError(
            "The document could not be read. Please try again.",
            error_code="DOCUMENT_STORE_UNAVAILABLE",
        ) from e
    return document, content


async def discard_stored_files(refs: Iterable[str]) -> int:
    """
    Delete stored files whose rows are already gone. Best effort.

    Returns:
        Number of files the store was asked to delete
    """
    count = 0
    for ref in refs:
        await _discard_blob(ref)
        count += 1
    return count
