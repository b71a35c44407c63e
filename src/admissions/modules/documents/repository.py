"""
Document Repository

Data access for enrollment documents. Status changes are written as
conditional updates on the expected current status, so concurrent
operations on the same kind cannot both succeed and an approved document
can never be moved back by a stale request.

Functions only flush; the calling service commits.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DocumentKind, DocumentStatus, EnrollmentDocument


async def list_for_enrollment(db: AsyncSession, enrollment_id: UUID) -> list[EnrollmentDocument]:
    """Get all document rows of an enrollment."""
    result = await db.execute(
        select(EnrollmentDocument).where(EnrollmentDocument.enrollment_id == enrollment_id)
    )
    return list(result.scalars().all())


async def get_document(
    db: AsyncSession, enrollment_id: UUID, kind: DocumentKind
) -> EnrollmentDocument | None:
    """Get the document row for one kind, if any was uploaded."""
    result = await db.execute(
        select(EnrollmentDocument).where(
            EnrollmentDocument.enrollment_id == enrollment_id,
            EnrollmentDocument.kind == kind,
        )
    )
    return result.scalar_one_or_none()


async def create_document(
    db: AsyncSession,
    *,
    enrollment_id: UUID,
    kind: DocumentKind,
    storage_ref: str,
    file_name: str,
    content_type: str,
    size_bytes: int,
) -> EnrollmentDocument:
    """
    Insert the first upload of a kind.

    Raises:
        IntegrityError: If another upload of the same kind won the race
    """
    document = EnrollmentDocument(
        enrollment_id=enrollment_id,
        kind=kind,
        status=DocumentStatus.UPLOADED,
        storage_ref=storage_ref,
        file_name=file_name,
        content_type=content_type,
        size_bytes=size_bytes,
        uploaded_at=datetime.now(UTC),
    )
    db.add(document)
    await db.flush()
    return document


async def replace_rejected_upload(
    db: AsyncSession,
    document_id: UUID,
    *,
    storage_ref: str,
    file_name: str,
    content_type: str,
    size_bytes: int,
) -> bool:
    """
    Record a new file for a rejected document.

    Returns:
        True if the row was still rejected and has been updated
    """
    result = await db.execute(
        update(EnrollmentDocument)
        .where(
            EnrollmentDocument.id == document_id,
            EnrollmentDocument.status == DocumentStatus.REJECTED,
        )
        .values(
            status=DocumentStatus.UPLOADED,
            storage_ref=storage_ref,
            file_name=file_name,
            content_type=content_type,
            size_bytes=size_bytes,
            uploaded_at=datetime.now(UTC),
            reviewed_at=None,
            reviewed_by=None,
            rejection_reason=None,
        )
        .returning(EnrollmentDocument.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def set_review_decision(
    db: AsyncSession,
    document_id: UUID,
    *,
    status: DocumentStatus,
    reviewed_by: UUID | None,
    rejection_reason: str | None = None,
) -> bool:
    """
    Move an uploaded document to approved or rejected.

    Returns:
        True if the row was still uploaded and has been updated
    """
    result = await db.execute(
        update(EnrollmentDocument)
        .where(
            EnrollmentDocument.id == document_id,
            EnrollmentDocument.status == DocumentStatus.UPLOADED,
        )
        .values(
            status=status,
            reviewed_at=datetime.now(UTC),
            reviewed_by=reviewed_by,
            rejection_reason=rejection_reason,
        )
        .returning(EnrollmentDocument.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


async def delete_document(db: AsyncSession, document_id: UUID) -> None:
    await db.execute(delete(EnrollmentDocument).where(EnrollmentDocument.id == document_id))
    await db.flush()
