"""
Document Schemas
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from admissions.modules.documents.models import (
    DOCUMENT_LABELS,
    REQUIRED_DOCUMENT_KINDS,
    DocumentKind,
    DocumentStatus,
    EnrollmentDocument,
)
from admissions.modules.documents.service import ReviewDecision, document_statuses


class DocumentInfo(BaseModel):
    """State of one catalog document kind for an enrollment."""

    model_config = ConfigDict(from_attributes=True)

    kind: DocumentKind
    label: str
    required: bool
    status: DocumentStatus = DocumentStatus.PENDING
    file_name: str | None = None
    content_type: str | None = None
    size_bytes: int | None = None
    uploaded_at: datetime | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None


class DocumentReviewRequest(BaseModel):
    decision: ReviewDecision
    reason: str | None = Field(None, max_length=1000)


def build_document_list(documents: list[EnrollmentDocument]) -> list[DocumentInfo]:
    """Full catalog, in catalog order, merging uploaded rows over pending defaults."""
    by_kind = {document.kind: document for document in documents}
    statuses = document_statuses(documents)
    items = []
    for kind in DocumentKind:
        document = by_kind.get(kind)
        items.append(
            DocumentInfo(
                kind=kind,
                label=DOCUMENT_LABELS[kind],
                required=kind in REQUIRED_DOCUMENT_KINDS,
                status=statuses[kind],
                file_name=document.file_name if document else None,
                content_type=document.content_type if document else None,
                size_bytes=document.size_bytes if document else None,
                uploaded_at=document.uploaded_at if document else None,
                reviewed_at=document.reviewed_at if document else None,
                rejection_reason=document.rejection_reason if document else None,
            )
        )
    return items


def to_document_info(document: EnrollmentDocument) -> DocumentInfo:
    """Representation of a single stored document row."""
    return DocumentInfo(
        kind=document.kind,
        label=DOCUMENT_LABELS[document.kind],
        required=document.kind in REQUIRED_DOCUMENT_KINDS,
        status=document.status,
        file_name=document.file_name,
        content_type=document.content_type,
        size_bytes=document.size_bytes,
        uploaded_at=document.uploaded_at,
        reviewed_at=document.reviewed_at,
        rejection_reason=document.rejection_reason,
    )
