"""
Document Models

One row per (enrollment, document kind) that has ever been uploaded.
A kind without a row is pending.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admissions.modules.shared import BaseModel

if TYPE_CHECKING:
    from admissions.modules.enrollments.models import Enrollment


class DocumentKind(str, enum.Enum):
    """Catalog of document kinds collected during admission."""

    STUDENT_ID = "student_id"
    PARENT_ID = "parent_id"
    RESIDENCY = "residency"
    VACCINATION = "vaccination"
    TRANSFER = "transfer"
    PHOTO = "photo"
    CONTRACT_DRAFT = "contract_draft"
    CONTRACT_SIGNED = "contract_signed"


class DocumentStatus(str, enum.Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    APPROVED = "approved"
    REJECTED = "rejected"


# Kinds that must be approved before an enrollment counts as documentation-complete
REQUIRED_DOCUMENT_KINDS: tuple[DocumentKind, ...] = (
    DocumentKind.STUDENT_ID,
    DocumentKind.PARENT_ID,
    DocumentKind.RESIDENCY,
    DocumentKind.VACCINATION,
    DocumentKind.TRANSFER,
    DocumentKind.PHOTO,
)

DOCUMENT_LABELS: dict[DocumentKind, str] = {
    DocumentKind.STUDENT_ID: "Student identity document",
    DocumentKind.PARENT_ID: "Guardian identity document",
    DocumentKind.RESIDENCY: "Proof of residence",
    DocumentKind.VACCINATION: "Vaccination card",
    DocumentKind.TRANSFER: "School transfer declaration",
    DocumentKind.PHOTO: "Student photo",
    DocumentKind.CONTRACT_DRAFT: "Enrollment contract (for signature)",
    DocumentKind.CONTRACT_SIGNED: "Signed enrollment contract",
}

# Statuses from which a new file may be uploaded for a kind
UPLOADABLE_STATUSES = frozenset({DocumentStatus.PENDING, DocumentStatus.REJECTED})


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class EnrollmentDocument(BaseModel):
    """Uploaded file and verification state for one document kind."""

    __tablename__ = "enrollment_documents"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[DocumentKind] = mapped_column(
        Enum(DocumentKind, name="document_kind", values_callable=_enum_values),
        nullable=False,
    )
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, name="document_status", values_callable=_enum_values),
        nullable=False,
        default=DocumentStatus.UPLOADED,
    )

    storage_ref: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    enrollment: Mapped["Enrollment"] = relationship("Enrollment", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("enrollment_id", "kind", name="uq_enrollment_documents_kind"),
    )
