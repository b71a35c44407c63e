"""
Documents module - per-document upload and verification for enrollments.

Required kinds: student_id, parent_id, residency, vaccination, transfer,
photo. Contract artifacts (contract_draft, contract_signed) are optional.
"""

from admissions.modules.documents.models import (
    REQUIRED_DOCUMENT_KINDS,
    DocumentKind,
    DocumentStatus,
    EnrollmentDocument,
)

__all__ = [
    "REQUIRED_DOCUMENT_KINDS",
    "DocumentKind",
    "DocumentStatus",
    "EnrollmentDocument",
]
