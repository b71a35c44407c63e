"""
Helper functions for enrollments.

Pure functions shared by the service, the routers and the renewal pipeline.
"""

from collections.abc import Iterable

from admissions.modules.documents.models import DocumentStatus, EnrollmentDocument
from admissions.modules.enrollments.models import (
    Enrollment,
    EnrollmentMode,
    EnrollmentStatus,
)

# Keys written only by the service itself
SYSTEM_DETAIL_FIELDS = frozenset(
    {
        "enrollment_type",
        "renewed_from",
        "cancellation_reason",
        "cancelled_at",
    }
)

# Required before a parent can submit the wizard
REQUIRED_FOR_SUBMISSION = ("parent_name", "parent_cpf")

TRANSFER_REASON_PREFIX = "TRANSFER: "


def derive_mode(status: EnrollmentStatus, documents: Iterable[EnrollmentDocument]) -> EnrollmentMode:
    """
    Compute what the parent-facing view should show.

    - wizard: the enrollment is still a draft
    - success: the enrollment was approved (or completed)
    - action_required: at least one document was rejected
    - analysis: submitted and waiting for staff
    """
    if status == EnrollmentStatus.DRAFT:
        return EnrollmentMode.WIZARD
    if status in (EnrollmentStatus.APPROVED, EnrollmentStatus.COMPLETED):
        return EnrollmentMode.SUCCESS
    if any(document.status == DocumentStatus.REJECTED for document in documents):
        return EnrollmentMode.ACTION_REQUIRED
    return EnrollmentMode.ANALYSIS


def derive_enrollment_mode(enrollment: Enrollment) -> EnrollmentMode:
    return derive_mode(enrollment.status, enrollment.documents)


def merge_details(current: dict | None, changes: dict, *, allow_system_fields: bool = False) -> dict:
    """
    Return a new details dict with ``changes`` applied over ``current``.

    System fields are dropped from ``changes`` unless explicitly allowed.
    A new dict is always returned so the ORM detects the change.
    """
    merged = dict(current or {})
    for key, value in changes.items():
        if key in SYSTEM_DETAIL_FIELDS and not allow_system_fields:
            continue
        merged[key] = value
    return merged


def missing_submission_fields(enrollment: Enrollment) -> list[str]:
    """Required fields that are still blank for a parent submission."""
    details = enrollment.details or {}
    missing = []
    for field in REQUIRED_FOR_SUBMISSION:
        value = details.get(field)
        if field == "parent_name":
            value = value or enrollment.parent_name
        if not (isinstance(value, str) and value.strip()):
            missing.append(field)
    return missing
