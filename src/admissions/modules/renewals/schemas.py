"""
Renewal Schemas
"""

from uuid import UUID

from pydantic import BaseModel, Field

from admissions.modules.enrollments.models import EnrollmentStatus


class RenewalRequest(BaseModel):
    source_id: UUID = Field(..., description="Enrollment id or student id to renew")
    target_year: int | None = Field(
        None, ge=2000, le=2100, description="Defaults to the source year + 1"
    )


class RenewEnrollmentRequest(BaseModel):
    target_year: int | None = Field(None, ge=2000, le=2100)


class RenewalResponse(BaseModel):
    id: UUID
    academic_year: int
    status: EnrollmentStatus
    created: bool
    invite_url: str | None = None
    email_sent: bool = False
    message: str
