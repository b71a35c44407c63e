"""
Enrollment Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from admissions.modules.documents.schemas import DocumentInfo
from admissions.modules.enrollments.models import EnrollmentMode, EnrollmentStatus


class AuthorizedPickup(BaseModel):
    """Person allowed to pick the student up from school."""

    name: str = Field(..., min_length=1, max_length=200)
    relation: str | None = Field(None, max_length=100)
    cpf: str | None = Field(None, max_length=20)


class EnrollmentDetails(BaseModel):
    """
    Data collected by the enrollment wizard.

    Every field is optional so partial saves are possible; unknown keys are
    kept as sent.
    """

    model_config = ConfigDict(extra="allow")

    # Student identity
    student_cpf: str | None = Field(None, max_length=20)
    birth_date: str | None = Field(None, max_length=10, description="YYYY-MM-DD")
    rg: str | None = Field(None, max_length=30)
    rg_issuing_body: str | None = Field(None, max_length=30)

    # Health
    blood_type: str | None = Field(None, max_length=5)
    allergies: str | None = Field(None, max_length=1000)
    health_insurance: str | None = Field(None, max_length=200)
    health_insurance_number: str | None = Field(None, max_length=100)

    # Financial responsible / guardian
    parent_name: str | None = Field(None, max_length=200)
    parent_cpf: str | None = Field(None, max_length=20)
    parent_rg: str | None = Field(None, max_length=30)
    parent_phone: str | None = Field(None, max_length=30)
    parent_email: str | None = Field(None, max_length=255)

    # Address
    zip_code: str | None = Field(None, max_length=10)
    address: str | None = Field(None, max_length=300)
    address_number: str | None = Field(None, max_length=20)
    neighbor: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=2)
    complement: str | None = Field(None, max_length=200)

    authorized_pickups: list[AuthorizedPickup] | None = None


class EnrollmentCreate(BaseModel):
    """Request body for POST /admin/enrollments (staff invite)."""

    candidate_name: str = Field(..., min_length=1, max_length=200)
    academic_year: int = Field(..., ge=2000, le=2100)
    parent_name: str | None = Field(None, max_length=200)
    parent_email: EmailStr | None = None
    parent_phone: str | None = Field(None, max_length=30)


class EnrollmentCreateResponse(BaseModel):
    id: UUID
    status: EnrollmentStatus
    invite_url: str
    message: str


class EnrollmentDraftUpdate(BaseModel):
    """Parent autosave payload. Only the fields sent are changed."""

    candidate_name: str | None = Field(None, min_length=1, max_length=200)
    parent_name: str | None = Field(None, max_length=200)
    parent_email: EmailStr | None = None
    parent_phone: str | None = Field(None, max_length=30)
    details: EnrollmentDetails | None = None
    expected_version: int | None = Field(
        None, ge=1, description="Version the client last saw; stale saves are refused"
    )


class EnrollmentUpdate(EnrollmentDraftUpdate):
    """Staff edit payload."""

    academic_year: int | None = Field(None, ge=2000, le=2100)


class AutosaveResponse(BaseModel):
    saved: bool
    conflict: bool = False
    version: int | None = None
    message: str


class ReasonRequest(BaseModel):
    """Body for cancel and transfer."""

    reason: str = Field("", max_length=1000)


class StatusChangeResponse(BaseModel):
    id: UUID
    status: EnrollmentStatus
    message: str


class InviteResponse(BaseModel):
    id: UUID
    invite_url: str
    email_sent: bool


class EnrollmentPublicView(BaseModel):
    """What a parent sees through the invitation link."""

    id: UUID
    candidate_name: str
    academic_year: int
    parent_name: str | None
    parent_email: str | None
    parent_phone: str | None
    details: dict
    status: EnrollmentStatus
    mode: EnrollmentMode
    version: int
    documents: list[DocumentInfo]


class EnrollmentDetail(EnrollmentPublicView):
    """Staff view of an enrollment."""

    student_id: UUID | None
    financial_plan_id: UUID | None
    documents_complete: bool
    student_sync_pending: bool
    submitted_at: datetime | None
    approved_at: datetime | None
    approved_by: UUID | None
    created_at: datetime
    updated_at: datetime


class EnrollmentListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    candidate_name: str
    academic_year: int
    parent_name: str | None
    parent_email: str | None
    status: EnrollmentStatus
    student_id: UUID | None
    submitted_at: datetime | None
    created_at: datetime


class EnrollmentListResponse(BaseModel):
    enrollments: list[EnrollmentListItem]
    total: int
    skip: int
    limit: int
