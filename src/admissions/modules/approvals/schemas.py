"""
Approval Schemas
"""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class ApproveRequest(BaseModel):
    provision_guardian: bool = Field(
        False, description="Also create guardian portal access for the financial responsible"
    )


class GuardianAccessInfo(BaseModel):
    guardian_id: UUID
    created: bool
    email_sent: bool


class ApproveResponse(BaseModel):
    id: UUID
    student_id: UUID
    documents_complete: bool
    guardian_access: GuardianAccessInfo | None = None
    message: str


class GuardianAccessRequest(BaseModel):
    email: EmailStr | None = Field(
        None, description="Defaults to the financial responsible's e-mail on the enrollment"
    )
    name: str | None = Field(None, max_length=200)
