"""
Installment Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from admissions.modules.installments.models import Installment, InstallmentStatus, NegotiationType
from admissions.modules.installments.service import AdjustmentMode, effective_status


class InstallmentResponse(BaseModel):
    id: UUID
    enrollment_id: UUID
    installment_number: int
    due_date: date
    value: Decimal
    original_value: Decimal
    discount_value: Decimal
    surcharge_value: Decimal
    status: InstallmentStatus = Field(..., description="Stored status, or overdue when past due")
    is_published: bool
    paid_at: datetime | None
    payment_method: str | None
    negotiation_type: NegotiationType | None
    negotiation_notes: str | None
    negotiation_date: datetime | None


class InstallmentListResponse(BaseModel):
    installments: list[InstallmentResponse]
    total_value: Decimal


class GenerateInstallmentsRequest(BaseModel):
    plan_id: UUID


class InstallmentFieldUpdate(BaseModel):
    """Change one field of an installment."""

    field: Literal["due_date", "value", "status", "paid_at", "payment_method", "is_published"]
    value: Any = None


class MarkPaidRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    paid_at: datetime | None = None


class BulkInstallmentsRequest(BaseModel):
    ids: list[UUID] = Field(..., min_length=1, max_length=500)


class BulkPublishRequest(BulkInstallmentsRequest):
    published: bool = True


class BulkResult(BaseModel):
    requested: int
    updated: int
    updated_ids: list[UUID]


class RenegotiateRequest(BaseModel):
    type: NegotiationType
    mode: AdjustmentMode = AdjustmentMode.FIXED
    amount: Decimal = Field(..., ge=0, description="Currency amount or percentage")
    notes: str | None = Field(None, max_length=1000)


def to_installment_response(installment: Installment) -> InstallmentResponse:
    return InstallmentResponse(
        id=installment.id,
        enrollment_id=installment.enrollment_id,
        installment_number=installment.installment_number,
        due_date=installment.due_date,
        value=installment.value,
        original_value=installment.original_value,
        discount_value=installment.discount_value,
        surcharge_value=installment.surcharge_value,
        status=effective_status(installment),
        is_published=installment.is_published,
        paid_at=installment.paid_at,
        payment_method=installment.payment_method,
        negotiation_type=installment.negotiation_type,
        negotiation_notes=installment.negotiation_notes,
        negotiation_date=installment.negotiation_date,
    )


def to_installment_list(installments: list[Installment]) -> InstallmentListResponse:
    return InstallmentListResponse(
        installments=[to_installment_response(item) for item in installments],
        total_value=sum(
            (item.value for item in installments if item.status != InstallmentStatus.CANCELLED),
            Decimal("0.00"),
        ),
    )
