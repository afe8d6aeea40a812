"""Pydantic request/response models for the consults API.

API schemas are separate from Protean commands (anti-corruption pattern).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------
class SubmitConsultRequestBody(BaseModel):
    customer_id: str | None = Field(None, description="Defaults to the X-Customer-Id header")
    product_id: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=254)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=30)
    eligibility_answers: dict[str, Any] | None = None
    consult_fee: float | None = Field(None, ge=0)
    notes: str | None = None


class CartItem(BaseModel):
    product_id: str | None = None
    variant_id: str | None = None
    quantity: int = Field(1, ge=1)


class CartValidationRequest(BaseModel):
    items: list[CartItem] = Field(..., min_length=1)


class RegisterClinicianRequest(BaseModel):
    business_id: str
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    license_number: str | None = Field(None, max_length=100)


class OpenConsultationRequest(BaseModel):
    business_id: str
    patient_id: str
    mode: str = Field("sync", examples=["sync", "async"])
    product_id: str | None = None
    order_id: str | None = None
    actor: str | None = None


class AssignClinicianRequest(BaseModel):
    clinician_id: str
    actor: str | None = None


class ScheduleConsultationRequest(BaseModel):
    scheduled_at: datetime
    actor: str | None = None


class ActorRequest(BaseModel):
    actor: str | None = None


class CancelConsultationRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    actor: str | None = None


class TransitionStatusRequest(BaseModel):
    to_status: str = Field(..., examples=["in_progress", "cancelled"])
    reason: str | None = None
    actor: str | None = None


class CompleteConsultationRequest(BaseModel):
    outcome: str = Field(..., examples=["approved", "rejected"])
    rejection_reason: str | None = None
    approved_product_refs: list[str] | None = None
    actor: str | None = None


class TransitionOrderStatusRequest(BaseModel):
    to_status: str = Field(..., examples=["processing", "fulfilled"])
    actor: str | None = None


class DispatchOutboxRequest(BaseModel):
    as_of: datetime | None = None
    limit: int | None = Field(None, ge=1, le=1000)


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class IntakeResponse(BaseModel):
    submission_id: str
    consultation_id: str
    approval_id: str
    patient_id: str
    created: bool


class ApprovalStatusResponse(BaseModel):
    has_valid_approval: bool
    approval_id: str | None = None
    approved_at: datetime | None = None
    expires_at: datetime | None = None


class GateViolation(BaseModel):
    code: str
    message: str
    product_id: str | None = None


class CartValidationResponse(BaseModel):
    valid: bool
    violations: list[GateViolation] = []


class ClinicianIdResponse(BaseModel):
    clinician_id: str


class ConsultationIdResponse(BaseModel):
    consultation_id: str


class CompletionResponse(BaseModel):
    consultation_id: str
    outcome: str
    approval_ids: list[str] = []


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str
    consult_products_checked: list[str] = []


class DispatchSummaryResponse(BaseModel):
    reconciled: int = 0
    delivered: int = 0
    failed: int = 0
    dead_lettered: int = 0
    skipped: int = 0
    escalated: int = 0
