"""FastAPI routes for the consults bounded context.

Thin adapters that translate HTTP requests into domain commands and queries.
Customer and business identity arrive in the ``X-Customer-Id`` and
``X-Business-Id`` headers set by the storefront gateway.
"""

import json

from fastapi import APIRouter, Header
from protean.utils.globals import current_domain

from consults.api.schemas import (
    ActorRequest,
    ApprovalStatusResponse,
    AssignClinicianRequest,
    CancelConsultationRequest,
    CartValidationRequest,
    CartValidationResponse,
    ClinicianIdResponse,
    CompleteConsultationRequest,
    CompletionResponse,
    ConsultationIdResponse,
    DispatchOutboxRequest,
    DispatchSummaryResponse,
    IntakeResponse,
    OpenConsultationRequest,
    OrderStatusResponse,
    RegisterClinicianRequest,
    ScheduleConsultationRequest,
    StatusResponse,
    SubmitConsultRequestBody,
    TransitionOrderStatusRequest,
    TransitionStatusRequest,
)
from consults.approval.queries import has_valid_approval
from consults.clinician.clinician import RegisterClinician
from consults.consultation.completion import CompleteConsultation
from consults.consultation.lifecycle import (
    ArchiveConsultation,
    AssignClinician,
    CancelConsultation,
    MarkNoShow,
    OpenConsultation,
    RestoreConsultation,
    ScheduleConsultation,
    StartConsultation,
    TransitionConsultationStatus,
)
from consults.errors import Unauthorized
from consults.gating.fulfillment import TransitionOrderStatus
from consults.gating.purchase import CandidateItem, validate_cart_items
from consults.intake.deduplication import SubmitConsultRequest
from consults.outbox.job import run_outbox_pass

consult_router = APIRouter(prefix="/consults", tags=["consults"])


# ---------------------------------------------------------------------------
# Intake and queries
# ---------------------------------------------------------------------------
@consult_router.post("/businesses/{business_id}/submissions", status_code=201, response_model=IntakeResponse)
async def submit_consult_request(
    business_id: str,
    body: SubmitConsultRequestBody,
    x_customer_id: str | None = Header(None),
) -> IntakeResponse:
    """Submit a consult request. Repeating an identical request returns the same records."""
    command = SubmitConsultRequest(
        business_id=business_id,
        customer_id=body.customer_id or x_customer_id,
        product_id=body.product_id,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        eligibility_answers=json.dumps(body.eligibility_answers) if body.eligibility_answers is not None else None,
        consult_fee=body.consult_fee,
        notes=body.notes,
    )
    result = current_domain.process(command, asynchronous=False)
    return IntakeResponse(**result)


@consult_router.get("/approvals", response_model=ApprovalStatusResponse)
async def get_approval_status(
    product_id: str,
    x_business_id: str | None = Header(None),
    x_customer_id: str | None = Header(None),
) -> ApprovalStatusResponse:
    """Whether the calling customer may still reorder the product."""
    if not x_customer_id:
        raise Unauthorized(product_id)
    view = has_valid_approval(x_business_id, x_customer_id, product_id)
    return ApprovalStatusResponse(
        has_valid_approval=view.has_valid_approval,
        approval_id=view.approval_id,
        approved_at=view.approved_at,
        expires_at=view.expires_at,
    )


@consult_router.post("/cart-validation", response_model=CartValidationResponse)
async def validate_cart(
    body: CartValidationRequest,
    x_business_id: str | None = Header(None),
    x_customer_id: str | None = Header(None),
) -> CartValidationResponse:
    """Report every cart item the purchase gate would deny."""
    items = [CandidateItem(product_id=i.product_id, variant_id=i.variant_id) for i in body.items]
    report = validate_cart_items(x_business_id, x_customer_id, items)
    return CartValidationResponse(**report.to_dict())


# ---------------------------------------------------------------------------
# Clinicians
# ---------------------------------------------------------------------------
@consult_router.post("/clinicians", status_code=201, response_model=ClinicianIdResponse)
async def register_clinician(body: RegisterClinicianRequest) -> ClinicianIdResponse:
    command = RegisterClinician(
        business_id=body.business_id,
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        license_number=body.license_number,
    )
    clinician_id = current_domain.process(command, asynchronous=False)
    return ClinicianIdResponse(clinician_id=clinician_id)


# ---------------------------------------------------------------------------
# Consultation lifecycle
# ---------------------------------------------------------------------------
@consult_router.post("/consultations", status_code=201, response_model=ConsultationIdResponse)
async def open_consultation(body: OpenConsultationRequest) -> ConsultationIdResponse:
    """Open a consultation outside the intake flow (e.g. a scheduled video call)."""
    command = OpenConsultation(
        business_id=body.business_id,
        patient_id=body.patient_id,
        mode=body.mode,
        product_id=body.product_id,
        order_id=body.order_id,
        actor=body.actor,
    )
    consultation_id = current_domain.process(command, asynchronous=False)
    return ConsultationIdResponse(consultation_id=consultation_id)


@consult_router.put("/consultations/{consultation_id}/clinician", response_model=StatusResponse)
async def assign_clinician(consultation_id: str, body: AssignClinicianRequest) -> StatusResponse:
    command = AssignClinician(consultation_id=consultation_id, clinician_id=body.clinician_id, actor=body.actor)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@consult_router.put("/consultations/{consultation_id}/schedule", response_model=StatusResponse)
async def schedule_consultation(consultation_id: str, body: ScheduleConsultationRequest) -> StatusResponse:
    command = ScheduleConsultation(consultation_id=consultation_id, scheduled_at=body.scheduled_at, actor=body.actor)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@consult_router.put("/consultations/{consultation_id}/start", response_model=StatusResponse)
async def start_consultation(consultation_id: str, body: ActorRequest) -> StatusResponse:
    current_domain.process(StartConsultation(consultation_id=consultation_id, actor=body.actor), asynchronous=False)
    return StatusResponse()


@consult_router.put("/consultations/{consultation_id}/cancel", response_model=StatusResponse)
async def cancel_consultation(consultation_id: str, body: CancelConsultationRequest) -> StatusResponse:
    command = CancelConsultation(consultation_id=consultation_id, reason=body.reason, actor=body.actor)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@consult_router.put("/consultations/{consultation_id}/no-show", response_model=StatusResponse)
async def mark_no_show(consultation_id: str, body: ActorRequest) -> StatusResponse:
    current_domain.process(MarkNoShow(consultation_id=consultation_id, actor=body.actor), asynchronous=False)
    return StatusResponse()


@consult_router.put("/consultations/{consultation_id}/status", response_model=StatusResponse)
async def transition_status(consultation_id: str, body: TransitionStatusRequest) -> StatusResponse:
    """Generic transition along any valid edge of the consultation state machine."""
    command = TransitionConsultationStatus(
        consultation_id=consultation_id,
        to_status=body.to_status,
        reason=body.reason,
        actor=body.actor,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@consult_router.put("/consultations/{consultation_id}/complete", response_model=CompletionResponse)
async def complete_consultation(consultation_id: str, body: CompleteConsultationRequest) -> CompletionResponse:
    """Record the clinical outcome; an approval unlocks purchase and fulfillment."""
    command = CompleteConsultation(
        consultation_id=consultation_id,
        outcome=body.outcome,
        rejection_reason=body.rejection_reason,
        approved_product_refs=json.dumps(body.approved_product_refs) if body.approved_product_refs else None,
        actor=body.actor,
    )
    result = current_domain.process(command, asynchronous=False)
    return CompletionResponse(**result)


@consult_router.delete("/consultations/{consultation_id}", response_model=StatusResponse)
async def archive_consultation(consultation_id: str, actor: str | None = None) -> StatusResponse:
    current_domain.process(ArchiveConsultation(consultation_id=consultation_id, actor=actor), asynchronous=False)
    return StatusResponse()


@consult_router.post("/consultations/{consultation_id}/restore", response_model=StatusResponse)
async def restore_consultation(consultation_id: str, body: ActorRequest) -> StatusResponse:
    current_domain.process(RestoreConsultation(consultation_id=consultation_id, actor=body.actor), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Orders and outbox
# ---------------------------------------------------------------------------
@consult_router.post("/orders/{order_id}/status", response_model=OrderStatusResponse)
async def transition_order_status(order_id: str, body: TransitionOrderStatusRequest) -> OrderStatusResponse:
    """Move an order, re-checking consult approvals on entry to a fulfillment stage."""
    command = TransitionOrderStatus(order_id=order_id, to_status=body.to_status, actor=body.actor)
    result = current_domain.process(command, asynchronous=False)
    return OrderStatusResponse(**result)


@consult_router.post("/outbox/dispatch", response_model=DispatchSummaryResponse)
async def dispatch_outbox(body: DispatchOutboxRequest) -> DispatchSummaryResponse:
    """Maintenance trigger: reconcile approvals and deliver due outbox events now."""
    summary = run_outbox_pass(as_of=body.as_of, limit=body.limit)
    return DispatchSummaryResponse(**summary)
