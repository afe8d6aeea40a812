"""CompleteConsultation — record the clinical decision and issue approvals.

Approval and enqueue are separate commits: the consultation, its approvals
and the submission are saved first, then one ``consult.approved`` outbox
event per approval is enqueued. If the process dies in between, the
reconciler creates the missing events from the approved approvals.
"""

import json

import structlog
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.approval.approval import ApprovalStatus, ConsultApproval
from consults.audit import RiskLevel, record_audit_event
from consults.config import get_config
from consults.consultation.consultation import Consultation, ConsultationOutcome
from consults.domain import consults
from consults.intake.submission import ConsultSubmission
from consults.outbox.enqueue import enqueue_approval_event
from consults.patient.patient import Patient
from consults.utils.clock import utc_now
from consults.utils.once import save_now

logger = structlog.get_logger(__name__)


@consults.command(part_of="Consultation")
class CompleteConsultation:
    consultation_id = Identifier(required=True)
    outcome = String(required=True, max_length=20)
    rejection_reason = Text()
    approved_product_refs = Text()  # JSON array of product ids
    actor = String(max_length=255)


def _upsert_approval(consultation, customer_id, product_id, actor, now) -> ConsultApproval:
    """Approve the pending approval for the key, or open and approve a new one."""
    repo = current_domain.repository_for(ConsultApproval)
    approval = repo.pending_for(consultation.business_id, customer_id, product_id)
    if approval is None:
        approval = next(
            (
                a
                for a in repo.for_consultation(consultation.id)
                if str(a.product_id) == str(product_id) and a.status == ApprovalStatus.APPROVED.value
            ),
            None,
        )
    if approval is None:
        approval = ConsultApproval.request(
            business_id=consultation.business_id,
            customer_id=customer_id,
            product_id=product_id,
            consultation_id=str(consultation.id),
        )

    approval.approve(
        consultation_id=str(consultation.id),
        approved_by=actor,
        validity_days=get_config().approval_validity_days,
        now=now,
    )
    save_now(repo, approval)
    return approval


def _reject_pending_approvals(consultation, customer_id, now):
    repo = current_domain.repository_for(ConsultApproval)
    candidates = {str(a.id): a for a in repo.for_consultation(consultation.id)}
    if consultation.requested_product_id:
        pending = repo.pending_for(consultation.business_id, customer_id, consultation.requested_product_id)
        if pending is not None:
            candidates.setdefault(str(pending.id), pending)

    for approval in candidates.values():
        if approval.status == ApprovalStatus.PENDING.value:
            approval.reject(consultation_id=str(consultation.id), now=now)
            save_now(repo, approval)


def _close_submission(consultation):
    if not consultation.originating_submission_id:
        return
    repo = current_domain.repository_for(ConsultSubmission)
    submission = repo.get(consultation.originating_submission_id)
    submission.mark_reviewed()
    save_now(repo, submission)


@consults.command_handler(part_of=Consultation)
class CompleteConsultationHandler:
    @handle(CompleteConsultation)
    def complete_consultation(self, command):
        repo = current_domain.repository_for(Consultation)
        consultation = repo.get(command.consultation_id)
        patient = current_domain.repository_for(Patient).get(consultation.patient_id)

        requested_refs = json.loads(command.approved_product_refs) if command.approved_product_refs else None
        now = utc_now()
        approved_products = consultation.complete(
            outcome=command.outcome,
            rejection_reason=command.rejection_reason,
            approved_product_refs=requested_refs,
            actor=command.actor,
            now=now,
        )
        save_now(repo, consultation)

        approvals = []
        if command.outcome == ConsultationOutcome.APPROVED.value:
            approvals = [
                _upsert_approval(consultation, patient.customer_id, product_id, command.actor, now)
                for product_id in approved_products
            ]
        else:
            _reject_pending_approvals(consultation, patient.customer_id, now)

        _close_submission(consultation)

        record_audit_event(
            action="consultation.complete",
            entity_type="consultation",
            entity_id=consultation.id,
            business_id=consultation.business_id,
            actor=command.actor,
            risk_level=RiskLevel.HIGH.value,
            changes={
                "outcome": consultation.outcome,
                "approved_product_refs": approved_products,
                "duration_minutes": consultation.duration_minutes,
            },
        )

        for approval in approvals:
            try:
                enqueue_approval_event(approval, source="complete_consultation")
            except Exception as exc:
                # The reconciler re-creates the event from the approved approval
                logger.warning(
                    "Could not enqueue approval event",
                    approval_id=str(approval.id),
                    consultation_id=str(consultation.id),
                    error=str(exc),
                )

        return {
            "consultation_id": str(consultation.id),
            "outcome": consultation.outcome,
            "approval_ids": [str(a.id) for a in approvals],
        }
