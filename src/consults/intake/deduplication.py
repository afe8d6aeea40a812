"""SubmitConsultRequest — turn a consult request into exactly one record set.

For every (business, customer, product) there is at most one active
submission, and behind it exactly one Patient, one draft Consultation and one
pending ConsultApproval, however many identical requests race each other.
Each record is written with ``create_once`` so the storage-level unique key
decides the winner and losers get the existing row back.
"""

from dataclasses import asdict, dataclass

import structlog
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.approval.approval import ConsultApproval, approval_key
from consults.audit import RiskLevel, record_audit_event
from consults.consultation.consultation import Consultation
from consults.domain import consults
from consults.intake.eligibility import parse_eligibility_answers, validate_intake
from consults.intake.submission import ConsultSubmission
from consults.patient.patient import Patient, patient_key
from consults.utils.once import create_once, save_now, serialized

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IntakeResult:
    submission_id: str
    consultation_id: str
    approval_id: str
    patient_id: str
    created: bool

    def to_dict(self) -> dict:
        return asdict(self)


def _ensure_patient(business_id, customer_id, email=None, first_name=None, last_name=None, phone=None) -> Patient:
    repo = current_domain.repository_for(Patient)
    patient, _ = create_once(
        repo,
        f"patient:{patient_key(business_id, customer_id)}",
        find_existing=lambda: repo.for_customer(business_id, customer_id),
        build=lambda: Patient.register(
            business_id=business_id,
            customer_id=customer_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        ),
    )
    return patient


def ensure_intake_records(submission: ConsultSubmission, patient: Patient | None = None, created=False) -> IntakeResult:
    """Make sure the consultation, pending approval and links behind a submission exist."""
    if patient is None:
        patient = _ensure_patient(
            submission.business_id,
            submission.customer_id,
            email=submission.email,
            first_name=submission.first_name,
            last_name=submission.last_name,
            phone=submission.phone,
        )

    consultation_repo = current_domain.repository_for(Consultation)
    consultation, _ = create_once(
        consultation_repo,
        f"consultation:{submission.id}",
        find_existing=lambda: consultation_repo.for_submission(submission.id),
        build=lambda: Consultation.open_from_submission(
            business_id=submission.business_id,
            patient_id=str(patient.id),
            submission_id=str(submission.id),
            product_id=submission.product_id,
            notes=submission.notes,
        ),
    )

    approval_repo = current_domain.repository_for(ConsultApproval)
    key = approval_key(submission.business_id, submission.customer_id, submission.product_id)
    approval, _ = create_once(
        approval_repo,
        f"approval:{key}",
        find_existing=lambda: approval_repo.pending_for(
            submission.business_id, submission.customer_id, submission.product_id
        ),
        build=lambda: ConsultApproval.request(
            business_id=submission.business_id,
            customer_id=submission.customer_id,
            product_id=submission.product_id,
            consultation_id=str(consultation.id),
        ),
    )

    if not approval.consultation_id:
        approval.consultation_id = str(consultation.id)
        save_now(approval_repo, approval)

    if not submission.consultation_id:
        submission_repo = current_domain.repository_for(ConsultSubmission)
        submission = submission_repo.get(submission.id)
        submission.link_consultation(str(consultation.id))
        save_now(submission_repo, submission)

    return IntakeResult(
        submission_id=str(submission.id),
        consultation_id=str(consultation.id),
        approval_id=str(approval.id),
        patient_id=str(patient.id),
        created=created,
    )


def submit_consult_request(
    business_id,
    customer_id,
    product_id,
    email,
    first_name,
    last_name,
    eligibility_answers=None,
    phone=None,
    consult_fee=None,
    notes=None,
) -> IntakeResult:
    validate_intake(business_id, customer_id, product_id, email, first_name, last_name, consult_fee)
    answers = parse_eligibility_answers(eligibility_answers)
    email = email.strip().lower()
    first_name = first_name.strip()
    last_name = last_name.strip()

    key = approval_key(business_id, customer_id, product_id)
    with serialized(f"intake:{key}"):
        patient = _ensure_patient(business_id, customer_id, email, first_name, last_name, phone)

        submission_repo = current_domain.repository_for(ConsultSubmission)
        submission, created = create_once(
            submission_repo,
            f"submission:{key}",
            find_existing=lambda: submission_repo.active_for(business_id, customer_id, product_id),
            build=lambda: ConsultSubmission.submit(
                business_id=business_id,
                customer_id=customer_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                product_id=product_id,
                eligibility_answers=answers,
                phone=phone,
                consult_fee=consult_fee,
                notes=notes,
            ),
        )
        result = ensure_intake_records(submission, patient=patient, created=created)

    if created:
        logger.info(
            "Consult request accepted",
            business_id=str(business_id),
            product_id=str(product_id),
            submission_id=result.submission_id,
        )
        record_audit_event(
            action="consult_submission.create",
            entity_type="consult_submission",
            entity_id=result.submission_id,
            business_id=business_id,
            actor=f"customer:{customer_id}",
            risk_level=RiskLevel.MEDIUM.value,
            changes={"product_id": str(product_id), "consultation_id": result.consultation_id},
        )
    else:
        logger.info("Duplicate consult request", business_id=str(business_id), submission_id=result.submission_id)

    return result


@consults.command(part_of="ConsultSubmission")
class SubmitConsultRequest:
    business_id = Identifier(required=True)
    customer_id = Identifier()
    product_id = Identifier()
    email = String(max_length=254)
    first_name = String(max_length=100)
    last_name = String(max_length=100)
    phone = String(max_length=30)
    eligibility_answers = Text()  # JSON object
    consult_fee = Float()
    notes = Text()


@consults.command_handler(part_of=ConsultSubmission)
class SubmitConsultRequestHandler:
    @handle(SubmitConsultRequest)
    def submit_consult_request(self, command):
        result = submit_consult_request(
            business_id=command.business_id,
            customer_id=command.customer_id,
            product_id=command.product_id,
            email=command.email,
            first_name=command.first_name,
            last_name=command.last_name,
            eligibility_answers=command.eligibility_answers,
            phone=command.phone,
            consult_fee=command.consult_fee,
            notes=command.notes,
        )
        return result.to_dict()
