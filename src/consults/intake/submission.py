"""ConsultSubmission aggregate — the deduplicated raw intake request.

A submission is *active* while it is pending review and not archived. Only one
active submission may exist per (business, customer, product); ``active_key``
holds that natural key while active and is released afterwards, so a unique
column enforces the rule at the storage layer.
"""

import json
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from consults.approval.approval import approval_key
from consults.domain import consults
from consults.intake.events import ConsultSubmitted
from consults.utils.clock import utc_now


class SubmissionStatus(Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"


@consults.aggregate
class ConsultSubmission:
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    email = String(required=True, max_length=254)
    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    phone = String(max_length=30)
    product_id = Identifier(required=True)
    eligibility_answers = Text()  # JSON object
    status = String(choices=SubmissionStatus, default=SubmissionStatus.PENDING.value)
    consult_fee = Float(min_value=0.0)
    notes = Text()
    consultation_id = Identifier()
    active_key = String(required=True, max_length=500, unique=True)
    created_at = DateTime()
    reviewed_at = DateTime()
    deleted_at = DateTime()

    @classmethod
    def submit(
        cls,
        business_id,
        customer_id,
        email,
        first_name,
        last_name,
        product_id,
        eligibility_answers,
        phone=None,
        consult_fee=None,
        notes=None,
    ):
        submission = cls(
            business_id=business_id,
            customer_id=customer_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            product_id=product_id,
            eligibility_answers=json.dumps(eligibility_answers),
            status=SubmissionStatus.PENDING.value,
            consult_fee=consult_fee,
            notes=notes,
            active_key=approval_key(business_id, customer_id, product_id),
            created_at=utc_now(),
        )
        submission.raise_(
            ConsultSubmitted(
                submission_id=str(submission.id),
                business_id=str(business_id),
                customer_id=str(customer_id),
                product_id=str(product_id),
            )
        )
        return submission

    def answers(self) -> dict:
        return json.loads(self.eligibility_answers) if self.eligibility_answers else {}

    def link_consultation(self, consultation_id):
        if self.consultation_id and str(self.consultation_id) != str(consultation_id):
            raise ValidationError({"consultation_id": ["Submission is already linked to another consultation"]})
        self.consultation_id = consultation_id

    def mark_reviewed(self):
        if self.status == SubmissionStatus.REVIEWED.value:
            return
        self.status = SubmissionStatus.REVIEWED.value
        self.reviewed_at = utc_now()
        self.active_key = f"closed:{self.id}"

    def archive(self):
        if self.deleted_at is not None:
            return
        self.deleted_at = utc_now()
        self.active_key = f"closed:{self.id}"


@consults.repository(part_of=ConsultSubmission)
class ConsultSubmissionRepository:
    def active_for(self, business_id, customer_id, product_id) -> ConsultSubmission | None:
        found = self._dao.query.filter(active_key=approval_key(business_id, customer_id, product_id)).all().items
        return found[0] if found else None

    def pending(self, limit: int = 100) -> list[ConsultSubmission]:
        found = (
            self._dao.query.filter(status=SubmissionStatus.PENDING.value)
            .order_by("created_at")
            .limit(limit)
            .all()
            .items
        )
        return [s for s in found if s.deleted_at is None]
