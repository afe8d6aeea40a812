"""ConsultApproval aggregate — the authorization checked at purchase and fulfillment.

An approval is opened as ``pending`` by intake, then approved or rejected when
the consultation completes. Gates only ever look at the most recent approved
record for the exact (business, customer, product) key.

While pending, ``pending_key`` carries that natural key so that a unique
column guarantees one pending approval per key. Once the approval settles the
key is released (rewritten to a per-row value) so a later intake can open a new
pending approval.
"""

from datetime import timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from consults.approval.events import (
    ConsultApprovalGranted,
    ConsultApprovalRejected,
    ConsultApprovalRequested,
)
from consults.domain import consults
from consults.utils.clock import utc_now


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def approval_key(business_id, customer_id, product_id) -> str:
    return f"{business_id}:{customer_id}:{product_id}"


@consults.aggregate
class ConsultApproval:
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    consultation_id = Identifier()
    status = String(choices=ApprovalStatus, default=ApprovalStatus.PENDING.value)
    pending_key = String(required=True, max_length=500, unique=True)
    approved_at = DateTime()
    approved_by = String(max_length=255)
    expires_at = DateTime()
    rejected_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def approved_approval_must_carry_approval_time(self):
        if self.status == ApprovalStatus.APPROVED.value and self.approved_at is None:
            raise ValidationError({"approved_at": ["An approved approval must record when it was approved"]})

    @classmethod
    def request(cls, business_id, customer_id, product_id, consultation_id=None):
        now = utc_now()
        approval = cls(
            business_id=business_id,
            customer_id=customer_id,
            product_id=product_id,
            consultation_id=consultation_id,
            status=ApprovalStatus.PENDING.value,
            pending_key=approval_key(business_id, customer_id, product_id),
            created_at=now,
            updated_at=now,
        )
        approval.raise_(
            ConsultApprovalRequested(
                approval_id=str(approval.id),
                business_id=str(business_id),
                customer_id=str(customer_id),
                product_id=str(product_id),
                consultation_id=str(consultation_id) if consultation_id else None,
            )
        )
        return approval

    def _release_pending_key(self):
        self.pending_key = f"settled:{self.id}"

    def approve(self, consultation_id, approved_by=None, validity_days=90, now=None):
        """Approve (or re-approve) the customer for the product.

        Re-approving an already approved record refreshes its window; a
        rejected record cannot be flipped back, a new approval is opened instead.
        """
        if self.status == ApprovalStatus.REJECTED.value:
            raise ValidationError({"status": ["A rejected approval cannot be approved"]})

        now = now or utc_now()
        with atomic_change(self):
            self.status = ApprovalStatus.APPROVED.value
            self.consultation_id = consultation_id
            self.approved_by = approved_by
            self.approved_at = now
            self.expires_at = now + timedelta(days=validity_days)
            self.updated_at = now
            self._release_pending_key()

        self.raise_(
            ConsultApprovalGranted(
                approval_id=str(self.id),
                business_id=str(self.business_id),
                customer_id=str(self.customer_id),
                product_id=str(self.product_id),
                consultation_id=str(consultation_id) if consultation_id else None,
                approved_by=approved_by,
                approved_at=self.approved_at,
                expires_at=self.expires_at,
            )
        )

    def reject(self, consultation_id=None, now=None):
        if self.status != ApprovalStatus.PENDING.value:
            raise ValidationError({"status": [f"Only pending approvals can be rejected (currently {self.status})"]})

        now = now or utc_now()
        self.status = ApprovalStatus.REJECTED.value
        if consultation_id:
            self.consultation_id = consultation_id
        self.rejected_at = now
        self.updated_at = now
        self._release_pending_key()

        self.raise_(
            ConsultApprovalRejected(
                approval_id=str(self.id),
                business_id=str(self.business_id),
                customer_id=str(self.customer_id),
                product_id=str(self.product_id),
                consultation_id=str(self.consultation_id) if self.consultation_id else None,
                rejected_at=now,
            )
        )
