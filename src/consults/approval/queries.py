"""Read-side query: does a customer hold a fresh approval for a product?"""

from dataclasses import dataclass
from datetime import datetime

from protean.utils.globals import current_domain

from consults.approval.approval import ConsultApproval
from consults.approval.validity import is_fresh_for_reorder


@dataclass(frozen=True)
class ApprovalStatusView:
    has_valid_approval: bool
    approval_id: str | None = None
    approved_at: datetime | None = None
    expires_at: datetime | None = None


def has_valid_approval(business_id, customer_id, product_id, now=None) -> ApprovalStatusView:
    """Continued-eligibility check used by storefronts before offering a reorder."""
    repo = current_domain.repository_for(ConsultApproval)
    approval = repo.latest_approved(business_id, customer_id, product_id)
    if approval is None:
        return ApprovalStatusView(has_valid_approval=False)

    return ApprovalStatusView(
        has_valid_approval=is_fresh_for_reorder(approval, now=now),
        approval_id=str(approval.id),
        approved_at=approval.approved_at,
        expires_at=approval.expires_at,
    )
