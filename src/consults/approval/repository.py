"""Repository for the ConsultApproval aggregate."""

from consults.approval.approval import ApprovalStatus, ConsultApproval, approval_key
from consults.domain import consults
from consults.utils.clock import as_utc


@consults.repository(part_of=ConsultApproval)
class ConsultApprovalRepository:
    def latest_approved(self, business_id, customer_id, product_id) -> ConsultApproval | None:
        """Most recent approved record for the exact key, or None.

        All three key fields must match; a missing component never matches.
        """
        if not business_id or not customer_id or not product_id:
            return None

        approvals = (
            self._dao.query.filter(
                business_id=str(business_id),
                customer_id=str(customer_id),
                product_id=str(product_id),
                status=ApprovalStatus.APPROVED.value,
            )
            .all()
            .items
        )
        if not approvals:
            return None
        return max(approvals, key=lambda a: as_utc(a.approved_at or a.created_at))

    def pending_for(self, business_id, customer_id, product_id) -> ConsultApproval | None:
        approvals = (
            self._dao.query.filter(pending_key=approval_key(business_id, customer_id, product_id)).all().items
        )
        return approvals[0] if approvals else None

    def for_consultation(self, consultation_id) -> list[ConsultApproval]:
        return self._dao.query.filter(consultation_id=str(consultation_id)).all().items

    def recently_approved(self, limit: int) -> list[ConsultApproval]:
        return (
            self._dao.query.filter(status=ApprovalStatus.APPROVED.value)
            .order_by("-approved_at")
            .limit(limit)
            .all()
            .items
        )
