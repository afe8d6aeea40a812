"""Enqueue approval outcomes for partner delivery."""

import structlog
from protean.utils.globals import current_domain

from consults.outbox.event import CONSULT_APPROVED, OutboxEvent, approval_dedupe_key

logger = structlog.get_logger(__name__)


def approval_event_payload(approval) -> dict:
    return {
        "approval_id": str(approval.id),
        "consultation_id": str(approval.consultation_id) if approval.consultation_id else None,
        "business_id": str(approval.business_id),
        "customer_id": str(approval.customer_id),
        "product_id": str(approval.product_id),
        "approved_by": approval.approved_by,
        "approved_at": approval.approved_at.isoformat() if approval.approved_at else None,
        "expires_at": approval.expires_at.isoformat() if approval.expires_at else None,
    }


def enqueue_approval_event(approval, source: str):
    """Create the ``consult.approved`` event for an approval once. Returns ``(event, created)``."""
    repo = current_domain.repository_for(OutboxEvent)
    return repo.enqueue_once(
        business_id=str(approval.business_id),
        event_type=CONSULT_APPROVED,
        dedupe_key=approval_dedupe_key(approval.id),
        payload=approval_event_payload(approval),
        metadata={"source": source},
    )
