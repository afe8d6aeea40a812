"""Consults bounded context — Consultation workflow and approval enforcement.

Owns the clinical consultation lifecycle, the consult approvals it produces,
the purchase-time and fulfillment-time gates that check those approvals, and
the outbox that propagates approval outcomes to fulfillment partners.
"""

import structlog
from protean.domain import Domain

consults = Domain(name="consults")

logger = structlog.get_logger(__name__)
