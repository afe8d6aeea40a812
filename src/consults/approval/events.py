"""Domain events for the ConsultApproval aggregate."""

from protean.fields import DateTime, Identifier, String

from consults.domain import consults


@consults.event(part_of="ConsultApproval")
class ConsultApprovalRequested:
    """A pending approval was opened for a consult intake."""

    __version__ = 1

    approval_id = Identifier(required=True)
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    consultation_id = Identifier()


@consults.event(part_of="ConsultApproval")
class ConsultApprovalGranted:
    """A clinician approved the customer for the product."""

    __version__ = 1

    approval_id = Identifier(required=True)
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    consultation_id = Identifier()
    approved_by = String(max_length=255)
    approved_at = DateTime(required=True)
    expires_at = DateTime()


@consults.event(part_of="ConsultApproval")
class ConsultApprovalRejected:
    __version__ = 1

    approval_id = Identifier(required=True)
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    consultation_id = Identifier()
    rejected_at = DateTime(required=True)
