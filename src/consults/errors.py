"""Error taxonomy for consultation workflow, gating and outbox dispatch.

State-machine and intake errors extend Protean's exceptions so they flow
through the same handlers as every other domain rule violation. Gate errors
carry a machine-readable ``code`` and the product that failed, and are
surfaced to callers verbatim.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


# ---------------------------------------------------------------------------
# Consultation state machine
# ---------------------------------------------------------------------------
class ConsultationStateError(ValidationError):
    """A consultation operation was attempted from a status that forbids it."""

    def __init__(self, consultation_id, message, field="status"):
        self.consultation_id = str(consultation_id) if consultation_id else None
        super().__init__({field: [message]})


class InvalidTransition(ConsultationStateError):
    def __init__(self, consultation_id, from_status, to_status):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            consultation_id,
            f"Cannot transition consultation from {from_status} to {to_status}",
        )


class InvalidStateForCompletion(ConsultationStateError):
    def __init__(self, consultation_id, current_status):
        self.current_status = current_status
        super().__init__(
            consultation_id,
            f"Consultation can only be completed while in_progress (currently {current_status})",
        )


class MissingRejectionReason(ValidationError):
    def __init__(self, consultation_id):
        self.consultation_id = str(consultation_id) if consultation_id else None
        super().__init__({"rejection_reason": ["A rejection reason is required when the outcome is rejected"]})


class ClinicianNotFound(ObjectNotFoundError):
    def __init__(self, clinician_id):
        self.clinician_id = str(clinician_id) if clinician_id else None
        super().__init__({"clinician_id": [f"Clinician {clinician_id} not found"]})


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------
class InvalidIntake(ValidationError):
    """Raised before any record is written when a consult request is malformed."""


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------
class GatingError(Exception):
    """Base class for purchase and fulfillment gate denials."""

    code = "GATING_DENIED"
    status_code = 403

    def __init__(self, product_id=None, message=None):
        self.product_id = str(product_id) if product_id else None
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Request denied"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "product_id": self.product_id}


class Unauthorized(GatingError):
    code = "UNAUTHORIZED"
    status_code = 401

    def default_message(self) -> str:
        return "Please log in to purchase this product"


class ConsultRequired(GatingError):
    code = "CONSULT_REQUIRED"
    status_code = 403

    def default_message(self) -> str:
        return "Consultation approval required before purchasing this product"


class ConsultApprovalRequiredForFulfillment(GatingError):
    code = "CONSULT_APPROVAL_REQUIRED_FOR_FULFILLMENT"
    status_code = 409

    def __init__(self, product_id=None, reason=None, order_id=None):
        self.reason = reason
        self.order_id = str(order_id) if order_id else None
        if product_id:
            message = f"Consultation approval required for fulfillment: {reason} for product {product_id}"
        else:
            message = f"Consultation approval required for fulfillment: {reason}"
        super().__init__(product_id, message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["order_id"] = self.order_id
        return data


# ---------------------------------------------------------------------------
# Outbox delivery (internal, never surfaced to the approving request)
# ---------------------------------------------------------------------------
class WebhookDeliveryFailed(Exception):
    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class WebhookConfigurationMissing(WebhookDeliveryFailed):
    def __init__(self, business_id):
        self.business_id = str(business_id) if business_id else None
        super().__init__(f"No fulfillment webhook URL configured for business {business_id}")
