"""Domain events for the ConsultSubmission aggregate."""

from protean.fields import Identifier

from consults.domain import consults


@consults.event(part_of="ConsultSubmission")
class ConsultSubmitted:
    """A customer asked for a consultation about a product."""

    __version__ = 1

    submission_id = Identifier(required=True)
    business_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
