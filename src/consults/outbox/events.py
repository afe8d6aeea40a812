"""Domain events for the OutboxEvent aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from consults.domain import consults


@consults.event(part_of="OutboxEvent")
class OutboxEventDelivered:
    __version__ = 1

    outbox_event_id = Identifier(required=True)
    business_id = Identifier(required=True)
    event_type = String(required=True)
    attempts = Integer(required=True)
    delivered_at = DateTime(required=True)


@consults.event(part_of="OutboxEvent")
class OutboxDeliveryFailed:
    """A delivery attempt failed and was rescheduled."""

    __version__ = 1

    outbox_event_id = Identifier(required=True)
    business_id = Identifier(required=True)
    attempts = Integer(required=True)
    error = Text()
    next_attempt_at = DateTime()


@consults.event(part_of="OutboxEvent")
class OutboxEventDeadLettered:
    __version__ = 1

    outbox_event_id = Identifier(required=True)
    business_id = Identifier(required=True)
    event_type = String(required=True)
    attempts = Integer(required=True)
    error = Text()
