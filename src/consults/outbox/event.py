"""OutboxEvent aggregate — a durable, idempotently keyed side effect for a partner.

State Machine:
    pending → delivered
    pending → pending (failed attempt, rescheduled with backoff)
    pending → dead_letter (attempt budget exhausted)

Delivered and dead_letter are terminal. The dedupe key is unique, so enqueuing
the same logical event twice stores it once.
"""

import json
from datetime import timedelta
from enum import Enum

from protean import atomic_change
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from consults.domain import consults
from consults.outbox.events import OutboxDeliveryFailed, OutboxEventDeadLettered, OutboxEventDelivered
from consults.utils.clock import as_utc, utc_now

CONSULT_APPROVED = "consult.approved"


class OutboxStatus(Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    DEAD_LETTER = "dead_letter"


def approval_dedupe_key(approval_id) -> str:
    return f"consult_approval:{approval_id}:approved"


def compute_backoff_seconds(attempts: int, base_seconds: int = 60, cap_seconds: int = 3600) -> int:
    """Doubling backoff after the n-th failed attempt: base, 2×base, 4×base … capped."""
    exponent = min(max(attempts - 1, 0), 30)
    return min(base_seconds * (2**exponent), cap_seconds)


@consults.aggregate
class OutboxEvent:
    business_id = Identifier(required=True)
    event_type = String(required=True, max_length=100)
    dedupe_key = String(required=True, max_length=500, unique=True)
    payload = Text(required=True)  # JSON object
    status = String(choices=OutboxStatus, default=OutboxStatus.PENDING.value)
    attempts = Integer(default=0, min_value=0)
    next_attempt_at = DateTime()
    last_error = Text()
    delivered_at = DateTime()
    event_metadata = Text()  # JSON object
    fallback_email_sent_at = DateTime()
    claimed_by = String(max_length=100)
    claim_expires_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, business_id, event_type, dedupe_key, payload, metadata=None):
        now = utc_now()
        return cls(
            business_id=business_id,
            event_type=event_type,
            dedupe_key=dedupe_key,
            payload=json.dumps(payload or {}),
            status=OutboxStatus.PENDING.value,
            attempts=0,
            event_metadata=json.dumps(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    def payload_data(self) -> dict:
        return json.loads(self.payload) if self.payload else {}

    def metadata_data(self) -> dict:
        return json.loads(self.event_metadata) if self.event_metadata else {}

    def _merge_metadata(self, **values):
        merged = self.metadata_data()
        merged.update(values)
        self.event_metadata = json.dumps(merged)

    def is_terminal(self) -> bool:
        return self.status != OutboxStatus.PENDING.value

    def is_due(self, now) -> bool:
        if self.status != OutboxStatus.PENDING.value:
            return False
        return self.next_attempt_at is None or as_utc(self.next_attempt_at) <= as_utc(now)

    def _assert_pending(self):
        if self.is_terminal():
            raise ValidationError({"status": [f"Outbox event is already {self.status}"]})

    # -------------------------------------------------------------------
    # Claiming
    # -------------------------------------------------------------------
    def try_claim(self, worker_id, now, lease_seconds) -> bool:
        """Take a delivery lease unless another worker holds an unexpired one."""
        if self.is_terminal():
            return False
        held_until = as_utc(self.claim_expires_at)
        if self.claimed_by and self.claimed_by != worker_id and held_until and held_until > as_utc(now):
            return False
        self.claimed_by = worker_id
        self.claim_expires_at = now + timedelta(seconds=lease_seconds)
        return True

    def _release_claim(self):
        self.claimed_by = None
        self.claim_expires_at = None

    # -------------------------------------------------------------------
    # Delivery outcomes
    # -------------------------------------------------------------------
    def mark_delivered(self, now=None, status_code=None):
        self._assert_pending()
        now = now or utc_now()
        with atomic_change(self):
            self.status = OutboxStatus.DELIVERED.value
            self.attempts = (self.attempts or 0) + 1
            self.delivered_at = now
            self.next_attempt_at = None
            self.last_error = None
            self.updated_at = now
            self._release_claim()
            self._merge_metadata(delivered_via="webhook", response_status=status_code)

        self.raise_(
            OutboxEventDelivered(
                outbox_event_id=str(self.id),
                business_id=str(self.business_id),
                event_type=self.event_type,
                attempts=self.attempts,
                delivered_at=now,
            )
        )

    def record_failure(self, error, now=None, max_attempts=5, backoff_base_seconds=60, backoff_cap_seconds=3600):
        """Count a failed attempt; reschedule it or dead-letter once the budget is spent."""
        self._assert_pending()
        now = now or utc_now()
        attempts = (self.attempts or 0) + 1
        error = str(error)[:2000]

        with atomic_change(self):
            self.attempts = attempts
            self.last_error = error
            self.updated_at = now
            self._release_claim()
            self._merge_metadata(last_failed_at=now.isoformat())
            if attempts >= max_attempts:
                self.status = OutboxStatus.DEAD_LETTER.value
                self.next_attempt_at = None
            else:
                delay = compute_backoff_seconds(attempts, backoff_base_seconds, backoff_cap_seconds)
                self.next_attempt_at = now + timedelta(seconds=delay)

        if self.status == OutboxStatus.DEAD_LETTER.value:
            self.raise_(
                OutboxEventDeadLettered(
                    outbox_event_id=str(self.id),
                    business_id=str(self.business_id),
                    event_type=self.event_type,
                    attempts=attempts,
                    error=error,
                )
            )
        else:
            self.raise_(
                OutboxDeliveryFailed(
                    outbox_event_id=str(self.id),
                    business_id=str(self.business_id),
                    attempts=attempts,
                    error=error,
                    next_attempt_at=self.next_attempt_at,
                )
            )

    # -------------------------------------------------------------------
    # Dead-letter escalation
    # -------------------------------------------------------------------
    def needs_fallback_email(self) -> bool:
        return self.status == OutboxStatus.DEAD_LETTER.value and self.fallback_email_sent_at is None

    def record_fallback_email(self, recipient, sent, now=None, error=None):
        now = now or utc_now()
        if sent:
            self.fallback_email_sent_at = now
            self._merge_metadata(email_fallback_sent_at=now.isoformat(), email_fallback_to=recipient)
        else:
            self._merge_metadata(email_fallback_error=error or "Email not sent", email_fallback_to=recipient)
        self.updated_at = now
