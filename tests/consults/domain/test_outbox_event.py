"""Tests for OutboxEvent — backoff schedule, dead-lettering, claims and escalation."""

from datetime import timedelta

import pytest
from consults.outbox.event import OutboxEvent, OutboxStatus, approval_dedupe_key, compute_backoff_seconds
from consults.outbox.events import OutboxDeliveryFailed, OutboxEventDeadLettered, OutboxEventDelivered
from consults.utils.clock import utc_now
from protean.exceptions import ValidationError


def _make_event(**overrides):
    defaults = {
        "business_id": "biz-1",
        "event_type": "consult.approved",
        "dedupe_key": approval_dedupe_key("approval-1"),
        "payload": {"approval_id": "approval-1"},
        "metadata": {"source": "test"},
    }
    defaults.update(overrides)
    return OutboxEvent.create(**defaults)


class TestBackoff:
    @pytest.mark.parametrize(
        "attempts, expected",
        [(1, 60), (2, 120), (3, 240), (4, 480), (6, 1920), (7, 3600), (12, 3600)],
    )
    def test_doubles_and_caps(self, attempts, expected):
        assert compute_backoff_seconds(attempts) == expected

    def test_dedupe_key_format(self):
        assert approval_dedupe_key("abc") == "consult_approval:abc:approved"


class TestCreation:
    def test_new_event_is_pending_and_due(self):
        event = _make_event()
        assert event.status == OutboxStatus.PENDING.value
        assert event.attempts == 0
        assert event.is_due(utc_now())
        assert event.payload_data() == {"approval_id": "approval-1"}
        assert event.metadata_data() == {"source": "test"}


class TestFailures:
    def test_failure_reschedules_with_backoff(self):
        event = _make_event()
        now = utc_now()
        event.record_failure("Webhook failed (500): boom", now=now)
        assert event.status == OutboxStatus.PENDING.value
        assert event.attempts == 1
        assert event.next_attempt_at == now + timedelta(seconds=60)
        assert not event.is_due(now)
        assert event.is_due(now + timedelta(seconds=60))
        assert isinstance(event._events[-1], OutboxDeliveryFailed)

    def test_successive_failures_double_the_delay(self):
        event = _make_event()
        now = utc_now()
        delays = []
        for _ in range(4):
            event.record_failure("boom", now=now)
            delays.append((event.next_attempt_at - now).total_seconds())
        assert delays == [60, 120, 240, 480]

    def test_fifth_failure_dead_letters(self):
        event = _make_event()
        now = utc_now()
        for _ in range(5):
            event.record_failure("boom", now=now)
        assert event.status == OutboxStatus.DEAD_LETTER.value
        assert event.next_attempt_at is None
        assert event.needs_fallback_email()
        assert isinstance(event._events[-1], OutboxEventDeadLettered)

    def test_dead_letter_is_terminal(self):
        event = _make_event()
        for _ in range(5):
            event.record_failure("boom")
        with pytest.raises(ValidationError):
            event.record_failure("again")
        assert event.attempts == 5

    def test_error_is_truncated(self):
        event = _make_event()
        event.record_failure("x" * 5000)
        assert len(event.last_error) == 2000


class TestDelivery:
    def test_mark_delivered(self):
        event = _make_event()
        event.record_failure("boom")
        event.mark_delivered(status_code=204)
        assert event.status == OutboxStatus.DELIVERED.value
        assert event.attempts == 2
        assert event.delivered_at is not None
        assert event.last_error is None
        assert event.metadata_data()["response_status"] == 204
        assert isinstance(event._events[-1], OutboxEventDelivered)

    def test_delivered_event_is_not_due(self):
        event = _make_event()
        event.mark_delivered()
        assert not event.is_due(utc_now())


class TestClaims:
    def test_claim_blocks_other_workers_until_lease_expires(self):
        event = _make_event()
        now = utc_now()
        assert event.try_claim("worker-a", now, lease_seconds=300)
        assert not event.try_claim("worker-b", now + timedelta(seconds=10), lease_seconds=300)
        assert event.try_claim("worker-b", now + timedelta(seconds=301), lease_seconds=300)
        assert event.claimed_by == "worker-b"

    def test_same_worker_can_reclaim(self):
        event = _make_event()
        now = utc_now()
        event.try_claim("worker-a", now, lease_seconds=300)
        assert event.try_claim("worker-a", now, lease_seconds=300)

    def test_outcomes_release_the_claim(self):
        event = _make_event()
        event.try_claim("worker-a", utc_now(), lease_seconds=300)
        event.record_failure("boom")
        assert event.claimed_by is None
        assert event.claim_expires_at is None

    def test_terminal_event_cannot_be_claimed(self):
        event = _make_event()
        event.mark_delivered()
        assert not event.try_claim("worker-a", utc_now(), lease_seconds=300)


class TestFallbackEmail:
    def test_sent_fallback_is_recorded_once(self):
        event = _make_event()
        for _ in range(5):
            event.record_failure("boom")
        event.record_fallback_email("ops@pharmacy.test", sent=True)
        assert event.fallback_email_sent_at is not None
        assert not event.needs_fallback_email()
        assert event.metadata_data()["email_fallback_to"] == "ops@pharmacy.test"

    def test_failed_fallback_keeps_event_awaiting_escalation(self):
        event = _make_event()
        for _ in range(5):
            event.record_failure("boom")
        event.record_fallback_email("ops@pharmacy.test", sent=False, error="SMTP down")
        assert event.needs_fallback_email()
        assert event.metadata_data()["email_fallback_error"] == "SMTP down"
