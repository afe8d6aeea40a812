"""DispatchOutboxEvents command + handler — deliver due events to partners.

Invoked by the outbox job every couple of minutes. Each due event is claimed
before delivery (an in-process single-flight guard plus a persisted lease),
posted as a signed webhook, and then marked delivered or rescheduled with
exponential backoff. Events that exhaust their attempts are dead-lettered and
escalated to the business's operational contact by email, once.
"""

import json
import os
import socket
import threading
from collections import Counter
from contextlib import contextmanager

import structlog
from protean.exceptions import ExpectedVersionError
from protean.fields import DateTime, Integer, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from consults.audit import RiskLevel, record_audit_event
from consults.business import get_business_directory
from consults.business.port import resolve_dispatch_target
from consults.channel import get_email_channel
from consults.config import get_config
from consults.domain import consults
from consults.errors import WebhookConfigurationMissing, WebhookDeliveryFailed
from consults.outbox.event import OutboxEvent
from consults.outbox.signing import build_delivery_body, build_headers
from consults.outbox.transport import get_transport
from consults.utils.clock import epoch_millis, utc_now
from consults.utils.once import save_now

logger = structlog.get_logger(__name__)

_inflight: set[str] = set()
_inflight_lock = threading.Lock()


@contextmanager
def _single_flight(event_id: str):
    """Yield True if this process may work on the event, False if it already is."""
    with _inflight_lock:
        if event_id in _inflight:
            acquired = False
        else:
            _inflight.add(event_id)
            acquired = True
    try:
        yield acquired
    finally:
        if acquired:
            with _inflight_lock:
                _inflight.discard(event_id)


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


@consults.command(part_of="OutboxEvent")
class DispatchOutboxEvents:
    """Deliver every pending event that is due."""

    as_of = DateTime()  # Optional: dispatch as of this time (defaults to now)
    limit = Integer(min_value=1)  # Defaults to OUTBOX_BATCH_SIZE
    worker_id = String(max_length=100)


def _claim(repo, event, worker_id, now, lease_seconds) -> OutboxEvent | None:
    """Persist a lease on the event and return the reloaded copy if we won it."""
    if not event.try_claim(worker_id, now, lease_seconds):
        return None
    try:
        save_now(repo, event)
    except ExpectedVersionError:
        return None
    claimed = repo.get(event.id)
    if claimed.claimed_by != worker_id or claimed.is_terminal():
        return None
    return claimed


def _post(event, target, now):
    body = build_delivery_body(event)
    headers = build_headers(str(event.id), str(epoch_millis(now)), body, target.signing_secret)
    if not target.signing_secret:
        logger.warning("Sending unsigned webhook, no signing secret configured", business_id=str(event.business_id))

    response = get_transport().post(target.webhook_url, body, headers)
    if not response.ok():
        raise WebhookDeliveryFailed(
            f"Webhook failed ({response.status_code}): {response.text[:500]}",
            status_code=response.status_code,
        )
    return response


def _fallback_email_body(event, business, error) -> str:
    business_label = f"{business.name} ({business.id})" if business else str(event.business_id)
    return "\n".join(
        [
            "Fulfillment dispatch failed and was moved to dead-letter.",
            "",
            f"Business: {business_label}",
            f"Event ID: {event.id}",
            f"Event type: {event.event_type}",
            f"Attempts: {event.attempts}",
            f"Last error: {error or event.last_error or 'unknown'}",
            "",
            "Payload:",
            json.dumps(event.payload_data(), indent=2, sort_keys=True),
        ]
    )


def escalate_dead_letter(repo, event, now=None) -> bool:
    """Send the fallback email for a dead-lettered event, at most once per event."""
    if not event.needs_fallback_email():
        return False

    business = get_business_directory().get_business(event.business_id)
    target = resolve_dispatch_target(business, get_config())
    now = now or utc_now()

    if not target.ops_email:
        logger.warning(
            "Dead-lettered event has no operational contact",
            outbox_event_id=str(event.id),
            business_id=str(event.business_id),
        )
        return False

    result = get_email_channel().send(
        to=target.ops_email,
        subject=f"Dispatch failed (dead-letter): {event.event_type}",
        body=_fallback_email_body(event, business, event.last_error),
    )
    event.record_fallback_email(target.ops_email, result.sent, now=now, error=result.error)
    save_now(repo, event)

    if result.sent:
        record_audit_event(
            action="outbox_event.dead_letter_escalated",
            entity_type="outbox_event",
            entity_id=event.id,
            business_id=event.business_id,
            actor="system:outbox_dispatcher",
            risk_level=RiskLevel.MEDIUM.value,
            changes={"email_to": target.ops_email, "attempts": event.attempts},
        )
    else:
        logger.error("Fallback email failed", outbox_event_id=str(event.id), error=result.error)
    return result.sent


def _record_failed_attempt(repo, event, now, config, error: str) -> str:
    event.record_failure(
        error,
        now=now,
        max_attempts=config.outbox_max_attempts,
        backoff_base_seconds=config.outbox_backoff_base_seconds,
        backoff_cap_seconds=config.outbox_backoff_cap_seconds,
    )
    save_now(repo, event)
    logger.warning(
        "Outbox delivery failed",
        outbox_event_id=str(event.id),
        attempts=event.attempts,
        status=event.status,
        error=error,
    )
    if event.needs_fallback_email():
        escalate_dead_letter(repo, repo.get(event.id), now=now)
        return "dead_lettered"
    return "failed"


def deliver_event(repo, event, now, config) -> str:
    """Attempt one delivery and persist the outcome. Returns the outcome label.

    Any error raised while resolving the partner or posting the webhook is
    recorded as a failed attempt, so one bad event never stalls the pass.
    """
    try:
        business = get_business_directory().get_business(event.business_id)
        target = resolve_dispatch_target(business, config)
        if business is None:
            raise WebhookDeliveryFailed(f"Business {event.business_id} not found")
        if not target.webhook_url:
            raise WebhookConfigurationMissing(event.business_id)
        response = _post(event, target, now)
    except WebhookDeliveryFailed as exc:
        return _record_failed_attempt(repo, event, now, config, str(exc))
    except Exception as exc:
        logger.exception("Unexpected webhook delivery error", outbox_event_id=str(event.id))
        return _record_failed_attempt(
            repo, event, now, config, f"Webhook request failed: {exc.__class__.__name__}: {exc}"
        )

    event.mark_delivered(now=now, status_code=response.status_code)
    save_now(repo, event)
    record_audit_event(
        action="outbox_event.delivered",
        entity_type="outbox_event",
        entity_id=event.id,
        business_id=event.business_id,
        actor="system:outbox_dispatcher",
        risk_level=RiskLevel.LOW.value,
        changes={"type": event.event_type, "attempts": event.attempts},
    )
    return "delivered"


@consults.command_handler(part_of=OutboxEvent)
class DispatchOutboxEventsHandler:
    @handle(DispatchOutboxEvents)
    def dispatch(self, command):
        config = get_config()
        now = command.as_of or utc_now()
        limit = command.limit or config.outbox_batch_size
        worker_id = command.worker_id or default_worker_id()
        repo = current_domain.repository_for(OutboxEvent)

        summary = Counter()
        for event in repo.due(now, limit):
            with _single_flight(str(event.id)) as acquired:
                claimed = _claim(repo, event, worker_id, now, config.outbox_claim_lease_seconds) if acquired else None
                if claimed is None:
                    summary["skipped"] += 1
                    continue
                summary[deliver_event(repo, claimed, now, config)] += 1

        # Dead letters whose fallback email failed on an earlier pass
        for event in repo.awaiting_escalation():
            if escalate_dead_letter(repo, event, now=now):
                summary["escalated"] += 1

        logger.info("Outbox events dispatched", as_of=str(now), **summary)
        return dict(summary)
