"""Repository for the OutboxEvent aggregate."""

from consults.domain import consults
from consults.outbox.event import OutboxEvent, OutboxStatus
from consults.utils.clock import as_utc
from consults.utils.once import create_once


@consults.repository(part_of=OutboxEvent)
class OutboxEventRepository:
    def get_by_dedupe_key(self, dedupe_key) -> OutboxEvent | None:
        found = self._dao.query.filter(dedupe_key=dedupe_key).all().items
        return found[0] if found else None

    def enqueue_once(self, business_id, event_type, dedupe_key, payload, metadata=None):
        """Store the event unless its dedupe key is already taken. Returns ``(event, created)``."""
        return create_once(
            self,
            f"outbox:{dedupe_key}",
            find_existing=lambda: self.get_by_dedupe_key(dedupe_key),
            build=lambda: OutboxEvent.create(
                business_id=business_id,
                event_type=event_type,
                dedupe_key=dedupe_key,
                payload=payload,
                metadata=metadata,
            ),
        )

    def due(self, now, limit: int) -> list[OutboxEvent]:
        """Pending events ready for an attempt, oldest first."""
        now = as_utc(now)
        never_tried = (
            self._dao.query.filter(status=OutboxStatus.PENDING.value, next_attempt_at__isnull=True)
            .order_by("created_at")
            .limit(limit)
            .all()
            .items
        )
        retry_due = (
            self._dao.query.filter(status=OutboxStatus.PENDING.value, next_attempt_at__lte=now)
            .order_by("created_at")
            .limit(limit)
            .all()
            .items
        )
        due = [e for e in never_tried + retry_due if e.is_due(now)]
        due.sort(key=lambda e: as_utc(e.created_at))
        return due[:limit]

    def awaiting_escalation(self) -> list[OutboxEvent]:
        """Dead-lettered events whose fallback email has not gone out yet."""
        dead = self._dao.query.filter(status=OutboxStatus.DEAD_LETTER.value).all().items
        return [e for e in dead if e.needs_fallback_email()]
