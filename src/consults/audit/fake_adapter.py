"""In-memory audit log — records entries for test assertions."""

from consults.audit.port import AuditLog


class InMemoryAuditLog(AuditLog):
    def __init__(self):
        self.entries: list[dict] = []
        self.should_fail = False

    def configure(self, should_fail: bool = False):
        self.should_fail = should_fail

    def record_event(
        self,
        actor,
        action,
        entity_type,
        entity_id,
        business_id,
        risk_level,
        changes=None,
    ):
        if self.should_fail:
            raise RuntimeError("Audit store unavailable")
        self.entries.append(
            {
                "actor": actor,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "business_id": business_id,
                "risk_level": risk_level,
                "changes": changes,
            }
        )

    def actions(self) -> list[str]:
        return [e["action"] for e in self.entries]

    def reset(self):
        self.entries.clear()
        self.should_fail = False
