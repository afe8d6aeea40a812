"""Audit log registry.

``record_audit_event`` is the only way consults writes audit entries: it is
fire-and-forget, so an unavailable audit store is logged and never fails the
operation being audited.
"""

import structlog

from consults.audit.fake_adapter import InMemoryAuditLog
from consults.audit.port import AuditLog, RiskLevel

logger = structlog.get_logger(__name__)

_current_audit_log: AuditLog | None = None


def get_audit_log() -> AuditLog:
    """Return the current audit log. Defaults to InMemoryAuditLog."""
    global _current_audit_log
    if _current_audit_log is None:
        _current_audit_log = InMemoryAuditLog()
    return _current_audit_log


def set_audit_log(audit_log: AuditLog) -> None:
    global _current_audit_log
    _current_audit_log = audit_log


def reset_audit_log() -> None:
    global _current_audit_log
    _current_audit_log = None


def record_audit_event(
    action: str,
    entity_type: str,
    entity_id,
    business_id=None,
    actor: str | None = None,
    risk_level: str = RiskLevel.LOW.value,
    changes: dict | None = None,
) -> None:
    try:
        get_audit_log().record_event(
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            business_id=str(business_id) if business_id else None,
            risk_level=risk_level,
            changes=changes,
        )
    except Exception as exc:
        logger.warning(
            "Audit record failed",
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            error=str(exc),
        )
