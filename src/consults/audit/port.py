"""Audit log port — where consults records who did what to which record."""

from abc import ABC, abstractmethod
from enum import Enum


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AuditLog(ABC):
    @abstractmethod
    def record_event(
        self,
        actor: str | None,
        action: str,
        entity_type: str,
        entity_id: str,
        business_id: str | None,
        risk_level: str,
        changes: dict | None = None,
    ) -> None:
        """Persist one audit entry. Persistence and redaction belong to the adapter."""
        ...
