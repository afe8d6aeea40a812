"""Email channel port — abstract interface for operational email."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EmailResult:
    sent: bool
    message_id: str | None = None
    error: str | None = None


class EmailPort(ABC):
    """Abstract interface for email dispatch adapters."""

    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> EmailResult:
        """Send a plain-text email. Delivery problems are reported, not raised."""
        ...
