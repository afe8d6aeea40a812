"""Webhook transport port — the single outbound call the dispatcher makes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    text: str = ""

    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WebhookTransport(ABC):
    @abstractmethod
    def post(self, url: str, body: str, headers: dict[str, str]) -> WebhookResponse:
        """POST ``body`` to ``url``.

        Returns the response for any HTTP status; raises
        ``WebhookDeliveryFailed`` when no response was received.
        """
        ...
