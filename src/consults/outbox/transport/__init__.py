"""Webhook transport registry.

``WEBHOOK_TRANSPORT=httpx`` (default) posts through httpx with the configured
timeouts; ``fake`` records requests in memory.
"""

import os

from consults.config import get_config
from consults.outbox.transport.port import WebhookTransport

_current_transport: WebhookTransport | None = None


def get_transport() -> WebhookTransport:
    global _current_transport
    if _current_transport is None:
        if os.environ.get("WEBHOOK_TRANSPORT", "httpx").lower() == "fake":
            from consults.outbox.transport.fake_adapter import FakeWebhookTransport

            _current_transport = FakeWebhookTransport()
        else:
            from consults.outbox.transport.httpx_adapter import HttpxWebhookTransport

            config = get_config()
            _current_transport = HttpxWebhookTransport(
                timeout_seconds=config.webhook_timeout_seconds,
                connect_timeout_seconds=config.webhook_connect_timeout_seconds,
            )
    return _current_transport


def set_transport(transport: WebhookTransport) -> None:
    global _current_transport
    _current_transport = transport


def reset_transport() -> None:
    global _current_transport
    _current_transport = None
