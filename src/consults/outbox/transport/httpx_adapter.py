"""httpx-backed webhook transport with bounded timeouts."""

import httpx
import structlog

from consults.errors import WebhookDeliveryFailed
from consults.outbox.transport.port import WebhookResponse, WebhookTransport

logger = structlog.get_logger(__name__)


class HttpxWebhookTransport(WebhookTransport):
    def __init__(
        self,
        timeout_seconds: float = 10.0,
        connect_timeout_seconds: float = 3.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds),
            transport=transport,
            follow_redirects=False,
        )

    def post(self, url, body, headers):
        try:
            response = self._client.post(url, content=body.encode("utf-8"), headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Webhook request error", url=url, error=str(exc))
            raise WebhookDeliveryFailed(f"Webhook request failed: {exc.__class__.__name__}: {exc}") from exc
        return WebhookResponse(status_code=response.status_code, text=response.text)

    def close(self):
        self._client.close()
