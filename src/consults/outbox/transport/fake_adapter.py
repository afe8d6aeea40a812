"""Fake webhook transport — records requests and replays configured responses."""

from consults.errors import WebhookDeliveryFailed
from consults.outbox.transport.port import WebhookResponse, WebhookTransport


class FakeWebhookTransport(WebhookTransport):
    def __init__(self):
        self.requests: list[dict] = []
        self.status_code = 200
        self.response_text = "ok"
        self.network_error: str | None = None

    def configure(self, status_code: int = 200, response_text: str = "ok", network_error: str | None = None):
        self.status_code = status_code
        self.response_text = response_text
        self.network_error = network_error

    def post(self, url, body, headers):
        self.requests.append({"url": url, "body": body, "headers": dict(headers)})
        if self.network_error:
            raise WebhookDeliveryFailed(self.network_error)
        return WebhookResponse(status_code=self.status_code, text=self.response_text)

    def reset(self):
        self.requests.clear()
        self.configure()
