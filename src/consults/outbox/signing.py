"""Webhook body construction and HMAC signing.

Partners verify ``x-rxgate-signature`` by recomputing
``HMAC-SHA256(secret, f"{timestamp}.{event_id}.{body}")`` over the raw body.
"""

import hashlib
import hmac
import json

EVENT_ID_HEADER = "x-rxgate-event-id"
TIMESTAMP_HEADER = "x-rxgate-timestamp"
SIGNATURE_HEADER = "x-rxgate-signature"


def build_delivery_body(event) -> str:
    return json.dumps(
        {
            "event_id": str(event.id),
            "type": event.event_type,
            "business_id": str(event.business_id),
            "payload": event.payload_data(),
        },
        separators=(",", ":"),
    )


def sign(secret: str, timestamp_ms: str, event_id: str, body: str) -> str:
    message = f"{timestamp_ms}.{event_id}.{body}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def build_headers(event_id: str, timestamp_ms: str, body: str, secret: str | None) -> dict[str, str]:
    headers = {
        "content-type": "application/json",
        EVENT_ID_HEADER: event_id,
        TIMESTAMP_HEADER: timestamp_ms,
    }
    if secret:
        headers[SIGNATURE_HEADER] = f"sha256={sign(secret, timestamp_ms, event_id, body)}"
    return headers


def verify_signature(secret: str, timestamp_ms: str, event_id: str, body: str, signature_header: str) -> bool:
    """Constant-time check of a signature header, for partners and tests."""
    expected = f"sha256={sign(secret, timestamp_ms, event_id, body)}"
    return hmac.compare_digest(expected, signature_header or "")
