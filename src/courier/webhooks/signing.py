"""HMAC-SHA256 signatures for outbound webhook payloads.

The ``X-Webhook-Signature`` header has the form ``t=<unix>,v1=<hex>`` where
the digest covers ``"<unix>.<payload_json>"``. Binding the timestamp into
the digest lets receivers reject stale or replayed requests.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any

SIGNATURE_VERSION = "v1"


def serialize_payload(payload: dict[str, Any]) -> str:
    """Serialize an envelope exactly as it is sent on the wire."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def compute_signature(payload: str, secret: str, timestamp: int) -> str:
    """Compute the hex HMAC-SHA256 digest of ``"{timestamp}.{payload}"``.

    Args:
        payload: JSON string payload to sign.
        secret: Endpoint secret.
        timestamp: Unix timestamp in seconds.

    Returns:
        Lowercase hex digest.
    """
    message = f"{timestamp}.{payload}"
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=message.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(payload: str, secret: str, timestamp: int | None = None) -> str:
    """Build the ``X-Webhook-Signature`` header value.

    Args:
        payload: JSON string payload to sign.
        secret: Endpoint secret.
        timestamp: Unix timestamp (defaults to current time).

    Returns:
        Header value in format ``t=<timestamp>,v1=<hex_digest>``.
    """
    if timestamp is None:
        timestamp = int(time.time())
    digest = compute_signature(payload, secret, timestamp)
    return f"t={timestamp},{SIGNATURE_VERSION}={digest}"
