"""Data models for Courier.

Endpoint Registry:
    - WebhookEndpoint: registered destination with secret and subscriptions

Delivery Ledger:
    - WebhookDelivery: one event sent to one endpoint, spanning retries
    - DeliveryStats: per-endpoint counts by status
    - DeliveryOutcome: result of a single HTTP attempt

Queue:
    - QueueEntry: time-scheduled attempt keyed by (delivery_id, attempt)

Event Catalog:
    - EVENT_CATALOG, EventTypeInfo
"""

from .base import ensure_utc, generate_id, isoformat_z, utc_now
from .delivery import (
    TERMINAL_STATUSES,
    DeliveryOutcome,
    DeliveryStats,
    DeliveryStatus,
    QueueEntry,
    WebhookDelivery,
    build_envelope,
)
from .endpoint import SECRET_PLACEHOLDER, EndpointStatus, WebhookEndpoint
from .events import EVENT_CATALOG, EventTypeInfo, is_valid_event_name

__all__ = [
    # Helpers
    "ensure_utc",
    "generate_id",
    "isoformat_z",
    "utc_now",
    # Endpoints
    "EndpointStatus",
    "SECRET_PLACEHOLDER",
    "WebhookEndpoint",
    # Ledger
    "DeliveryOutcome",
    "DeliveryStats",
    "DeliveryStatus",
    "TERMINAL_STATUSES",
    "WebhookDelivery",
    "build_envelope",
    # Queue
    "QueueEntry",
    # Events
    "EVENT_CATALOG",
    "EventTypeInfo",
    "is_valid_event_name",
]
