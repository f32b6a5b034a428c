"""Courier: reliable outbound webhooks.

Registers webhook endpoints, fans platform events out to them as signed
HTTP POSTs, retries failures with exponential backoff and keeps a delivery
ledger.

Quick Start:
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        endpoint = await courier.create_webhook(
            user_id="user_123",
            url="https://example.com/hooks",
            events=["video.completed"],
        )
        await courier.start()
        await courier.trigger_event("video.completed", {"videoId": "v_1"})

Components:
    - WebhookRegistry: endpoint CRUD and secret rotation
    - DeliveryScheduler: drains the queue into the executor
    - DeliveryExecutor: signed HTTP attempts
    - RetentionWorker: purges old terminal deliveries
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    CourierError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryOutcome,
    DeliveryStats,
    EventTypeInfo,
    QueueEntry,
    WebhookDelivery,
    WebhookEndpoint,
)

# Service
from .service import WebhookService
from .webhooks import WebhookObserver

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    # Exceptions
    "CourierError",
    "ValidationError",
    "StorageError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "DeliveryOutcome",
    "DeliveryStats",
    "EventTypeInfo",
    "QueueEntry",
    "WebhookDelivery",
    "WebhookEndpoint",
    # Service
    "WebhookService",
    "WebhookObserver",
]
