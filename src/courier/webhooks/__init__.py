"""Webhook delivery: registry, signing, execution, scheduling and retention.

Example:
    ```python
    from courier.webhooks import DeliveryExecutor, DeliveryScheduler, WebhookRegistry

    registry = WebhookRegistry(store)
    endpoint = await registry.create_webhook("user_1", "https://example.com/hook", ["video.completed"])

    scheduler = DeliveryScheduler(store, DeliveryExecutor())
    await scheduler.run_once()
    ```
"""

from .executor import DeliveryExecutor
from .observers import ObserverRegistry, WebhookObserver
from .registry import WebhookRegistry, generate_secret
from .retention import RetentionWorker
from .retry import RetryPolicy
from .scheduler import DeliveryScheduler
from .signing import SIGNATURE_VERSION, compute_signature, serialize_payload, signature_header
from .worker import PeriodicWorker

__all__ = [
    "DeliveryExecutor",
    "DeliveryScheduler",
    "ObserverRegistry",
    "PeriodicWorker",
    "RetentionWorker",
    "RetryPolicy",
    "SIGNATURE_VERSION",
    "WebhookObserver",
    "WebhookRegistry",
    "compute_signature",
    "generate_secret",
    "serialize_payload",
    "signature_header",
]
