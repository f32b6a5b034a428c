"""Lifecycle notifications for webhook endpoints and deliveries.

Observers subclass WebhookObserver and override the hooks they care about.
Hooks may be sync or async. A failing observer is logged and skipped; it
never affects delivery or the other observers.

Example:
    ```python
    class Metrics(WebhookObserver):
        def delivery_failed(self, delivery):
            failures.inc()

    service.add_observer(Metrics())
    ```
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from courier.models import WebhookDelivery, WebhookEndpoint

logger = structlog.get_logger(__name__)


class WebhookObserver:
    """Base observer with no-op hooks."""

    def webhook_created(self, endpoint: WebhookEndpoint) -> Any:
        pass

    def webhook_updated(self, endpoint: WebhookEndpoint) -> Any:
        pass

    def webhook_deleted(self, endpoint_id: str) -> Any:
        pass

    def secret_regenerated(self, endpoint_id: str) -> Any:
        pass

    def event_triggered(self, event: str, user_id: str | None, webhook_count: int) -> Any:
        pass

    def delivery_succeeded(self, delivery: WebhookDelivery) -> Any:
        pass

    def delivery_retrying(self, delivery: WebhookDelivery) -> Any:
        pass

    def delivery_failed(self, delivery: WebhookDelivery) -> Any:
        pass

    def cleanup_completed(self, count: int) -> Any:
        pass


class ObserverRegistry:
    """Fan-out of notifications to registered observers."""

    def __init__(self) -> None:
        self._observers: list[WebhookObserver] = []

    def add(self, observer: WebhookObserver) -> None:
        self._observers.append(observer)

    def remove(self, observer: WebhookObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def __len__(self) -> int:
        return len(self._observers)

    async def notify(self, hook: str, *args: Any) -> None:
        """Call ``hook`` on every observer, awaiting coroutine results."""
        for observer in list(self._observers):
            try:
                result = getattr(observer, hook)(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "observer_failed", observer=type(observer).__name__, hook=hook
                )
