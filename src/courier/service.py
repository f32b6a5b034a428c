"""Courier service layer.

WebhookService is the inbound API the rest of the platform uses: it wires
the store, registry, executor, scheduler and retention worker together and
exposes endpoint management, event triggering and ledger queries.

Example:
    ```python
    from courier.service import WebhookService

    async with WebhookService.create() as courier:
        endpoint = await courier.create_webhook(
            user_id="user_123",
            url="https://example.com/hooks",
            events=["video.completed"],
        )
        await courier.start()
        delivery_ids = await courier.trigger_event(
            "video.completed", {"videoId": "v_1"}, user_id="user_123"
        )
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from courier.config import Settings
from courier.logging import get_logger
from courier.models import (
    EVENT_CATALOG,
    DeliveryStats,
    DeliveryStatus,
    EventTypeInfo,
    WebhookDelivery,
    WebhookEndpoint,
    build_envelope,
    isoformat_z,
    utc_now,
)
from courier.storage import WebhookStore, create_store
from courier.webhooks import (
    DeliveryExecutor,
    DeliveryScheduler,
    ObserverRegistry,
    RetentionWorker,
    RetryPolicy,
    WebhookObserver,
    WebhookRegistry,
)

logger = get_logger(__name__)

TEST_EVENT_MESSAGE = "This is a test webhook event"


@dataclass
class WebhookService:
    """High-level webhook delivery service.

    Provides:
    - Endpoint management: create/get/update/delete webhooks, rotate secrets
    - trigger_event(): fan an event out to every matching endpoint
    - Ledger queries: get_delivery(), get_deliveries(), get_delivery_stats()
    - start()/stop(): run the scheduler and retention loops in-process

    Attributes:
        store: Endpoint, ledger and queue storage.
        settings: Configuration settings.
        executor: HTTP executor (built from settings when omitted).
        clock: Source of "now" for queueing, backoff and retention.
    """

    store: WebhookStore
    settings: Settings
    executor: DeliveryExecutor | None = field(default=None)
    clock: Callable[[], datetime] = field(default=utc_now)

    observers: ObserverRegistry = field(default_factory=ObserverRegistry, init=False)
    registry: WebhookRegistry = field(init=False, repr=False)
    scheduler: DeliveryScheduler = field(init=False, repr=False)
    retention: RetentionWorker = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.executor is None:
            self.executor = DeliveryExecutor(
                timeout_seconds=self.settings.delivery_timeout_seconds,
                user_agent=self.settings.user_agent,
                response_body_limit=self.settings.response_body_limit,
            )
        self.registry = WebhookRegistry(
            self.store,
            observers=self.observers,
            default_max_retries=self.settings.webhook_max_retries,
        )
        self.scheduler = DeliveryScheduler(
            self.store,
            self.executor,
            policy=RetryPolicy(
                base_delay_ms=self.settings.retry_delay_ms,
                max_delay_ms=self.settings.max_retry_delay_ms,
            ),
            observers=self.observers,
            batch_size=self.settings.scheduler_batch_size,
            interval_seconds=self.settings.scheduler_interval_seconds,
            concurrency=self.settings.scheduler_concurrency,
            clock=self.clock,
        )
        self.retention = RetentionWorker(
            self.store,
            retention_days=self.settings.retention_days,
            interval_seconds=self.settings.retention_interval_seconds,
            observers=self.observers,
            clock=self.clock,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService with the configured store.

        Args:
            settings: Optional settings. Uses defaults (and COURIER_* env) if None.

        Returns:
            Configured, uninitialized WebhookService.

        Example:
            ```python
            async with WebhookService.create(Settings(storage_backend="memory")) as courier:
                ...
            ```
        """
        if settings is None:
            settings = Settings()
        return cls(store=create_store(settings), settings=settings)

    async def initialize(self) -> None:
        """Initialize the service (storage schema, connections)."""
        await self.store.initialize()

    async def start(self) -> None:
        """Start the scheduler and retention loops."""
        await self.scheduler.start()
        await self.retention.start()
        logger.info(
            "webhook_service_started",
            storage_backend=self.settings.storage_backend,
            interval_seconds=self.settings.scheduler_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop both loops, letting in-flight ticks finish."""
        await self.scheduler.stop()
        await self.retention.stop()
        logger.info("webhook_service_stopped")

    async def close(self) -> None:
        """Stop background work and release storage resources."""
        await self.stop()
        await self.store.close()

    async def __aenter__(self) -> WebhookService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def add_observer(self, observer: WebhookObserver) -> None:
        """Register an observer for lifecycle notifications."""
        self.observers.add(observer)

    # Endpoint management

    async def create_webhook(
        self,
        user_id: str,
        url: str,
        events: list[str],
        secret: str | None = None,
        description: str | None = None,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
    ) -> WebhookEndpoint:
        """Register an endpoint. The returned model carries the real secret."""
        return await self.registry.create_webhook(
            user_id,
            url,
            events,
            secret=secret,
            description=description,
            headers=headers,
            max_retries=max_retries,
        )

    async def get_webhook(
        self, webhook_id: str, include_secret: bool = False
    ) -> WebhookEndpoint | None:
        return await self.registry.get_webhook(webhook_id, include_secret=include_secret)

    async def get_webhooks_by_user(
        self, user_id: str, include_secret: bool = False
    ) -> list[WebhookEndpoint]:
        return await self.registry.get_webhooks_by_user(user_id, include_secret=include_secret)

    async def get_webhooks_for_event(
        self, event: str, user_id: str | None = None
    ) -> list[WebhookEndpoint]:
        return await self.registry.get_webhooks_for_event(event, user_id=user_id)

    async def update_webhook(self, webhook_id: str, **fields: Any) -> WebhookEndpoint | None:
        """Update only the given fields (url, events, status, description, headers, max_retries)."""
        return await self.registry.update_webhook(webhook_id, **fields)

    async def delete_webhook(self, webhook_id: str) -> bool:
        return await self.registry.delete_webhook(webhook_id)

    async def regenerate_secret(self, webhook_id: str) -> str | None:
        return await self.registry.regenerate_secret(webhook_id)

    # Triggering

    async def trigger_event(
        self,
        event: str,
        data: dict[str, Any],
        user_id: str | None = None,
        priority: int = 0,
    ) -> list[str]:
        """Queue one delivery per active endpoint subscribed to ``event``.

        Args:
            event: Event name (exact match against subscriptions).
            data: Event payload placed under ``data`` in the envelope.
            user_id: Restrict to this user's endpoints; all users when None.
            priority: Higher values are dispatched first.

        Returns:
            IDs of the deliveries created (empty when nothing matches).
        """
        endpoints = await self.registry.get_webhooks_for_event(event, user_id=user_id)
        delivery_ids = [
            await self.queue_delivery(endpoint, event, data, priority=priority)
            for endpoint in endpoints
        ]

        logger.info(
            "event_triggered",
            event_name=event,
            user_id=user_id,
            webhook_count=len(delivery_ids),
        )
        await self.observers.notify("event_triggered", event, user_id, len(delivery_ids))
        return delivery_ids

    async def queue_delivery(
        self,
        endpoint: WebhookEndpoint,
        event: str,
        data: dict[str, Any],
        priority: int = 0,
    ) -> str:
        """Create a pending delivery and its first queue entry; returns the delivery id."""
        now = self.clock()
        delivery = WebhookDelivery(
            webhook_id=endpoint.id,
            event=event,
            payload=build_envelope(endpoint.id, event, data, timestamp=now),
            created_at=now,
        )
        await self.store.create_delivery(delivery, delivery.initial_queue_entry(priority))
        logger.debug("delivery_queued", delivery_id=delivery.id, webhook_id=endpoint.id)
        return delivery.id

    async def send_test_event(
        self, webhook_id: str, event: str, data: dict[str, Any] | None = None
    ) -> str | None:
        """Queue a delivery to one endpoint only; None if it does not exist.

        Without ``data`` a standard test payload is sent.
        """
        endpoint = await self.store.get_endpoint(webhook_id)
        if endpoint is None:
            return None
        if data is None:
            data = {
                "test": True,
                "message": TEST_EVENT_MESSAGE,
                "timestamp": isoformat_z(self.clock()),
            }
        delivery_id = await self.queue_delivery(endpoint, event, data)
        logger.info("test_event_queued", webhook_id=webhook_id, delivery_id=delivery_id)
        return delivery_id

    # Ledger queries

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        return await self.store.get_delivery(delivery_id)

    async def get_deliveries(
        self,
        webhook_id: str,
        limit: int = 100,
        status: DeliveryStatus | None = None,
    ) -> list[WebhookDelivery]:
        """Deliveries for an endpoint, newest first."""
        return await self.store.list_deliveries(webhook_id, limit=limit, status=status)

    async def get_delivery_stats(self, webhook_id: str) -> DeliveryStats:
        return await self.store.delivery_stats(webhook_id)

    def list_event_types(self) -> list[EventTypeInfo]:
        """Known platform events, for display."""
        return list(EVENT_CATALOG)
