"""Process-local webhook store.

Keeps endpoints, deliveries and the queue in dictionaries guarded by a
single asyncio lock. Nothing survives a restart, so this backend suits tests
and single-process development setups.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from courier.models import DeliveryStats, QueueEntry, WebhookDelivery, WebhookEndpoint

from .base import MUTABLE_ENDPOINT_FIELDS, WebhookStore

if TYPE_CHECKING:
    from courier.models import DeliveryOutcome, DeliveryStatus
    from courier.webhooks.retry import RetryPolicy


class InMemoryWebhookStore(WebhookStore):
    """Dictionary-backed WebhookStore.

    Models are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._endpoints: dict[str, WebhookEndpoint] = {}
        # event name -> endpoint ids subscribed to it
        self._event_index: dict[str, set[str]] = {}
        self._deliveries: dict[str, WebhookDelivery] = {}
        self._queue: dict[tuple[str, int], QueueEntry] = {}

    # Endpoints

    async def insert_endpoint(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        async with self._lock:
            self._endpoints[endpoint.id] = endpoint.model_copy(deep=True)
            self._index_events(endpoint.id, endpoint.events)
        return endpoint

    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        endpoint = self._endpoints.get(endpoint_id)
        return endpoint.model_copy(deep=True) if endpoint else None

    async def list_endpoints_by_user(self, user_id: str) -> list[WebhookEndpoint]:
        endpoints = [e for e in self._endpoints.values() if e.user_id == user_id]
        endpoints.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in endpoints]

    async def list_endpoints_for_event(
        self, event: str, user_id: str | None = None
    ) -> list[WebhookEndpoint]:
        matches = []
        for endpoint_id in self._event_index.get(event, set()):
            endpoint = self._endpoints.get(endpoint_id)
            if endpoint is None or not endpoint.is_active:
                continue
            if user_id is not None and endpoint.user_id != user_id:
                continue
            matches.append(endpoint)
        matches.sort(key=lambda e: e.created_at)
        return [e.model_copy(deep=True) for e in matches]

    async def update_endpoint(
        self, endpoint_id: str, changes: Mapping[str, Any]
    ) -> WebhookEndpoint | None:
        unknown = set(changes) - MUTABLE_ENDPOINT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update endpoint fields: {sorted(unknown)}")

        async with self._lock:
            endpoint = self._endpoints.get(endpoint_id)
            if endpoint is None:
                return None
            for key, value in changes.items():
                setattr(endpoint, key, value)
            if "events" in changes:
                self._unindex_events(endpoint_id)
                self._index_events(endpoint_id, endpoint.events)
            return endpoint.model_copy(deep=True)

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        async with self._lock:
            if self._endpoints.pop(endpoint_id, None) is None:
                return False
            self._unindex_events(endpoint_id)
            for key in [k for k, e in self._queue.items() if e.webhook_id == endpoint_id]:
                del self._queue[key]
            for delivery_id in [
                d.id for d in self._deliveries.values() if d.webhook_id == endpoint_id
            ]:
                del self._deliveries[delivery_id]
            return True

    # Ledger and queue

    async def create_delivery(self, delivery: WebhookDelivery, entry: QueueEntry) -> None:
        async with self._lock:
            self._deliveries[delivery.id] = delivery.model_copy(deep=True)
            self._queue[entry.key] = entry.model_copy(deep=True)
            endpoint = self._endpoints.get(delivery.webhook_id)
            if endpoint is not None:
                endpoint.last_triggered_at = delivery.created_at

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery else None

    async def list_deliveries(
        self,
        webhook_id: str,
        limit: int = 100,
        status: DeliveryStatus | None = None,
    ) -> list[WebhookDelivery]:
        deliveries = [
            d
            for d in self._deliveries.values()
            if d.webhook_id == webhook_id and (status is None or d.status == status)
        ]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return [d.model_copy(deep=True) for d in deliveries[:limit]]

    async def delivery_stats(self, webhook_id: str) -> DeliveryStats:
        counts = {"pending": 0, "retrying": 0, "delivered": 0, "failed": 0}
        for delivery in self._deliveries.values():
            if delivery.webhook_id == webhook_id:
                counts[delivery.status] += 1
        return DeliveryStats(total=sum(counts.values()), **counts)

    async def claim_due(self, now: datetime, limit: int) -> list[QueueEntry]:
        async with self._lock:
            due = [
                entry
                for entry in self._queue.values()
                if entry.scheduled_at <= now and self._endpoint_active(entry.webhook_id)
            ]
            due.sort(key=lambda e: (-e.priority, e.created_at))
            claimed = due[:limit]
            for entry in claimed:
                del self._queue[entry.key]
            return claimed

    async def queue_entries(self, delivery_id: str) -> list[QueueEntry]:
        return [
            e.model_copy(deep=True) for e in self._queue.values() if e.delivery_id == delivery_id
        ]

    async def complete_success(
        self, delivery_id: str, outcome: DeliveryOutcome, now: datetime
    ) -> WebhookDelivery | None:
        async with self._lock:
            delivery = self._deliveries.get(delivery_id)
            if delivery is None or delivery.is_terminal:
                return None
            delivery.record_success(outcome, now)
            self._drop_queue_entries(delivery_id)

            endpoint = self._endpoints.get(delivery.webhook_id)
            if endpoint is not None:
                endpoint.success_count += 1
                endpoint.last_success_at = now
                endpoint.updated_at = now
            return delivery.model_copy(deep=True)

    async def complete_failure(
        self,
        delivery_id: str,
        outcome: DeliveryOutcome,
        policy: RetryPolicy,
        now: datetime,
    ) -> WebhookDelivery | None:
        async with self._lock:
            delivery = self._deliveries.get(delivery_id)
            if delivery is None or delivery.is_terminal:
                return None
            endpoint = self._endpoints.get(delivery.webhook_id)
            if endpoint is None:
                return None

            retry_entry = delivery.record_failure(outcome, endpoint.max_retries, policy, now)
            if retry_entry is not None:
                self._queue[retry_entry.key] = retry_entry
            else:
                self._drop_queue_entries(delivery_id)
                endpoint.failure_count += 1
                endpoint.last_failure_at = now
                endpoint.updated_at = now
            return delivery.model_copy(deep=True)

    async def purge_terminal(self, created_before: datetime) -> int:
        async with self._lock:
            expired = [
                d.id
                for d in self._deliveries.values()
                if d.is_terminal and d.created_at < created_before
            ]
            for delivery_id in expired:
                del self._deliveries[delivery_id]
                self._drop_queue_entries(delivery_id)
            return len(expired)

    # Helpers (callers hold the lock)

    def _endpoint_active(self, endpoint_id: str) -> bool:
        endpoint = self._endpoints.get(endpoint_id)
        return endpoint is not None and endpoint.is_active

    def _index_events(self, endpoint_id: str, events: list[str]) -> None:
        for event in events:
            self._event_index.setdefault(event, set()).add(endpoint_id)

    def _unindex_events(self, endpoint_id: str) -> None:
        for event in list(self._event_index):
            subscribers = self._event_index[event]
            subscribers.discard(endpoint_id)
            if not subscribers:
                del self._event_index[event]

    def _drop_queue_entries(self, delivery_id: str) -> None:
        for key in [k for k in self._queue if k[0] == delivery_id]:
            del self._queue[key]
