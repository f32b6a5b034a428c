"""Repository interface for endpoints, the delivery ledger and the queue.

Every backend must provide the same guarantees:

- ``claim_due`` removes the entries it returns in the same atomic unit that
  selected them, so an attempt is handed out at most once.
- ``complete_success`` / ``complete_failure`` load a delivery, apply one state
  machine transition and persist the delivery, the follow-up queue entry and
  the endpoint counters together.
- Deleting an endpoint removes its event subscriptions, deliveries and queue
  entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from courier.models import (
        DeliveryOutcome,
        DeliveryStats,
        DeliveryStatus,
        QueueEntry,
        WebhookDelivery,
        WebhookEndpoint,
    )
    from courier.webhooks.retry import RetryPolicy

# Endpoint fields that update_endpoint may change
MUTABLE_ENDPOINT_FIELDS = frozenset(
    {
        "url",
        "events",
        "status",
        "description",
        "headers",
        "max_retries",
        "secret",
        "updated_at",
    }
)


class WebhookStore(ABC):
    """Abstract persistent store behind the webhook subsystem."""

    async def initialize(self) -> None:
        """Prepare the backend (create schema, open connections)."""

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> WebhookStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Endpoints

    @abstractmethod
    async def insert_endpoint(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        """Persist a new endpoint and its event subscriptions."""

    @abstractmethod
    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        """Fetch an endpoint including its secret."""

    @abstractmethod
    async def list_endpoints_by_user(self, user_id: str) -> list[WebhookEndpoint]:
        """All endpoints owned by ``user_id``, newest first."""

    @abstractmethod
    async def list_endpoints_for_event(
        self, event: str, user_id: str | None = None
    ) -> list[WebhookEndpoint]:
        """Active endpoints subscribed to exactly ``event``, oldest first."""

    @abstractmethod
    async def update_endpoint(
        self, endpoint_id: str, changes: Mapping[str, Any]
    ) -> WebhookEndpoint | None:
        """Apply ``changes`` (keys from MUTABLE_ENDPOINT_FIELDS); None if missing."""

    @abstractmethod
    async def delete_endpoint(self, endpoint_id: str) -> bool:
        """Hard delete an endpoint and everything that references it."""

    # Ledger and queue

    @abstractmethod
    async def create_delivery(self, delivery: WebhookDelivery, entry: QueueEntry) -> None:
        """Insert a delivery row with its first queue entry and touch the endpoint."""

    @abstractmethod
    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Fetch one delivery."""

    @abstractmethod
    async def list_deliveries(
        self,
        webhook_id: str,
        limit: int = 100,
        status: DeliveryStatus | None = None,
    ) -> list[WebhookDelivery]:
        """Deliveries for an endpoint, newest first."""

    @abstractmethod
    async def delivery_stats(self, webhook_id: str) -> DeliveryStats:
        """Delivery counts by status for an endpoint."""

    @abstractmethod
    async def claim_due(self, now: datetime, limit: int) -> list[QueueEntry]:
        """Atomically remove and return due entries on active endpoints.

        Ordered by ``(priority desc, created_at asc)``.
        """

    @abstractmethod
    async def queue_entries(self, delivery_id: str) -> list[QueueEntry]:
        """Queue entries currently referencing a delivery (inspection only)."""

    @abstractmethod
    async def complete_success(
        self, delivery_id: str, outcome: DeliveryOutcome, now: datetime
    ) -> WebhookDelivery | None:
        """Mark a delivery delivered; None if missing or already terminal."""

    @abstractmethod
    async def complete_failure(
        self,
        delivery_id: str,
        outcome: DeliveryOutcome,
        policy: RetryPolicy,
        now: datetime,
    ) -> WebhookDelivery | None:
        """Record a failed attempt and either re-enqueue or finalize.

        The retry budget is the owning endpoint's current ``max_retries``.
        Returns None if the delivery is missing or already terminal.
        """

    @abstractmethod
    async def purge_terminal(self, created_before: datetime) -> int:
        """Delete delivered/failed rows created before the cutoff; return count."""
