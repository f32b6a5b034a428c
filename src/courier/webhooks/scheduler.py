"""Delivery scheduler: drains due queue entries into the executor.

Each tick claims up to ``batch_size`` due entries (claiming removes them from
the queue), attempts each one and records the outcome through the store's
ledger transitions. A crash between claim and transition loses that attempt's
entry but never the delivery row, which still shows its last state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from courier.logging import bind_context, unbind_context
from courier.models import DeliveryOutcome, QueueEntry, WebhookDelivery, utc_now
from courier.storage import WebhookStore

from .executor import DeliveryExecutor
from .observers import ObserverRegistry
from .retry import RetryPolicy
from .worker import PeriodicWorker

logger = structlog.get_logger(__name__)


class DeliveryScheduler(PeriodicWorker):
    """Ticks over the queue and dispatches due attempts.

    Example:
        ```python
        scheduler = DeliveryScheduler(store, DeliveryExecutor())
        await scheduler.start()
        ...
        await scheduler.stop()  # waits for the current tick
        ```
    """

    name = "scheduler"

    def __init__(
        self,
        store: WebhookStore,
        executor: DeliveryExecutor,
        policy: RetryPolicy | None = None,
        observers: ObserverRegistry | None = None,
        batch_size: int = 10,
        interval_seconds: float = 1.0,
        concurrency: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Queue and ledger.
            executor: Sends one attempt.
            policy: Backoff for failed attempts.
            observers: Receives delivery_* notifications.
            batch_size: Maximum entries claimed per tick.
            interval_seconds: Seconds between ticks.
            concurrency: Attempts in flight at once within a tick.
            clock: Source of "now"; injectable for tests.
        """
        super().__init__(interval_seconds)
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._store = store
        self._executor = executor
        self._policy = policy or RetryPolicy()
        self._observers = observers if observers is not None else ObserverRegistry()
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._clock = clock

    async def run_once(self) -> int:
        """Run one tick; returns the number of entries claimed and processed."""
        entries = await self._store.claim_due(self._clock(), self._batch_size)
        if not entries:
            return 0

        if self._concurrency == 1:
            for entry in entries:
                await self._process(entry)
        else:
            semaphore = asyncio.Semaphore(self._concurrency)

            async def bounded(entry: QueueEntry) -> None:
                async with semaphore:
                    await self._process(entry)

            await asyncio.gather(*(bounded(entry) for entry in entries))

        logger.debug("scheduler_tick", processed=len(entries))
        return len(entries)

    async def _process(self, entry: QueueEntry) -> None:
        bind_context(delivery_id=entry.delivery_id, attempt=entry.attempt)
        try:
            await self._deliver(entry)
        except Exception as e:
            logger.exception(
                "delivery_processing_failed",
                delivery_id=entry.delivery_id,
                webhook_id=entry.webhook_id,
                attempt=entry.attempt,
            )
            try:
                delivery = await self._store.complete_failure(
                    entry.delivery_id,
                    DeliveryOutcome(success=False, error=f"Processing error: {e}"),
                    self._policy,
                    self._clock(),
                )
                if delivery is not None:
                    await self._notify_failure(delivery)
            except Exception:
                logger.exception(
                    "delivery_failure_not_recorded", delivery_id=entry.delivery_id
                )
        finally:
            unbind_context("delivery_id", "attempt")

    async def _deliver(self, entry: QueueEntry) -> None:
        delivery = await self._store.get_delivery(entry.delivery_id)
        if delivery is None or delivery.is_terminal:
            logger.debug("queue_entry_skipped", delivery_id=entry.delivery_id, reason="delivery")
            return
        # Loaded per attempt so a rotated secret applies to pending retries
        endpoint = await self._store.get_endpoint(entry.webhook_id)
        if endpoint is None:
            logger.debug("queue_entry_skipped", delivery_id=entry.delivery_id, reason="endpoint")
            return

        outcome = await self._executor.execute(endpoint, entry.event, entry.payload)
        now = self._clock()

        if outcome.success:
            updated = await self._store.complete_success(entry.delivery_id, outcome, now)
            if updated is None:
                return
            logger.info(
                "delivery_succeeded",
                delivery_id=updated.id,
                webhook_id=updated.webhook_id,
                attempt=updated.attempt_count,
                status_code=outcome.status_code,
                duration_ms=outcome.duration_ms,
            )
            await self._observers.notify("delivery_succeeded", updated)
            return

        updated = await self._store.complete_failure(entry.delivery_id, outcome, self._policy, now)
        if updated is not None:
            await self._notify_failure(updated)

    async def _notify_failure(self, delivery: WebhookDelivery) -> None:
        if delivery.status == "retrying":
            logger.info(
                "delivery_retrying",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                attempt=delivery.attempt_count,
                status_code=delivery.response_status,
                error=delivery.error,
                next_retry_at=delivery.next_retry_at.isoformat() if delivery.next_retry_at else None,
            )
            await self._observers.notify("delivery_retrying", delivery)
        else:
            logger.warning(
                "delivery_failed",
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                attempt=delivery.attempt_count,
                status_code=delivery.response_status,
                error=delivery.error,
            )
            await self._observers.notify("delivery_failed", delivery)
