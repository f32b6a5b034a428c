"""Periodic purge of delivered and failed ledger rows."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from courier.models import utc_now
from courier.storage import WebhookStore

from .observers import ObserverRegistry
from .worker import PeriodicWorker

logger = structlog.get_logger(__name__)


class RetentionWorker(PeriodicWorker):
    """Deletes terminal deliveries older than ``retention_days``.

    Pending and retrying deliveries are never purged, however old.
    """

    name = "retention"

    def __init__(
        self,
        store: WebhookStore,
        retention_days: int = 30,
        interval_seconds: float = 3600.0,
        observers: ObserverRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(interval_seconds)
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        self._store = store
        self._retention = timedelta(days=retention_days)
        self._observers = observers if observers is not None else ObserverRegistry()
        self._clock = clock

    async def run_once(self) -> int:
        cutoff = self._clock() - self._retention
        count = await self._store.purge_terminal(cutoff)
        if count:
            logger.info("deliveries_purged", count=count, cutoff=cutoff.isoformat())
        await self._observers.notify("cleanup_completed", count)
        return count
