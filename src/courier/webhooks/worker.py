"""Periodic in-process worker loop shared by the scheduler and retention.

Subclasses implement ``run_once``; the loop calls it every
``interval_seconds`` until ``stop()``. A failing tick is logged and the loop
keeps going.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class PeriodicWorker(ABC):
    """Runs ``run_once`` on a fixed interval in a background task."""

    name = "worker"

    def __init__(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def run_once(self) -> int:
        """Run one tick; returns the number of items handled."""

    async def start(self) -> None:
        """Start the loop; a second call while running is ignored."""
        if self.is_running:
            logger.warning("worker_already_running", worker=self.name)
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=f"courier-{self.name}")

    async def stop(self) -> None:
        """Stop the loop, letting an in-flight tick finish."""
        if self._task is None:
            return
        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None

    async def _loop(self) -> None:
        logger.info("worker_started", worker=self.name, interval_seconds=self.interval_seconds)
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("worker_tick_failed", worker=self.name)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass
        logger.info("worker_stopped", worker=self.name)
