"""Delivery ledger and queue models.

A delivery is one attempt-lineage of sending a single triggered event to a
single endpoint. It moves through a small state machine:

    pending -> delivered
    pending -> retrying -> ... -> delivered | failed

The transition methods below are the only place the state machine lives;
storage backends load a delivery, call one of them and persist the result
as a single read-modify-write unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, isoformat_z, utc_now

if TYPE_CHECKING:
    from courier.webhooks.retry import RetryPolicy

DeliveryStatus = Literal["pending", "retrying", "delivered", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"delivered", "failed"})


def build_envelope(
    webhook_id: str,
    event: str,
    data: dict[str, Any],
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    """Build the JSON envelope POSTed to receivers.

    Shape: ``{event, timestamp, webhookId, data}`` with an ISO-8601 timestamp.
    """
    return {
        "event": event,
        "timestamp": isoformat_z(timestamp or utc_now()),
        "webhookId": webhook_id,
        "data": data,
    }


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of a single HTTP delivery attempt."""

    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error: str | None = None
    duration_ms: int = 0


class QueueEntry(BaseModel):
    """An ephemeral unit of work: attempt this delivery at ``scheduled_at``.

    Entries are keyed by ``(delivery_id, attempt)``: attempt 0 is the initial
    entry, attempt N the retry scheduled after the N-th failed attempt.
    """

    model_config = ConfigDict(extra="forbid")

    delivery_id: str
    attempt: int = Field(default=0, ge=0)
    webhook_id: str
    event: str
    payload: dict[str, Any]
    scheduled_at: datetime = Field(default_factory=utc_now)
    priority: int = 0
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, int]:
        return (self.delivery_id, self.attempt)


class WebhookDelivery(BaseModel):
    """Ledger record of a delivery and its latest attempt.

    Attributes:
        id: Unique identifier (``whd_`` prefix).
        webhook_id: Owning endpoint.
        event: Event name.
        payload: Exact envelope sent to the receiver.
        status: pending, retrying, delivered or failed.
        attempt_count: Attempts made so far (starts at 0).
        next_retry_at: When the next attempt is due (only while retrying).
        response_status: HTTP status of the last attempt.
        response_body: Truncated body of the last response.
        error: Last failure message.
        duration_ms: Latency of the last attempt.
        created_at: When the delivery was queued.
        completed_at: When the delivery reached a terminal status.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whd"))
    webhook_id: str
    event: str
    payload: dict[str, Any]
    status: DeliveryStatus = "pending"
    attempt_count: int = Field(default=0, ge=0)
    next_retry_at: datetime | None = None
    response_status: int | None = None
    response_body: str | None = None
    error: str | None = None
    duration_ms: int | None = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def initial_queue_entry(self, priority: int = 0) -> QueueEntry:
        """Queue entry for the first attempt, due immediately."""
        return QueueEntry(
            delivery_id=self.id,
            attempt=0,
            webhook_id=self.webhook_id,
            event=self.event,
            payload=self.payload,
            scheduled_at=self.created_at,
            priority=priority,
            created_at=self.created_at,
        )

    def record_success(self, outcome: DeliveryOutcome, now: datetime) -> WebhookDelivery:
        """Apply a 2xx attempt: the delivery becomes ``delivered``."""
        self._ensure_open()
        self._record_attempt(outcome)
        self.status = "delivered"
        self.next_retry_at = None
        self.completed_at = now
        return self

    def record_failure(
        self,
        outcome: DeliveryOutcome,
        max_retries: int,
        policy: RetryPolicy,
        now: datetime,
    ) -> QueueEntry | None:
        """Apply a failed attempt.

        Returns the retry queue entry when budget remains, otherwise marks the
        delivery ``failed`` and returns None.
        """
        self._ensure_open()
        self._record_attempt(outcome)

        if self.attempt_count < max_retries:
            self.status = "retrying"
            self.next_retry_at = policy.next_retry_at(self.attempt_count, now)
            return QueueEntry(
                delivery_id=self.id,
                attempt=self.attempt_count,
                webhook_id=self.webhook_id,
                event=self.event,
                payload=self.payload,
                scheduled_at=self.next_retry_at,
                created_at=now,
            )

        self.status = "failed"
        self.next_retry_at = None
        self.completed_at = now
        return None

    def _record_attempt(self, outcome: DeliveryOutcome) -> None:
        self.attempt_count += 1
        self.response_status = outcome.status_code
        self.response_body = outcome.response_body
        self.duration_ms = outcome.duration_ms
        self.error = outcome.error

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise ValueError(f"Delivery {self.id} is already {self.status}")


class DeliveryStats(BaseModel):
    """Per-endpoint delivery counts by status."""

    model_config = ConfigDict(extra="forbid")

    total: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    retrying: int = Field(default=0, ge=0)
    delivered: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)


__all__ = [
    "DeliveryOutcome",
    "DeliveryStats",
    "DeliveryStatus",
    "QueueEntry",
    "TERMINAL_STATUSES",
    "WebhookDelivery",
    "build_envelope",
]
