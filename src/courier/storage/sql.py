"""SQLAlchemy async implementation of WebhookStore.

Every operation runs in its own transaction. The ledger transitions reuse the
state machine on WebhookDelivery: load the row, apply the transition to a
model, write the model back together with queue and endpoint changes.

Example:
    ```python
    store = SQLWebhookStore("sqlite+aiosqlite:///./data/webhooks.db")
    await store.initialize()
    entries = await store.claim_due(utc_now(), limit=10)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager, nullcontext
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy import event as sa_event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from courier.exceptions import ConfigurationError
from courier.models import (
    TERMINAL_STATUSES,
    DeliveryStats,
    QueueEntry,
    WebhookDelivery,
    WebhookEndpoint,
)

from .base import MUTABLE_ENDPOINT_FIELDS, WebhookStore
from .retry import storage_operation
from .tables import Base, DeliveryRow, EndpointEventRow, EndpointRow, QueueRow, row_values

if TYPE_CHECKING:
    from courier.models import DeliveryOutcome, DeliveryStatus
    from courier.webhooks.retry import RetryPolicy

logger = logging.getLogger(__name__)


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine, tuning the pool for SQLite.

    In-memory SQLite shares one connection (StaticPool) so every session sees
    the same database; file databases get their parent directory created.

    Raises:
        ConfigurationError: If the URL cannot be parsed or has no async driver.
    """
    try:
        parsed: URL = make_url(url)
    except ArgumentError as e:
        raise ConfigurationError(f"Invalid database URL {url!r}: {e}") from e

    kwargs: dict[str, Any] = {"echo": echo}
    is_sqlite = parsed.get_backend_name() == "sqlite"
    if is_sqlite:
        database = parsed.database
        if not database or database == ":memory:":
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    else:
        kwargs["pool_pre_ping"] = True

    try:
        engine = create_async_engine(parsed, **kwargs)
    except (ArgumentError, InvalidRequestError) as e:
        raise ConfigurationError(f"Unsupported database URL {url!r}: {e}") from e

    if is_sqlite:
        # SQLite leaves foreign keys off unless asked per connection
        @sa_event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def _endpoint(row: EndpointRow) -> WebhookEndpoint:
    return WebhookEndpoint.model_validate(row_values(row))


def _delivery(row: DeliveryRow) -> WebhookDelivery:
    return WebhookDelivery.model_validate(row_values(row))


def _queue_entry(row: QueueRow) -> QueueEntry:
    return QueueEntry.model_validate(row_values(row))


class SQLWebhookStore(WebhookStore):
    """WebhookStore backed by a relational database through SQLAlchemy.

    Attributes:
        engine: The async engine in use.
    """

    def __init__(
        self,
        url: str = "sqlite+aiosqlite:///./data/webhooks.db",
        echo: bool = False,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.engine = engine or create_engine_for_url(url, echo=echo)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        # One shared connection cannot hold two transactions at once
        self._serialized = isinstance(self.engine.pool, StaticPool)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create tables that do not exist yet."""
        async with self._exclusive():
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Webhook store initialized at %s", self.engine.url.render_as_string())

    async def close(self) -> None:
        await self.engine.dispose()

    def _exclusive(self) -> AbstractAsyncContextManager[Any]:
        return self._lock if self._serialized else nullcontext()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._exclusive(), self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._exclusive(), self._session_factory.begin() as session:
            yield session

    # Endpoints

    @storage_operation
    async def insert_endpoint(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        async with self._transaction() as session:
            session.add(EndpointRow(**endpoint.model_dump()))
            await session.flush()
            session.add_all(
                EndpointEventRow(endpoint_id=endpoint.id, event=name) for name in endpoint.events
            )
        return endpoint

    @storage_operation
    async def get_endpoint(self, endpoint_id: str) -> WebhookEndpoint | None:
        async with self._session() as session:
            row = await session.get(EndpointRow, endpoint_id)
            return _endpoint(row) if row else None

    @storage_operation
    async def list_endpoints_by_user(self, user_id: str) -> list[WebhookEndpoint]:
        stmt = (
            select(EndpointRow)
            .where(EndpointRow.user_id == user_id)
            .order_by(EndpointRow.created_at.desc())
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [_endpoint(row) for row in rows]

    @storage_operation
    async def list_endpoints_for_event(
        self, event: str, user_id: str | None = None
    ) -> list[WebhookEndpoint]:
        stmt = (
            select(EndpointRow)
            .join(EndpointEventRow, EndpointEventRow.endpoint_id == EndpointRow.id)
            .where(EndpointEventRow.event == event, EndpointRow.status == "active")
            .order_by(EndpointRow.created_at.asc())
        )
        if user_id is not None:
            stmt = stmt.where(EndpointRow.user_id == user_id)
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [_endpoint(row) for row in rows]

    @storage_operation
    async def update_endpoint(
        self, endpoint_id: str, changes: Mapping[str, Any]
    ) -> WebhookEndpoint | None:
        unknown = set(changes) - MUTABLE_ENDPOINT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update endpoint fields: {sorted(unknown)}")

        async with self._transaction() as session:
            row = await session.get(EndpointRow, endpoint_id, with_for_update=True)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            if "events" in changes:
                await session.execute(
                    delete(EndpointEventRow).where(EndpointEventRow.endpoint_id == endpoint_id)
                )
                session.add_all(
                    EndpointEventRow(endpoint_id=endpoint_id, event=name)
                    for name in changes["events"]
                )
            await session.flush()
            return _endpoint(row)

    @storage_operation
    async def delete_endpoint(self, endpoint_id: str) -> bool:
        async with self._transaction() as session:
            # Children first so backends without enforced cascades stay consistent
            await session.execute(delete(QueueRow).where(QueueRow.webhook_id == endpoint_id))
            await session.execute(delete(DeliveryRow).where(DeliveryRow.webhook_id == endpoint_id))
            await session.execute(
                delete(EndpointEventRow).where(EndpointEventRow.endpoint_id == endpoint_id)
            )
            result = await session.execute(delete(EndpointRow).where(EndpointRow.id == endpoint_id))
            return bool(result.rowcount)

    # Ledger and queue

    @storage_operation
    async def create_delivery(self, delivery: WebhookDelivery, entry: QueueEntry) -> None:
        async with self._transaction() as session:
            session.add(DeliveryRow(**delivery.model_dump()))
            await session.flush()
            session.add(QueueRow(**entry.model_dump()))
            await session.execute(
                update(EndpointRow)
                .where(EndpointRow.id == delivery.webhook_id)
                .values(last_triggered_at=delivery.created_at)
                .execution_options(synchronize_session=False)
            )

    @storage_operation
    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        async with self._session() as session:
            row = await session.get(DeliveryRow, delivery_id)
            return _delivery(row) if row else None

    @storage_operation
    async def list_deliveries(
        self,
        webhook_id: str,
        limit: int = 100,
        status: DeliveryStatus | None = None,
    ) -> list[WebhookDelivery]:
        stmt = select(DeliveryRow).where(DeliveryRow.webhook_id == webhook_id)
        if status is not None:
            stmt = stmt.where(DeliveryRow.status == status)
        stmt = stmt.order_by(DeliveryRow.created_at.desc()).limit(limit)
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [_delivery(row) for row in rows]

    @storage_operation
    async def delivery_stats(self, webhook_id: str) -> DeliveryStats:
        stmt = (
            select(DeliveryRow.status, func.count())
            .where(DeliveryRow.webhook_id == webhook_id)
            .group_by(DeliveryRow.status)
        )
        async with self._session() as session:
            counts = {status: count for status, count in (await session.execute(stmt)).all()}
        return DeliveryStats(total=sum(counts.values()), **counts)

    @storage_operation
    async def claim_due(self, now: datetime, limit: int) -> list[QueueEntry]:
        stmt = (
            select(QueueRow)
            .join(EndpointRow, EndpointRow.id == QueueRow.webhook_id)
            .where(QueueRow.scheduled_at <= now, EndpointRow.status == "active")
            .order_by(QueueRow.priority.desc(), QueueRow.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True, of=QueueRow)
        )
        claimed: list[QueueEntry] = []
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            for row in rows:
                entry = _queue_entry(row)
                # A concurrent claimer may have taken the row between select and delete
                result = await session.execute(
                    delete(QueueRow)
                    .where(QueueRow.delivery_id == entry.delivery_id, QueueRow.attempt == entry.attempt)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    claimed.append(entry)
        return claimed

    @storage_operation
    async def queue_entries(self, delivery_id: str) -> list[QueueEntry]:
        stmt = (
            select(QueueRow)
            .where(QueueRow.delivery_id == delivery_id)
            .order_by(QueueRow.attempt.asc())
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [_queue_entry(row) for row in rows]

    @storage_operation
    async def complete_success(
        self, delivery_id: str, outcome: DeliveryOutcome, now: datetime
    ) -> WebhookDelivery | None:
        async with self._transaction() as session:
            row = await session.get(DeliveryRow, delivery_id, with_for_update=True)
            if row is None:
                return None
            delivery = _delivery(row)
            if delivery.is_terminal:
                return None

            delivery.record_success(outcome, now)
            self._write_back(row, delivery)
            await self._drop_queue_entries(session, delivery_id)

            endpoint = await session.get(EndpointRow, delivery.webhook_id, with_for_update=True)
            if endpoint is not None:
                endpoint.success_count += 1
                endpoint.last_success_at = now
                endpoint.updated_at = now
            return delivery

    @storage_operation
    async def complete_failure(
        self,
        delivery_id: str,
        outcome: DeliveryOutcome,
        policy: RetryPolicy,
        now: datetime,
    ) -> WebhookDelivery | None:
        async with self._transaction() as session:
            row = await session.get(DeliveryRow, delivery_id, with_for_update=True)
            if row is None:
                return None
            delivery = _delivery(row)
            if delivery.is_terminal:
                return None
            endpoint = await session.get(EndpointRow, delivery.webhook_id, with_for_update=True)
            if endpoint is None:
                return None

            retry_entry = delivery.record_failure(outcome, endpoint.max_retries, policy, now)
            self._write_back(row, delivery)
            if retry_entry is not None:
                session.add(QueueRow(**retry_entry.model_dump()))
            else:
                await self._drop_queue_entries(session, delivery_id)
                endpoint.failure_count += 1
                endpoint.last_failure_at = now
                endpoint.updated_at = now
            return delivery

    @storage_operation
    async def purge_terminal(self, created_before: datetime) -> int:
        async with self._transaction() as session:
            result = await session.execute(
                delete(DeliveryRow)
                .where(
                    DeliveryRow.status.in_(TERMINAL_STATUSES),
                    DeliveryRow.created_at < created_before,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    @staticmethod
    def _write_back(row: DeliveryRow, delivery: WebhookDelivery) -> None:
        for key, value in delivery.model_dump(exclude={"id"}).items():
            setattr(row, key, value)

    @staticmethod
    async def _drop_queue_entries(session: AsyncSession, delivery_id: str) -> None:
        await session.execute(
            delete(QueueRow)
            .where(QueueRow.delivery_id == delivery_id)
            .execution_options(synchronize_session=False)
        )
