"""Tests for WebhookService."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from courier.config import Settings
from courier.exceptions import ConfigurationError, ValidationError
from courier.models import EVENT_CATALOG, SECRET_PLACEHOLDER
from courier.service import TEST_EVENT_MESSAGE, WebhookService
from courier.storage import InMemoryWebhookStore, SQLWebhookStore
from courier.webhooks import WebhookObserver


class TestEndpointManagement:
    @pytest.mark.asyncio
    async def test_create_returns_secret_once(self, service: WebhookService):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )

        assert endpoint.secret != SECRET_PLACEHOLDER
        fetched = await service.get_webhook(endpoint.id)
        assert fetched.secret == SECRET_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_default_max_retries_from_settings(self, store, executor, clock):
        settings = Settings(_env_file=None, storage_backend="memory", webhook_max_retries=7)
        service = WebhookService(store=store, settings=settings, executor=executor, clock=clock)

        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )

        assert endpoint.max_retries == 7

    @pytest.mark.asyncio
    async def test_regenerate_secret_changes_stored_secret(self, service: WebhookService):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )
        before = (await service.get_webhook(endpoint.id, include_secret=True)).secret

        await service.regenerate_secret(endpoint.id)

        after = (await service.get_webhook(endpoint.id, include_secret=True)).secret
        assert after != before

    @pytest.mark.asyncio
    async def test_delete_nonexistent_returns_false(self, service: WebhookService):
        assert await service.delete_webhook("nonexistent") is False

    @pytest.mark.asyncio
    async def test_delete_removes_ledger(self, service: WebhookService):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )
        [delivery_id] = await service.trigger_event("order.created", {"orderId": 1})

        assert await service.delete_webhook(endpoint.id) is True

        assert await service.get_delivery(delivery_id) is None
        assert await service.get_deliveries(endpoint.id) == []

    @pytest.mark.asyncio
    async def test_update_validation_error(self, service: WebhookService):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )
        with pytest.raises(ValidationError):
            await service.update_webhook(endpoint.id, url="nope")


class TestTriggerEvent:
    @pytest.mark.asyncio
    async def test_creates_one_pending_delivery(self, service: WebhookService, clock):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )

        delivery_ids = await service.trigger_event("order.created", {"orderId": 1})

        assert len(delivery_ids) == 1
        delivery = await service.get_delivery(delivery_ids[0])
        assert delivery.status == "pending"
        assert delivery.attempt_count == 0
        assert delivery.webhook_id == endpoint.id
        assert delivery.payload == {
            "event": "order.created",
            "timestamp": "2026-01-15T12:00:00.000Z",
            "webhookId": endpoint.id,
            "data": {"orderId": 1},
        }
        entries = await service.store.queue_entries(delivery.id)
        assert [entry.key for entry in entries] == [(delivery.id, 0)]

    @pytest.mark.asyncio
    async def test_no_match_returns_empty(self, service: WebhookService):
        assert await service.trigger_event("order.created", {}) == []

    @pytest.mark.asyncio
    async def test_exact_match_only(self, service: WebhookService):
        await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created.v2"]
        )
        assert await service.trigger_event("order.created", {}) == []

    @pytest.mark.asyncio
    async def test_scoped_to_user(self, service: WebhookService):
        mine = await service.create_webhook("user_1", "https://example.com/a", ["order.created"])
        await service.create_webhook("user_2", "https://example.com/b", ["order.created"])

        scoped = await service.trigger_event("order.created", {}, user_id="user_1")
        unscoped = await service.trigger_event("order.created", {})

        assert len(scoped) == 1
        assert (await service.get_delivery(scoped[0])).webhook_id == mine.id
        assert len(unscoped) == 2

    @pytest.mark.asyncio
    async def test_disabled_endpoints_skipped(self, service: WebhookService):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )
        await service.update_webhook(endpoint.id, status="disabled")

        assert await service.trigger_event("order.created", {}) == []

    @pytest.mark.asyncio
    async def test_notifies_observers(self, service: WebhookService):
        observer = MagicMock(spec=WebhookObserver)
        service.add_observer(observer)
        await service.create_webhook("user_1", "https://example.com/a", ["order.created"])
        await service.create_webhook("user_1", "https://example.com/b", ["order.created"])

        await service.trigger_event("order.created", {}, user_id="user_1")

        observer.event_triggered.assert_called_once_with("order.created", "user_1", 2)

    @pytest.mark.asyncio
    async def test_priority_dispatched_first(self, service: WebhookService, transport):
        await service.create_webhook("user_1", "https://example.com/hook", ["low", "high"])
        await service.trigger_event("low", {}, priority=0)
        await service.trigger_event("high", {}, priority=5)

        await service.scheduler.run_once()

        events = [request.headers["X-Event-Type"] for request in transport.requests]
        assert events == ["high", "low"]


class TestSendTestEvent:
    @pytest.mark.asyncio
    async def test_default_payload(self, service: WebhookService, transport):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )
        other = await service.create_webhook(
            "user_1", "https://example.com/other", ["order.created"]
        )

        delivery_id = await service.send_test_event(endpoint.id, "order.created")
        await service.scheduler.run_once()

        assert len(transport.requests) == 1
        body = json.loads(transport.requests[0].content)
        assert body["webhookId"] == endpoint.id
        assert body["data"] == {
            "test": True,
            "message": TEST_EVENT_MESSAGE,
            "timestamp": "2026-01-15T12:00:00.000Z",
        }
        assert (await service.get_delivery(delivery_id)).status == "delivered"
        assert await service.get_deliveries(other.id) == []

    @pytest.mark.asyncio
    async def test_custom_payload_and_unsubscribed_event(self, service: WebhookService):
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"]
        )

        delivery_id = await service.send_test_event(endpoint.id, "ping", {"hello": "world"})

        delivery = await service.get_delivery(delivery_id)
        assert delivery.event == "ping"
        assert delivery.payload["data"] == {"hello": "world"}

    @pytest.mark.asyncio
    async def test_missing_endpoint(self, service: WebhookService):
        assert await service.send_test_event("wh_missing", "order.created") is None


class TestLedgerQueries:
    @pytest.mark.asyncio
    async def test_deliveries_and_stats(self, store, executor, transport, clock):
        settings = Settings(_env_file=None, storage_backend="memory", scheduler_batch_size=2)
        service = WebhookService(store=store, settings=settings, executor=executor, clock=clock)
        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"], max_retries=1
        )
        transport.respond_with(200, 500)
        first = await service.trigger_event("order.created", {"n": 1})
        clock.advance(seconds=1)
        second = await service.trigger_event("order.created", {"n": 2})
        clock.advance(seconds=1)
        third = await service.trigger_event("order.created", {"n": 3})

        await service.scheduler.run_once()

        deliveries = await service.get_deliveries(endpoint.id)
        assert [d.id for d in deliveries] == third + second + first
        failed = await service.get_deliveries(endpoint.id, status="failed")
        assert [d.id for d in failed] == second
        assert len(await service.get_deliveries(endpoint.id, limit=1)) == 1

        stats = await service.get_delivery_stats(endpoint.id)
        assert (stats.total, stats.delivered, stats.failed, stats.pending) == (3, 1, 1, 1)

    def test_list_event_types(self, test_settings):
        service = WebhookService(store=InMemoryWebhookStore(), settings=test_settings)
        assert service.list_event_types() == list(EVENT_CATALOG)


class TestLifecycle:
    def test_create_memory_backend(self, test_settings):
        service = WebhookService.create(test_settings)
        assert isinstance(service.store, InMemoryWebhookStore)
        assert service.scheduler.interval_seconds == test_settings.scheduler_interval_seconds

    def test_create_sql_backend(self):
        settings = Settings(
            _env_file=None, storage_backend="sql", database_url="sqlite+aiosqlite:///:memory:"
        )
        service = WebhookService.create(settings)
        assert isinstance(service.store, SQLWebhookStore)

    def test_create_rejects_bad_database_url(self):
        settings = Settings(_env_file=None, storage_backend="sql", database_url="nonsense")
        with pytest.raises(ConfigurationError):
            WebhookService.create(settings)

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self, test_settings):
        async with WebhookService.create(test_settings) as service:
            await service.start()
            assert service.scheduler.is_running
            assert service.retention.is_running

        assert not service.scheduler.is_running
        assert not service.retention.is_running


class TestObserverWiring:
    @pytest.mark.asyncio
    async def test_observer_added_after_construction_receives_every_hook(
        self, service: WebhookService, transport, clock
    ):
        observer = MagicMock(spec=WebhookObserver)
        service.add_observer(observer)

        endpoint = await service.create_webhook(
            "user_1", "https://example.com/hook", ["order.created"], max_retries=2
        )
        await service.update_webhook(endpoint.id, description="orders")
        await service.regenerate_secret(endpoint.id)

        transport.respond_with(500, 500, 200)
        await service.trigger_event("order.created", {"n": 1})
        await service.scheduler.run_once()
        clock.advance(seconds=1)
        await service.scheduler.run_once()
        await service.trigger_event("order.created", {"n": 2})
        await service.scheduler.run_once()

        clock.advance(days=31)
        await service.retention.run_once()
        await service.delete_webhook(endpoint.id)

        observer.webhook_created.assert_called_once()
        observer.webhook_updated.assert_called_once()
        observer.secret_regenerated.assert_called_once_with(endpoint.id)
        assert observer.event_triggered.call_count == 2
        observer.delivery_retrying.assert_called_once()
        observer.delivery_failed.assert_called_once()
        observer.delivery_succeeded.assert_called_once()
        observer.cleanup_completed.assert_called_once_with(2)
        observer.webhook_deleted.assert_called_once_with(endpoint.id)

    def test_components_share_the_service_registry(self, test_settings):
        service = WebhookService(store=InMemoryWebhookStore(), settings=test_settings)

        assert service.registry._observers is service.observers
        assert service.scheduler._observers is service.observers
        assert service.retention._observers is service.observers
