"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta

import httpx
import pytest
import pytest_asyncio

from courier.config import Settings
from courier.service import WebhookService
from courier.storage import InMemoryWebhookStore, SQLWebhookStore, WebhookStore
from courier.webhooks import DeliveryExecutor

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Manually advanced clock for deterministic backoff and retention."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingTransport:
    """httpx mock transport that records requests and replays scripted responses.

    Each script item is a status code, an exception instance, or a callable
    taking the request. When the script runs out, ``default_status`` is used.
    """

    def __init__(self, default_status: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.script: list[int | Exception | Callable[[httpx.Request], httpx.Response]] = []
        self.default_status = default_status
        self.mock = httpx.MockTransport(self._handle)

    def respond_with(self, *items: int | Exception | Callable[[httpx.Request], httpx.Response]) -> None:
        self.script.extend(items)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.script.pop(0) if self.script else self.default_status
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return httpx.Response(item, text="ok" if 200 <= item < 300 else "error")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with short, easy-to-assert backoff."""
    return Settings(
        _env_file=None,
        env="test",
        storage_backend="memory",
        retry_delay_ms=1000,
        max_retry_delay_ms=60_000,
    )


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request: pytest.FixtureRequest) -> AsyncIterator[WebhookStore]:
    """Every store contract test runs against both backends."""
    backend: WebhookStore
    if request.param == "memory":
        backend = InMemoryWebhookStore()
    else:
        backend = SQLWebhookStore(TEST_DATABASE_URL)
    await backend.initialize()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def http_client(transport: RecordingTransport) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=transport.mock) as client:
        yield client


@pytest.fixture
def executor(http_client: httpx.AsyncClient, test_settings: Settings) -> DeliveryExecutor:
    return DeliveryExecutor(
        timeout_seconds=test_settings.delivery_timeout_seconds,
        user_agent=test_settings.user_agent,
        response_body_limit=test_settings.response_body_limit,
        client=http_client,
    )


@pytest_asyncio.fixture
async def service(
    store: WebhookStore,
    test_settings: Settings,
    executor: DeliveryExecutor,
    clock: FakeClock,
) -> AsyncIterator[WebhookService]:
    svc = WebhookService(store=store, settings=test_settings, executor=executor, clock=clock)
    yield svc
    await svc.stop()
