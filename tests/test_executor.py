"""Tests for the HTTP delivery executor."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from courier.models import WebhookEndpoint
from courier.webhooks import DeliveryExecutor
from courier.webhooks.signing import compute_signature

ENVELOPE = {
    "event": "order.created",
    "timestamp": "2026-01-15T12:00:00.000Z",
    "webhookId": "wh_abc",
    "data": {"orderId": 1, "note": "café"},
}


@pytest.fixture
def endpoint() -> WebhookEndpoint:
    return WebhookEndpoint(
        id="wh_abc",
        user_id="user_1",
        url="https://receiver.example.com/hook",
        secret="topsecret",
        events=["order.created"],
    )


class TestExecute:
    """Outcome classification."""

    @pytest.mark.asyncio
    async def test_success(self, executor, transport, endpoint):
        outcome = await executor.execute(endpoint, "order.created", ENVELOPE)

        assert outcome.success is True
        assert outcome.status_code == 200
        assert outcome.response_body == "ok"
        assert outcome.error is None
        assert outcome.duration_ms >= 0
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_any_2xx_is_success(self, executor, transport, endpoint):
        transport.respond_with(lambda request: httpx.Response(204))
        outcome = await executor.execute(endpoint, "order.created", ENVELOPE)
        assert outcome.success is True
        assert outcome.status_code == 204
        assert outcome.response_body is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (500, "HTTP 500: Internal Server Error"),
            (404, "HTTP 404: Not Found"),
            (302, "HTTP 302: Found"),
        ],
    )
    async def test_non_2xx_is_failure(self, executor, transport, endpoint, status, error):
        transport.respond_with(status)

        outcome = await executor.execute(endpoint, "order.created", ENVELOPE)

        assert outcome.success is False
        assert outcome.status_code == status
        assert outcome.error == error
        assert outcome.response_body == "error"

    @pytest.mark.asyncio
    async def test_timeout(self, executor, transport, endpoint):
        transport.respond_with(httpx.ReadTimeout("timed out"))

        outcome = await executor.execute(endpoint, "order.created", ENVELOPE)

        assert outcome.success is False
        assert outcome.status_code is None
        assert outcome.error == "Request timeout"

    @pytest.mark.asyncio
    async def test_connection_error(self, executor, transport, endpoint):
        transport.respond_with(httpx.ConnectError("connection refused"))

        outcome = await executor.execute(endpoint, "order.created", ENVELOPE)

        assert outcome.success is False
        assert outcome.error == "connection refused"

    @pytest.mark.asyncio
    async def test_response_body_truncated(self, http_client, transport, endpoint):
        transport.respond_with(lambda request: httpx.Response(200, text="x" * 50))
        executor = DeliveryExecutor(response_body_limit=10, client=http_client)

        outcome = await executor.execute(endpoint, "order.created", ENVELOPE)

        assert outcome.response_body == "x" * 10

    @pytest.mark.asyncio
    async def test_creates_client_per_attempt_without_shared_client(self, endpoint):
        response = MagicMock()
        response.status_code = 200
        response.text = "ok"
        response.is_success = True

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = AsyncMock()
            mock_client.post = AsyncMock(return_value=response)
            mock_client.__aenter__ = AsyncMock(return_value=mock_client)
            mock_client.__aexit__ = AsyncMock(return_value=None)
            mock_client_class.return_value = mock_client

            outcome = await DeliveryExecutor(timeout_seconds=5.0).execute(
                endpoint, "order.created", ENVELOPE
            )

        assert outcome.success is True
        mock_client_class.assert_called_once_with(timeout=5.0)
        mock_client.post.assert_awaited_once()


class TestRequest:
    """Wire format of the outbound request."""

    @pytest.mark.asyncio
    async def test_method_url_and_body(self, executor, transport, endpoint):
        await executor.execute(endpoint, "order.created", ENVELOPE)

        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://receiver.example.com/hook"
        assert json.loads(request.content) == ENVELOPE
        assert request.content == json.dumps(
            ENVELOPE, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @pytest.mark.asyncio
    async def test_standard_headers(self, executor, transport, endpoint):
        await executor.execute(endpoint, "order.created", ENVELOPE)

        headers = transport.requests[0].headers
        assert headers["Content-Type"] == "application/json"
        assert headers["User-Agent"] == "Courier-Webhook/1.0"
        assert headers["X-Webhook-ID"] == "wh_abc"
        assert headers["X-Event-Type"] == "order.created"

    @pytest.mark.asyncio
    async def test_signature_verifies_against_body(self, executor, transport, endpoint):
        await executor.execute(endpoint, "order.created", ENVELOPE)

        request = transport.requests[0]
        timestamp_part, digest_part = request.headers["X-Webhook-Signature"].split(",")
        timestamp = int(timestamp_part.removeprefix("t="))
        expected = compute_signature(request.content.decode("utf-8"), "topsecret", timestamp)
        assert digest_part == f"v1={expected}"

    @pytest.mark.asyncio
    async def test_custom_headers_merged_and_can_override_defaults(self, executor, transport):
        endpoint = WebhookEndpoint(
            id="wh_custom",
            user_id="user_1",
            url="https://receiver.example.com/hook",
            secret="topsecret",
            events=["order.created"],
            headers={"X-Tenant": "acme", "user-agent": "Custom/2.0"},
        )

        await executor.execute(endpoint, "order.created", ENVELOPE)

        headers = transport.requests[0].headers
        assert headers["X-Tenant"] == "acme"
        assert headers["User-Agent"] == "Custom/2.0"
        assert headers.get_list("User-Agent") == ["Custom/2.0"]

    @pytest.mark.asyncio
    async def test_signature_headers_cannot_be_overridden(self, executor, transport):
        endpoint = WebhookEndpoint(
            id="wh_spoof",
            user_id="user_1",
            url="https://receiver.example.com/hook",
            secret="topsecret",
            events=["order.created"],
            headers={"x-webhook-signature": "forged", "X-Event-Type": "other", "x-webhook-id": "x"},
        )

        await executor.execute(endpoint, "order.created", ENVELOPE)

        headers = transport.requests[0].headers
        assert headers.get_list("X-Webhook-Signature") != ["forged"]
        assert len(headers.get_list("X-Webhook-Signature")) == 1
        assert headers.get_list("X-Event-Type") == ["order.created"]
        assert headers.get_list("X-Webhook-ID") == ["wh_spoof"]
