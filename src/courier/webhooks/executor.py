"""Executes one signed HTTP delivery attempt.

The executor never raises for delivery problems: every HTTP status and
every transport error becomes a DeliveryOutcome.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from courier.models import DeliveryOutcome

from .signing import serialize_payload, signature_header

if TYPE_CHECKING:
    from courier.models import WebhookEndpoint

logger = structlog.get_logger(__name__)


class DeliveryExecutor:
    """POSTs envelopes to endpoints and classifies the result.

    Example:
        ```python
        executor = DeliveryExecutor(timeout_seconds=30.0)
        outcome = await executor.execute(endpoint, "video.completed", envelope)
        if not outcome.success:
            print(outcome.error)
        ```
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        user_agent: str = "Courier-Webhook/1.0",
        response_body_limit: int = 1000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            timeout_seconds: Total timeout for one attempt.
            user_agent: Default User-Agent header.
            response_body_limit: Characters of response body kept.
            client: Shared client to use; a short-lived client is created per
                attempt when omitted.
        """
        self._timeout = timeout_seconds
        self._user_agent = user_agent
        self._body_limit = response_body_limit
        self._client = client

    def build_headers(
        self, endpoint: WebhookEndpoint, event: str, body: str, timestamp: int | None = None
    ) -> httpx.Headers:
        """Defaults, then custom headers, then the signature/identity headers."""
        headers = httpx.Headers(
            {
                "Content-Type": "application/json",
                "User-Agent": self._user_agent,
            }
        )
        if endpoint.headers:
            headers.update(endpoint.headers)
        headers["X-Webhook-Signature"] = signature_header(body, endpoint.secret, timestamp)
        headers["X-Webhook-ID"] = endpoint.id
        headers["X-Event-Type"] = event
        return headers

    async def execute(
        self, endpoint: WebhookEndpoint, event: str, payload: dict[str, Any]
    ) -> DeliveryOutcome:
        """Send ``payload`` to ``endpoint`` once.

        Args:
            endpoint: Destination, including its current secret.
            event: Event name for the X-Event-Type header.
            payload: Envelope to serialize and sign.

        Returns:
            Outcome with status, truncated body, error text and latency.
        """
        body = serialize_payload(payload)
        headers = self.build_headers(endpoint, event, body)

        started = time.perf_counter()
        try:
            response = await self._post(endpoint.url, body, headers)
        except httpx.TimeoutException:
            return DeliveryOutcome(
                success=False, error="Request timeout", duration_ms=self._elapsed_ms(started)
            )
        except httpx.HTTPError as e:
            return DeliveryOutcome(
                success=False,
                error=str(e) or type(e).__name__,
                duration_ms=self._elapsed_ms(started),
            )
        duration_ms = self._elapsed_ms(started)

        response_body = response.text[: self._body_limit] if response.text else None
        if response.is_success:
            return DeliveryOutcome(
                success=True,
                status_code=response.status_code,
                response_body=response_body,
                duration_ms=duration_ms,
            )

        logger.debug(
            "delivery_rejected",
            webhook_id=endpoint.id,
            status_code=response.status_code,
        )
        return DeliveryOutcome(
            success=False,
            status_code=response.status_code,
            response_body=response_body,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
            duration_ms=duration_ms,
        )

    async def _post(self, url: str, body: str, headers: httpx.Headers) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(
                url, content=body.encode("utf-8"), headers=headers, timeout=self._timeout
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, content=body.encode("utf-8"), headers=headers)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
