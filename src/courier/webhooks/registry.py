"""Endpoint registry: CRUD and secret lifecycle for webhook endpoints.

Reads hide the secret unless ``include_secret=True``. Only the endpoint
returned by ``create_webhook`` and the value returned by
``regenerate_secret`` expose it.
"""

from __future__ import annotations

import secrets
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import ValidationError
from courier.models import WebhookEndpoint, utc_now
from courier.storage import WebhookStore

from .observers import ObserverRegistry

logger = structlog.get_logger(__name__)

SECRET_BYTES = 32

# Sentinel for "argument not provided" so None can still clear a field
_UNSET: Any = object()


def generate_secret() -> str:
    """Random 32-byte secret, hex encoded."""
    return secrets.token_hex(SECRET_BYTES)


def _to_validation_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "endpoint"
    message = first["msg"]
    # Field validators report "Value error, <msg>"
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    return ValidationError(field, message)


class WebhookRegistry:
    """Creates, reads, updates and deletes webhook endpoints."""

    def __init__(
        self,
        store: WebhookStore,
        observers: ObserverRegistry | None = None,
        default_max_retries: int = 5,
    ) -> None:
        self._store = store
        self._observers = observers if observers is not None else ObserverRegistry()
        self._default_max_retries = default_max_retries

    async def create_webhook(
        self,
        user_id: str,
        url: str,
        events: list[str],
        secret: str | None = None,
        description: str | None = None,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
    ) -> WebhookEndpoint:
        """Register a new active endpoint.

        Args:
            user_id: Owner of the endpoint.
            url: http(s) destination.
            events: Event names to subscribe to (exact match).
            secret: Signing secret; generated when omitted.
            description: Optional description (max 500 chars).
            headers: Custom headers sent with every delivery.
            max_retries: Attempt budget (1-10); configured default when omitted.

        Returns:
            The stored endpoint, including its secret.

        Raises:
            ValidationError: If any field is invalid.
        """
        now = utc_now()
        try:
            endpoint = WebhookEndpoint(
                user_id=user_id,
                url=url,
                events=events,
                secret=secret if secret is not None else generate_secret(),
                description=description,
                headers=headers,
                max_retries=max_retries if max_retries is not None else self._default_max_retries,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

        await self._store.insert_endpoint(endpoint)
        logger.info(
            "webhook_created", webhook_id=endpoint.id, user_id=user_id, events=endpoint.events
        )
        await self._observers.notify("webhook_created", endpoint.redacted())
        return endpoint

    async def get_webhook(
        self, webhook_id: str, include_secret: bool = False
    ) -> WebhookEndpoint | None:
        endpoint = await self._store.get_endpoint(webhook_id)
        if endpoint is None or include_secret:
            return endpoint
        return endpoint.redacted()

    async def get_webhooks_by_user(
        self, user_id: str, include_secret: bool = False
    ) -> list[WebhookEndpoint]:
        endpoints = await self._store.list_endpoints_by_user(user_id)
        if include_secret:
            return endpoints
        return [endpoint.redacted() for endpoint in endpoints]

    async def get_webhooks_for_event(
        self, event: str, user_id: str | None = None
    ) -> list[WebhookEndpoint]:
        """Active endpoints subscribed to exactly ``event``, secrets included.

        Used on the trigger path, where the secret is needed for signing.
        """
        return await self._store.list_endpoints_for_event(event, user_id=user_id)

    async def update_webhook(
        self,
        webhook_id: str,
        *,
        url: str = _UNSET,
        events: list[str] = _UNSET,
        status: str = _UNSET,
        description: str | None = _UNSET,
        headers: dict[str, str] | None = _UNSET,
        max_retries: int = _UNSET,
    ) -> WebhookEndpoint | None:
        """Apply only the provided fields; returns the redacted endpoint or None."""
        provided = {
            key: value
            for key, value in {
                "url": url,
                "events": events,
                "status": status,
                "description": description,
                "headers": headers,
                "max_retries": max_retries,
            }.items()
            if value is not _UNSET
        }

        current = await self._store.get_endpoint(webhook_id)
        if current is None:
            return None

        # Validate the merged result so cross-field rules see the final state
        merged = current.model_dump()
        merged.update(provided)
        merged["updated_at"] = utc_now()
        try:
            candidate = WebhookEndpoint.model_validate(merged)
        except PydanticValidationError as e:
            raise _to_validation_error(e) from e

        changes = {key: getattr(candidate, key) for key in provided}
        changes["updated_at"] = candidate.updated_at
        updated = await self._store.update_endpoint(webhook_id, changes)
        if updated is None:
            return None

        logger.info("webhook_updated", webhook_id=webhook_id, fields=sorted(provided))
        redacted = updated.redacted()
        await self._observers.notify("webhook_updated", redacted)
        return redacted

    async def delete_webhook(self, webhook_id: str) -> bool:
        deleted = await self._store.delete_endpoint(webhook_id)
        if deleted:
            logger.info("webhook_deleted", webhook_id=webhook_id)
            await self._observers.notify("webhook_deleted", webhook_id)
        return deleted

    async def regenerate_secret(self, webhook_id: str) -> str | None:
        """Rotate the signing secret.

        Attempts dispatched after rotation, pending retries included, are
        signed with the new secret.
        """
        secret = generate_secret()
        updated = await self._store.update_endpoint(
            webhook_id, {"secret": secret, "updated_at": utc_now()}
        )
        if updated is None:
            return None

        logger.info("secret_regenerated", webhook_id=webhook_id)
        await self._observers.notify("secret_regenerated", webhook_id)
        return secret
