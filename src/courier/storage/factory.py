"""Build the configured WebhookStore."""

from __future__ import annotations

from typing import TYPE_CHECKING

from courier.exceptions import ConfigurationError

from .base import WebhookStore
from .memory import InMemoryWebhookStore
from .sql import SQLWebhookStore

if TYPE_CHECKING:
    from courier.config import Settings


def create_store(settings: Settings) -> WebhookStore:
    """Instantiate the backend named by ``settings.storage_backend``.

    The store is returned uninitialized; call ``initialize()`` (or use it as
    an async context manager) before first use.

    Raises:
        ConfigurationError: For an unknown backend or an unusable database URL.
    """
    if settings.storage_backend == "memory":
        return InMemoryWebhookStore()
    if settings.storage_backend == "sql":
        return SQLWebhookStore(settings.database_url, echo=settings.database_echo)
    raise ConfigurationError(f"Unknown storage backend: {settings.storage_backend!r}")
