"""Storage backends for Courier.

Persists endpoints, the delivery ledger and the delivery queue. Two backends
share the WebhookStore interface:

- SQLWebhookStore: SQLAlchemy async (SQLite via aiosqlite by default)
- InMemoryWebhookStore: process-local, for tests and development

Example:
    ```python
    from courier.storage import SQLWebhookStore

    async with SQLWebhookStore("sqlite+aiosqlite:///:memory:") as store:
        await store.insert_endpoint(endpoint)
        due = await store.claim_due(utc_now(), limit=10)
    ```
"""

from .base import MUTABLE_ENDPOINT_FIELDS, WebhookStore
from .factory import create_store
from .memory import InMemoryWebhookStore
from .retry import db_retry, storage_operation
from .sql import SQLWebhookStore, create_engine_for_url

__all__ = [
    "InMemoryWebhookStore",
    "MUTABLE_ENDPOINT_FIELDS",
    "SQLWebhookStore",
    "WebhookStore",
    "create_engine_for_url",
    "create_store",
    "db_retry",
    "storage_operation",
]
