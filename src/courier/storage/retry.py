"""Retry utilities for storage operations.

Provides exponential backoff retry logic for transient database errors,
such as SQLite reporting "database is locked" while another connection
holds the write lock.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from courier.exceptions import StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    logger.warning(
        "Retrying storage operation",
        extra={
            "attempt": retry_state.attempt_number,
            "fn_name": retry_state.fn.__name__ if retry_state.fn else "unknown",
            "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
        },
    )


# Only operational errors (locks, dropped connections) are worth retrying
db_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=_log_retry,
    reraise=True,
)


def storage_operation(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Retry transient failures, then surface database errors as StorageError."""
    retried = db_retry(fn)

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await retried(*args, **kwargs)
        except SQLAlchemyError as e:
            raise StorageError(f"{fn.__name__} failed: {e}") from e

    return wrapper
