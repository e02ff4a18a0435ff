"""
Retry helper for optimistic-lock conflicts.

OptimisticLockError is the only retryable kernel error: the level row's
version moved between our read and our flush, so re-running the whole
unit of work against fresh state is safe.  Every other error propagates on
the first attempt.

The operation must own its transaction (typically a ``session_scope()``
block inside the callable); retrying inside a half-failed transaction
would only fail again.
"""

from collections.abc import Callable
from typing import TypeVar

from inventory_kernel.exceptions import OptimisticLockError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3


def retry_on_conflict(operation: Callable[[], T], attempts: int = DEFAULT_ATTEMPTS) -> T:
    """Run ``operation``, re-running it up to ``attempts`` times on conflict."""
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except OptimisticLockError as exc:
            if attempt == attempts:
                logger.error(
                    "conflict_retries_exhausted",
                    extra={
                        "attempts": attempts,
                        "entity_type": exc.entity_type,
                        "entity_id": exc.entity_id,
                    },
                )
                raise
            logger.warning(
                "conflict_retrying",
                extra={
                    "attempt": attempt,
                    "entity_type": exc.entity_type,
                    "entity_id": exc.entity_id,
                },
            )
    raise AssertionError("unreachable")
