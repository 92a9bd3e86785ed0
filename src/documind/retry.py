"""Single bounded retry for transient vector store failures."""

from __future__ import annotations

from typing import Callable, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from documind.errors import StoreUnavailable
from documind.metrics.observability import PipelineMetrics, get_logger

T = TypeVar("T")

_logger = get_logger("retry")

# One retry: the original attempt plus one more.
MAX_ATTEMPTS = 2


def with_store_retry(fn: Callable[[], T], *, operation: str, backoff_seconds: float = 0.5) -> T:
    """Call ``fn``, retrying once after ``backoff_seconds`` if it raises ``StoreUnavailable``.

    Any other error propagates immediately. When the retry also fails the last
    ``StoreUnavailable`` is re-raised unchanged.
    """

    def _before_sleep(state: RetryCallState) -> None:
        PipelineMetrics.store_retries.labels(operation=operation).inc()
        _logger.warning(
            "store.retry",
            operation=operation,
            attempt=state.attempt_number,
            backoff_seconds=backoff_seconds,
            detail=str(state.outcome.exception()) if state.outcome else None,
        )

    retrying = Retrying(
        retry=retry_if_exception_type(StoreUnavailable),
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_fixed(backoff_seconds),
        before_sleep=_before_sleep,
        reraise=True,
    )
    return retrying(fn)
