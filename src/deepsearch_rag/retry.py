"""Reusable retry / polling policy built on tenacity.

One :class:`RetryPolicy` object describes *how many* attempts are made,
*how long* to wait between them and *which* failures are retryable.
The index writer uses it for batch submission (:meth:`RetryPolicy.call`)
and for visibility verification (:meth:`RetryPolicy.poll`).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from deepsearch_rag.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    reason = "unsatisfied result"
    if outcome is not None and outcome.failed:
        reason = repr(outcome.exception())
    logger.warning(
        "%s: attempt %d failed (%s); retrying",
        getattr(retry_state.fn, "__qualname__", "call"),
        retry_state.attempt_number,
        reason,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget + exponential backoff + retryable-error predicate.

    Attributes
    ----------
    max_attempts:
        Total number of attempts, including the first one.
    initial_delay:
        Delay (seconds) before the second attempt; doubled each time.
    max_delay:
        Upper bound for a single delay.
    retryable:
        Predicate deciding whether an exception is worth another attempt.
    """

    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 8.0
    retryable: Callable[[BaseException], bool] = field(default=is_transient)

    def _wait(self) -> Any:
        return wait_exponential(multiplier=self.initial_delay, min=0, max=self.max_delay)

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn(*args, **kwargs)``, retrying retryable failures.

        The last exception propagates unchanged once the budget is spent
        or a non-retryable error occurs.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_exception(self.retryable),
            before_sleep=_log_before_sleep,
            reraise=True,
        )
        return await retrying(fn, *args, **kwargs)

    async def poll(
        self,
        fn: Callable[..., Awaitable[T]],
        until: Callable[[T], bool],
        *args: Any,
        default: T,
        **kwargs: Any,
    ) -> T:
        """Await ``fn`` until ``until(result)`` holds or attempts run out.

        Any exception raised by ``fn`` counts as an unsatisfied attempt
        yielding ``default``.  Returns the first satisfying result, or the
        last (unsatisfying) one when the budget is exhausted.
        """

        async def _attempt() -> T:
            try:
                return await fn(*args, **kwargs)
            except Exception:
                logger.warning("Polling attempt raised; treating as inconclusive", exc_info=True)
                return default

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            retry=retry_if_result(lambda result: not until(result)),
            before_sleep=_log_before_sleep,
            retry_error_callback=lambda state: state.outcome.result() if state.outcome else default,
        )
        return await retrying(_attempt)
