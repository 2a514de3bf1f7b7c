"""Shared retry/backoff configuration and the async retry engine.

``retry_async`` repeats an asynchronous operation until it succeeds, fails with
an error whose kind is not retryable, or runs out of attempts. Delays are
expressed in milliseconds on :class:`RetryPolicy` and converted to seconds only
when the engine sleeps.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, Optional, Union

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from .errors import ErrorKind, InvalidConfig, OperationTimedOut, error_kind

logger = logging.getLogger(__name__)

# Transport level retries (HTTP and SMTP helpers).
DEFAULT_MAX_ATTEMPTS: int = 5
INITIAL_BACKOFF_SECONDS: float = 0.5
MAX_BACKOFF_SECONDS: float = 8.0

Operation = Callable[[], Union[Awaitable[Any], Any]]
SleepFunc = Callable[[float], Awaitable[None]]
KindLike = Union[ErrorKind, str]


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration. All durations are milliseconds."""

    max_retries: int = 3
    retry_interval: float = 1000
    backoff: bool = True
    backoff_multiplier: float = 2
    jitter: float = 1
    max_delay: float = 30000
    timeout: float = 0

    def __post_init__(self) -> None:
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int):
            raise InvalidConfig("max_retries must be an integer")
        if self.max_retries < 0:
            raise InvalidConfig("max_retries must be non-negative")
        if self.retry_interval < 0:
            raise InvalidConfig("retry_interval must be non-negative")
        if not 0 <= self.jitter <= 1:
            raise InvalidConfig("jitter must be between 0 and 1.0")
        if self.backoff_multiplier < 1:
            raise InvalidConfig("backoff_multiplier must be at least 1")
        if self.max_delay < 0:
            raise InvalidConfig("max_delay must be non-negative")
        if self.timeout < 0:
            raise InvalidConfig("timeout must be non-negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True)
class Attempt:
    """One failed attempt that is about to be retried."""

    number: int
    error: BaseException
    delay: float


def compute_delay(
    policy: RetryPolicy,
    attempt_number: int,
    random_source: Callable[[], float] = random.random,
) -> float:
    """Return the delay in milliseconds before the retry following *attempt_number*.

    ``attempt_number`` is 1-based: the delay after the first failure uses the
    un-multiplied ``retry_interval``.
    """

    if policy.backoff:
        delay = policy.retry_interval * policy.backoff_multiplier ** (attempt_number - 1)
    else:
        delay = policy.retry_interval

    delay = min(delay, policy.max_delay)

    if policy.jitter > 0:
        jitter_amount = delay * policy.jitter * random_source()
        delay = delay + jitter_amount - (delay * policy.jitter) / 2

    return max(0.0, delay)


def _normalise_kinds(retryable_kinds: Iterable[KindLike]) -> FrozenSet[ErrorKind]:
    if isinstance(retryable_kinds, (str, bytes)):
        raise InvalidConfig("retryable_kinds must be a collection of error kinds")
    try:
        items = list(retryable_kinds)
    except TypeError as exc:
        raise InvalidConfig("retryable_kinds must be a collection of error kinds") from exc

    kinds = set()
    for item in items:
        try:
            kinds.add(ErrorKind(item))
        except ValueError as exc:
            raise InvalidConfig(f"Unknown error kind: {item!r}") from exc
    return frozenset(kinds)


async def _invoke(operation: Operation) -> Any:
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


async def _run_attempt(operation: Operation, timeout_ms: float) -> Any:
    if timeout_ms > 0:
        try:
            return await asyncio.wait_for(_invoke(operation), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError as exc:
            raise OperationTimedOut(f"Operation timed out after {timeout_ms} ms") from exc
    return await _invoke(operation)


async def retry_async(
    operation: Operation,
    retryable_kinds: Iterable[KindLike] = (),
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Optional[SleepFunc] = None,
    on_retry: Optional[Callable[[Attempt], None]] = None,
    random_source: Callable[[], float] = random.random,
) -> Any:
    """Run *operation* under *policy*, retrying on the given error kinds.

    An empty ``retryable_kinds`` retries on any ``Exception``. The error of the
    final attempt, or of the first non-retryable failure, propagates unchanged.
    """

    if not callable(operation):
        raise InvalidConfig("operation must be callable")
    kinds = _normalise_kinds(retryable_kinds)
    if policy is None:
        policy = RetryPolicy()
    elif not isinstance(policy, RetryPolicy):
        raise InvalidConfig("policy must be a RetryPolicy")

    def _should_retry(exc: BaseException) -> bool:
        if not isinstance(exc, Exception):
            return False
        if not kinds:
            return True
        return error_kind(exc) in kinds

    def _wait(retry_state: RetryCallState) -> float:
        return compute_delay(policy, retry_state.attempt_number, random_source) / 1000.0

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        kind = error_kind(error)
        attempt = Attempt(
            number=retry_state.attempt_number,
            error=error,
            delay=retry_state.next_action.sleep * 1000.0,
        )
        logger.warning(
            "Attempt %s/%s failed (%s), retrying in %.0f ms",
            attempt.number,
            policy.max_attempts,
            error,
            attempt.delay,
            extra={"attempt": attempt.number, "error_kind": kind.value if kind else None},
        )
        if on_retry is not None:
            on_retry(attempt)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=_wait,
        retry=retry_if_exception(_should_retry),
        before_sleep=_before_sleep,
        reraise=True,
        sleep=sleep or asyncio.sleep,
    )

    async for attempt in retrying:
        with attempt:
            result = await _run_attempt(operation, policy.timeout)
    return result


__all__ = [
    "Attempt",
    "DEFAULT_MAX_ATTEMPTS",
    "INITIAL_BACKOFF_SECONDS",
    "MAX_BACKOFF_SECONDS",
    "RetryPolicy",
    "compute_delay",
    "retry_async",
]
