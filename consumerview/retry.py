"""
Bounded retry for lookups that fail on a revoked or refreshing token.

The retry is immediate and budgeted by the caller. Between attempts the
`on_retry` hook runs, which is where the orchestrator forces a re-login.
Connection-level failures are not retried here.
"""

from typing import Callable, Optional, Tuple, Type, TypeVar

from .errors import RETRYABLE_ERRORS

T = TypeVar("T")


def call_with_retries(
    func: Callable[[], T],
    max_retries: int,
    exceptions: Tuple[Type[Exception], ...] = RETRYABLE_ERRORS,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
) -> T:
    """
    Call `func`, retrying up to `max_retries` times on `exceptions`.

    Args:
        func: Zero-argument callable performing one attempt
        max_retries: Retries allowed after the first attempt (0 = no retries)
        exceptions: Exception types that trigger a retry
        on_retry: Optional callback(attempt, exception) run before each retry

    Returns:
        Whatever `func` returns on its first successful attempt

    Raises:
        The last retryable exception once the budget is spent, or any other
        exception immediately.

    Example:
        records = call_with_retries(lambda: api.batch_lookup(...), max_retries=1)
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")

    attempts = 0
    while True:
        try:
            return func()
        except exceptions as e:
            if attempts >= max_retries:
                raise
            attempts += 1
            if on_retry:
                on_retry(attempts, e)


def is_retryable_error(exception: Exception) -> bool:
    """
    Check whether an error may succeed if the lookup is repeated.

    Args:
        exception: Exception to check

    Returns:
        True for rejected tokens and server data refreshes
    """
    return isinstance(exception, RETRYABLE_ERRORS)
