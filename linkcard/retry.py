"""
Retry wrapper for single network operations.

Only transient failures are retried: timeouts, connection resets and
aborts due to a timeout. Definitive failures (4xx responses, malformed
payloads, size-guard violations) propagate on the first attempt.

Backoff is linear: base_delay * attempt.
"""

import functools
import logging
import socket
import time
from typing import Callable, Optional, TypeVar

import requests

from .deadline import Deadline
from .http import FetchAborted

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 1.0  # seconds


def _caused_by_reset(error: BaseException) -> bool:
    """Walk the exception chain (and requests' wrapped args) for a reset."""
    seen = set()
    pending = [error]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        if 'reset' in str(current).lower():
            return True
        pending.append(current.__cause__)
        pending.append(current.__context__)
        pending.extend(arg for arg in getattr(current, 'args', ()) if isinstance(arg, BaseException))
    return False


def is_transient_error(error: BaseException) -> bool:
    """Return True for failures worth another attempt."""
    if isinstance(error, FetchAborted):
        return True
    if isinstance(error, requests.exceptions.Timeout):
        return True
    if isinstance(error, (TimeoutError, socket.timeout, ConnectionResetError)):
        return True
    if isinstance(error, requests.exceptions.ConnectionError):
        return _caused_by_reset(error)
    return False


def call_with_retry(
    fn: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    deadline: Optional[Deadline] = None,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call fn, retrying transient failures up to max_retries extra times.

    Args:
        fn: Zero-argument callable performing one network operation
        max_retries: Extra attempts after the first (2 -> 3 attempts total)
        base_delay: Backoff unit in seconds; attempt N waits base_delay * N
        deadline: Optional budget; no retry is scheduled past its end
        is_transient: Classifier for retry-eligible errors
        sleep: Injected for tests

    Returns:
        The result of the first successful call.

    Raises:
        The last error once attempts are exhausted, or immediately for
        non-transient errors.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as e:
            attempt += 1
            if attempt > max_retries or not is_transient(e):
                raise

            delay = base_delay * attempt
            if deadline is not None and deadline.remaining_seconds() <= delay:
                logger.debug('Not retrying after %r: deadline too close', e)
                raise

            logger.debug('Transient failure (%r), retry %d/%d in %.2fs', e, attempt, max_retries, delay)
            sleep(delay)


def retry_transient(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
):
    """Decorator form of call_with_retry()."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            return call_with_retry(
                lambda: fn(*args, **kwargs),
                max_retries=max_retries,
                base_delay=base_delay,
                is_transient=is_transient,
                sleep=sleep,
            )
        return wrapper
    return decorator
