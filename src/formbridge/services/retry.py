import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
    """Delay after the given failed attempt (1-based): base * 2**attempt."""
    return base_delay * (2**attempt)


def retry_with_backoff(
    fn: Callable[[int], T],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    on_failure: Optional[Callable[[int, Exception], None]] = None,
) -> T:
    """
    Call fn(attempt) until it succeeds or max_attempts is reached.
    The last exception is re-raised once attempts run out; callers wrap it as they see fit.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    last_error: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return fn(attempt)
        except Exception as exc:
            last_error = exc
            if on_failure:
                on_failure(attempt, exc)
            if attempt < max_attempts:
                sleep(backoff_delay(attempt, base_delay))
    raise last_error
