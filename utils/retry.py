import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from utils.logger import Logger

logger = Logger().get_logger()

T = TypeVar("T")


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
):
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt >= max_attempts:
                        logger.error(f"Max retries ({max_attempts}) exceeded for {func.__name__}: {e}")
                        raise
                    logger.warning(f"{func.__name__} attempt {attempt} failed: {e}")
                    if delay:
                        time.sleep(delay * (backoff ** (attempt - 1)))
        return wrapper
    return decorator


class PollingExhausted(Exception):
    """Raised by ``poll_until`` when the attempt budget runs out."""

    def __init__(self, attempts: int, last_value: Any = None):
        super().__init__(f"Condition not met after {attempts} attempts")
        self.attempts = attempts
        self.last_value = last_value


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    max_attempts: int,
    delay: float,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Call ``fetch`` until ``is_done`` accepts its value.

    Waits a fixed ``delay`` between attempts and never makes more than
    ``max_attempts`` calls. Exceptions from ``fetch`` propagate unchanged.

    Raises:
        PollingExhausted: when every attempt returned a value that was not done
    """
    sleep = sleep or time.sleep
    value = None
    for attempt in range(1, max_attempts + 1):
        value = fetch()
        if is_done(value):
            return value
        logger.debug(f"Poll attempt {attempt}/{max_attempts} not finished")
        if attempt < max_attempts:
            sleep(delay)
    raise PollingExhausted(max_attempts, value)
