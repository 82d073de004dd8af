import logging
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)

MAX_BACKOFF_SEC = 10.0


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry for idempotent outbound calls.

    Only transport-level failures in `retry_on` are retried; anything the remote
    side actually answered (HTTP errors, bad payloads) is raised immediately.
    `max_attempts=1` disables retrying.
    """

    max_attempts: int = 1
    backoff_sec: float = 0.5
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS

    def delay_for(self, attempt: int) -> float:
        return min(self.backoff_sec * (2 ** (attempt - 1)), MAX_BACKOFF_SEC)

    def call(self, fn: Callable[[], T], *, label: str = "call", sleep=time.sleep) -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retry: %s failed (%s) attempt=%s/%s sleeping %.2fs",
                    label,
                    type(e).__name__,
                    attempt,
                    self.max_attempts,
                    delay,
                )
                sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1)
