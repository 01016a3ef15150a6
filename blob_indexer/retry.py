import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from blob_indexer.errors import ClientTemporarilyUnavailable, RetryExhausted
from blob_indexer.logging import log

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff around a fallible call.

    Only ``ClientTemporarilyUnavailable`` is retried; any other exception
    propagates on the first attempt. The policy gives up when either
    ``max_attempts`` or ``max_elapsed`` seconds is reached, whichever comes
    first (``None`` disables that bound).
    """

    max_attempts: Optional[int] = 5
    initial_interval: float = 0.5
    multiplier: float = 2.0
    max_interval: float = 30.0
    max_elapsed: Optional[float] = None
    jitter: float = 0.5  # +/- fraction of the delay

    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    on_retry: Optional[Callable[[int, float, Exception], None]] = field(default=None, repr=False)

    def delay(self, attempt: int) -> float:
        base = min(self.initial_interval * (self.multiplier ** (attempt - 1)), self.max_interval)
        if self.jitter:
            base *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(0.0, base)

    def call(
        self,
        fn: Callable[[], T],
        *,
        description: str = "call",
        on_retry: Optional[Callable[[int, float, Exception], None]] = None,
    ) -> T:
        on_retry = on_retry or self.on_retry
        started = self.clock()
        attempt = 0

        while True:
            attempt += 1
            try:
                return fn()
            except ClientTemporarilyUnavailable as e:
                delay = self.delay(attempt)
                elapsed = self.clock() - started

                out_of_attempts = self.max_attempts is not None and attempt >= self.max_attempts
                out_of_time = self.max_elapsed is not None and elapsed + delay > self.max_elapsed
                if out_of_attempts or out_of_time:
                    raise RetryExhausted(description, attempt) from e

                log.warning(
                    "retry_scheduled",
                    extra={
                        "call": description,
                        "attempt": attempt,
                        "delay_sec": round(delay, 3),
                        "error": str(e)[:200],
                    },
                )
                if on_retry:
                    on_retry(attempt, delay, e)
                self.sleep(delay)


# per-call layer: fast and bounded
def default_call_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=5, initial_interval=0.5, max_interval=8.0)


# driver head polling: long-lived, bounded by elapsed time
def default_head_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=None,
        initial_interval=1.0,
        max_interval=60.0,
        max_elapsed=15 * 60.0,
    )
