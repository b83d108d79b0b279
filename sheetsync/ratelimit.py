"""
sheetsync.ratelimit
~~~~~~~~~~~~~~~~~~~

This module implements a blocking token-bucket rate limiter.
"""

import time
from typing import Callable


class RateLimiter:
    """ Allow at most `rate` acquisitions per second.

    The bucket holds a single token, so bursts are not permitted. Waiting is a
    blocking pause on the caller, done through the injected `sleep` so tests
    can run without real delays.

    :param rate: Requests per second. Must be positive.
    :param clock: Monotonic clock returning seconds.
    :param sleep: Callable used to wait.
    """

    def __init__(
        self,
        rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")

        self.interval: float = 1.0 / rate
        self.clock = clock
        self.sleep = sleep
        self._next: float = None

    def acquire(self) -> float:
        """ Block until a request may proceed.

        :return: The number of seconds waited.
        """
        now: float = self.clock()
        if self._next is None or now >= self._next:
            self._next = now + self.interval
            return 0.0

        wait: float = self._next - now
        self.sleep(wait)
        self._next += self.interval
        return wait
