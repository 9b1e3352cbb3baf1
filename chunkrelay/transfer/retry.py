"""
Retry Policy

Design Decision: Retry Strategy
===============================

Options Considered:
1. Fixed attempt count, no delay
   - What a bare loop does; hammers a struggling endpoint
2. Fixed attempt count, constant delay
3. Exponential backoff with jitter
   - Spreads retries from many clients apart

Decision: the policy is a value passed to the Transmitter
- max_retries bounds the attempts for one chunk
- delay(attempt) says how long to wait before the next attempt
- The state machine never sees the policy, so swapping strategies does
  not touch it
"""

import random
import time
from dataclasses import dataclass, field
from typing import Callable

# delay(attempt) -> seconds to wait after failed attempt number `attempt` (1-based)
DelayFunction = Callable[[int], float]

DEFAULT_MAX_RETRIES = 3


def no_delay() -> DelayFunction:
    """Retry immediately."""
    return lambda attempt: 0.0


def constant_delay(seconds: float) -> DelayFunction:
    """Wait the same time between every attempt."""
    return lambda attempt: seconds


def exponential_backoff(base: float = 1.0, factor: float = 2.0,
                        max_delay: float = 60.0, jitter: float = 0.1) -> DelayFunction:
    """
    base * factor^(attempt-1), capped at max_delay, +/- jitter fraction.

    Example with base=1, factor=2: 1s, 2s, 4s, 8s ...
    """
    def delay(attempt: int) -> float:
        value = min(max_delay, base * (factor ** (attempt - 1)))
        if jitter:
            value += value * random.uniform(-jitter, jitter)
        return max(0.0, value)

    return delay


@dataclass
class RetryPolicy:
    """How many times to try one chunk, and how long to wait in between."""
    max_retries: int = DEFAULT_MAX_RETRIES
    delay: DelayFunction = field(default_factory=no_delay)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self):
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")

    def wait(self, attempt: int):
        """Sleep before the attempt following `attempt`."""
        seconds = self.delay(attempt)
        if seconds > 0:
            self.sleep(seconds)
