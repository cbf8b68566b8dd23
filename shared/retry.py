"""
Backoff schedule for resilient operations.
"""

import random
from typing import Callable


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 base_delay: float = 2.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter_max: float = 1.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter_max = jitter_max


def calculate_delay(attempt: int, config: RetryConfig,
                    uniform: Callable[[float, float], float] = random.uniform) -> float:
    """Calculate delay before the next attempt.

    delay = min(base * exponential_base ** (attempt - 1), max_delay) + U(0, jitter_max)
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")

    # Past this point the exponential term is always capped; avoid huge floats.
    exponent = min(attempt - 1, 64)
    delay = min(config.base_delay * (config.exponential_base ** exponent), config.max_delay)

    # Additive jitter, never negative
    if config.jitter_max > 0:
        delay += uniform(0.0, config.jitter_max)

    return max(0.0, delay)
