import math
import random
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

from chat_kernel.models.config import RetryConfig


RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})

# keeps 2.0 ** exponent finite
_MAX_EXPONENT = 64


class RetryPolicy(BaseModel):
    """Exponential backoff with jitter; a server Retry-After hint always wins."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=8.0, ge=0)
    jitter_ratio: float = Field(default=0.2, ge=0, le=1)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_sec,
            max_delay=config.max_delay_sec,
            jitter_ratio=config.jitter_ratio,
        )

    def backoff(self, attempt: int) -> float:
        """Un-jittered delay for a 1-based attempt index."""
        exponent = min(max(attempt - 1, 0), _MAX_EXPONENT)
        return min(self.max_delay, self.base_delay * (2.0 ** exponent))

    def delay_for(
        self,
        attempt: int,
        retry_after: float | None = None,
        random_unit: Callable[[], float] = random.random,
    ) -> float:
        """
        Seconds to wait before the attempt following `attempt`.

        Args:
            attempt: 1-based index of the attempt that just failed
            retry_after: Server-supplied Retry-After, in seconds
            random_unit: Source of uniform values in [0, 1)

        Returns:
            Delay in seconds
        """
        if retry_after is not None:
            return retry_after

        delay = self.backoff(attempt)
        if self.jitter_ratio == 0 or delay == 0:
            return delay
        # map [0, 1) onto [1 - jitter, 1 + jitter)
        scale = 1.0 - self.jitter_ratio + 2.0 * self.jitter_ratio * random_unit()
        return delay * scale

    def should_retry(self, attempt: int, status_code: int) -> bool:
        return attempt < self.max_attempts and is_retryable_status(status_code)


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds. Anything else is ignored."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return None
    return seconds
