from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from ingest.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BackoffPolicy:
    max_attempts: int = 4
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 2.0
    jitter: float = 0.1
    seed: int | None = None

    def __post_init__(self) -> None:
        self.max_attempts = max(1, self.max_attempts)
        self._rng = random.Random(self.seed)

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay before retry number ``attempt`` (0-based), honoring ``Retry-After`` when given."""
        if retry_after is not None and retry_after >= 0:
            return retry_after
        delay = min(self.max_delay_seconds, self.base_delay_seconds * (2**attempt))
        if self.jitter > 0:
            delay += self._rng.uniform(0, self.jitter * delay)
        return delay


def call_with_backoff(
    fn: Callable[[], T],
    policy: BackoffPolicy,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    for attempt in range(policy.max_attempts):
        try:
            return fn()
        except UpstreamUnavailable as exc:
            if attempt >= policy.max_attempts - 1:
                raise
            delay = policy.delay_for(attempt, exc.retry_after)
            logger.warning(
                "Upstream unavailable on %s (%s), retrying in %.2fs (attempt %s/%s)",
                label,
                exc.message,
                delay,
                attempt + 1,
                policy.max_attempts,
            )
            sleep(delay)
    raise RuntimeError(f"Unreachable retry state for {label}")


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
