from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ingest.errors import BudgetExceeded

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenBudget:
    limit: int
    used: int
    resets_at: datetime

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    @property
    def percentage(self) -> float:
        if self.limit <= 0:
            return 100.0
        return round(self.used / self.limit * 100, 2)

    def to_dict(self) -> dict[str, object]:
        return {
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "percentage": self.percentage,
            "resets_at": self.resets_at.isoformat(),
        }


class TokenBudgetManager:
    """Process-wide daily quota for the enrichment provider.

    All mutations happen under one lock; ``reserve`` either takes the whole
    cost or nothing. The window rolls over lazily on the first access after
    ``resets_at``.
    """

    def __init__(
        self,
        daily_limit: int,
        tokens_per_identifier: int = 1,
        reset_hour_utc: int = 0,
        clock: Clock = utc_clock,
    ) -> None:
        if daily_limit < 0:
            raise ValueError("daily_limit must be >= 0")
        self.daily_limit = daily_limit
        self.tokens_per_identifier = max(1, tokens_per_identifier)
        self.reset_hour_utc = reset_hour_utc
        self._clock = clock
        self._lock = threading.Lock()
        self._used = 0
        self._resets_at = self._next_boundary(self._clock())

    def estimate(self, batch_size: int) -> int:
        return max(0, batch_size) * self.tokens_per_identifier

    def reserve(self, cost: int) -> TokenBudget:
        if cost < 0:
            raise ValueError("cost must be >= 0")
        with self._lock:
            self._roll_over_if_due()
            remaining = self.daily_limit - self._used
            if cost > remaining:
                logger.info("Rejected reservation of %s tokens (remaining=%s)", cost, remaining)
                raise BudgetExceeded(required=cost, remaining=remaining)
            self._used += cost
            return self._snapshot()

    def release(self, amount: int) -> TokenBudget:
        with self._lock:
            self._roll_over_if_due()
            self._used = max(0, self._used - max(0, amount))
            return self._snapshot()

    def reset(self) -> TokenBudget:
        with self._lock:
            self._used = 0
            self._resets_at = self._next_boundary(self._clock())
            return self._snapshot()

    def snapshot(self) -> TokenBudget:
        with self._lock:
            self._roll_over_if_due()
            return self._snapshot()

    def _snapshot(self) -> TokenBudget:
        return TokenBudget(limit=self.daily_limit, used=self._used, resets_at=self._resets_at)

    def _roll_over_if_due(self) -> None:
        now = self._clock()
        if now >= self._resets_at:
            logger.info("Token budget window rolled over (used=%s)", self._used)
            self._used = 0
            self._resets_at = self._next_boundary(now)

    def _next_boundary(self, now: datetime) -> datetime:
        now = now.astimezone(timezone.utc)
        boundary = now.replace(hour=self.reset_hour_utc, minute=0, second=0, microsecond=0)
        if boundary <= now:
            boundary += timedelta(days=1)
        return boundary
