import threading
from datetime import datetime, timedelta, timezone

import pytest

from ingest.budget import TokenBudgetManager
from ingest.errors import BudgetExceeded


def test_reserve_decrements_remaining(clock):
    manager = TokenBudgetManager(100, clock=clock)
    budget = manager.reserve(manager.estimate(30))

    assert budget.used == 30
    assert budget.remaining == 70
    assert budget.used + budget.remaining == budget.limit


def test_reserve_is_all_or_nothing(clock):
    manager = TokenBudgetManager(100, clock=clock)
    manager.reserve(80)

    with pytest.raises(BudgetExceeded) as excinfo:
        manager.reserve(30)

    assert excinfo.value.required == 30
    assert excinfo.value.remaining == 20
    assert excinfo.value.shortfall == 10
    assert manager.snapshot().used == 80


def test_estimate_scales_with_tokens_per_identifier(clock):
    assert TokenBudgetManager(100, tokens_per_identifier=2, clock=clock).estimate(7) == 14
    assert TokenBudgetManager(100, clock=clock).estimate(0) == 0


def test_release_refunds_without_going_negative(clock):
    manager = TokenBudgetManager(100, clock=clock)
    manager.reserve(10)

    assert manager.release(4).used == 6
    assert manager.release(50).used == 0


def test_window_rolls_over_at_reset_hour(clock):
    manager = TokenBudgetManager(100, clock=clock)
    manager.reserve(90)
    assert manager.snapshot().resets_at == datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)

    clock.now = clock.now + timedelta(hours=15)
    budget = manager.snapshot()

    assert budget.used == 0
    assert budget.remaining == 100
    assert budget.resets_at == datetime(2026, 3, 16, 0, 0, tzinfo=timezone.utc)


def test_custom_reset_hour_later_today(clock):
    manager = TokenBudgetManager(100, reset_hour_utc=12, clock=clock)
    assert manager.snapshot().resets_at == datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def test_reset_clears_usage(clock):
    manager = TokenBudgetManager(100, clock=clock)
    manager.reserve(100)
    assert manager.reset().remaining == 100


def test_concurrent_reservations_never_oversubscribe(clock):
    manager = TokenBudgetManager(50, clock=clock)
    granted: list[int] = []
    rejected: list[int] = []
    lock = threading.Lock()

    def worker() -> None:
        try:
            manager.reserve(3)
        except BudgetExceeded:
            with lock:
                rejected.append(1)
        else:
            with lock:
                granted.append(1)

    threads = [threading.Thread(target=worker) for _ in range(40)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(granted) == 16
    assert len(rejected) == 24
    assert manager.snapshot().used == 48
