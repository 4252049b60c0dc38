from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sources import QuotaTracker
from storage import InMemoryCurationStore, SqlCurationStore
from utils.exceptions import StorageError


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_exhaustion_predicted_at_safety_ratio() -> None:
    tracker = QuotaTracker(daily_limit=10000, safety_ratio=0.95)
    for _ in range(94):
        tracker.record_call("search")
    tracker.record_call("details", count=50)

    assert tracker.snapshot().units_used == 9450
    assert tracker.is_exhaustion_likely("details") is False
    assert tracker.is_exhaustion_likely("search") is True


def test_counters_reset_at_pacific_midnight_not_utc() -> None:
    # 06:00 UTC on Mar 10 is 23:00 PDT on Mar 9; the provider day flips at 07:00 UTC.
    clock = _Clock(datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc))
    tracker = QuotaTracker(clock=clock)
    tracker.record_call("search", count=3)
    assert tracker.snapshot().quota_day == "2026-03-09"

    clock.now = clock.now + timedelta(minutes=30)
    assert tracker.snapshot().units_used == 300

    clock.now = clock.now + timedelta(minutes=40)
    usage = tracker.snapshot()
    assert usage.quota_day == "2026-03-10"
    assert usage.units_used == 0


def test_mark_exhausted_blocks_until_next_reset() -> None:
    clock = _Clock(datetime(2026, 7, 1, 18, 0, tzinfo=timezone.utc))
    tracker = QuotaTracker(clock=clock)

    reset_at = tracker.mark_exhausted("quotaExceeded")

    assert reset_at == datetime(2026, 7, 2, 7, 0, tzinfo=timezone.utc)
    assert tracker.is_exhaustion_likely("details") is True

    clock.now = reset_at + timedelta(minutes=1)
    assert tracker.is_exhaustion_likely("details") is False


def test_force_reset_clears_state() -> None:
    tracker = QuotaTracker()
    tracker.record_call("search", count=5)
    tracker.mark_exhausted()

    tracker.force_reset("operator")

    usage = tracker.snapshot()
    assert usage.units_used == 0
    assert usage.exhausted is False
    assert usage.units_remaining == 10000


class _ReadOnlyStore(InMemoryCurationStore):
    def save_quota_usage(self, usage):
        raise StorageError("read-only")


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryCurationStore()
        return
    sql = SqlCurationStore(f"sqlite:///{tmp_path / 'quota.db'}")
    yield sql
    sql.close()


def test_usage_is_shared_through_the_store(store) -> None:
    clock = _Clock(datetime(2026, 8, 3, 15, 0, tzinfo=timezone.utc))
    first = QuotaTracker(clock=clock, store=store)
    first.record_call("search", count=3)
    first.record_call("details", count=4)

    second = QuotaTracker(clock=clock, store=store)

    usage = second.snapshot()
    assert usage.units_used == 304
    assert usage.calls["search"] == 3
    saved = store.get_quota_usage("2026-08-03")
    assert saved.units_used == 304
    assert saved.reset_at == datetime(2026, 8, 4, 7, 0, tzinfo=timezone.utc)


def test_exhaustion_survives_restart_until_next_day(store) -> None:
    clock = _Clock(datetime(2026, 8, 3, 15, 0, tzinfo=timezone.utc))
    QuotaTracker(clock=clock, store=store).mark_exhausted("quotaExceeded")

    restarted = QuotaTracker(clock=clock, store=store)
    assert restarted.is_exhaustion_likely("details") is True

    clock.now = datetime(2026, 8, 4, 8, 0, tzinfo=timezone.utc)
    assert restarted.is_exhaustion_likely("details") is False
    assert store.get_quota_usage("2026-08-03").exhausted is True


def test_persist_failure_keeps_counting_in_memory() -> None:
    tracker = QuotaTracker(store=_ReadOnlyStore())

    assert tracker.record_call("search") == 100
    assert tracker.snapshot().units_used == 100
