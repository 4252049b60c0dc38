from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from core import CurationRun, RunStatus
from notifications import Notifier
from orchestrator import RecoveryScheduler, RecoverySweep
from storage import InMemoryCurationStore
from utils.exceptions import NotificationError, RunStateError, StorageError


NOW = datetime(2026, 4, 2, 10, tzinfo=timezone.utc)


class _RecordingNotifier(Notifier):
    channel = "memory"

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = fail

    def send(self, recipient: str, subject: str, body: str):
        if self.fail:
            raise NotificationError("mailbox full", channel=self.channel)
        self.sent.append((recipient, subject, body))
        return {"status": "ok"}


class _StaleListStore(InMemoryCurationStore):
    """Hands out a stale running list, then lets the run finish before the CAS."""

    def list_runs(self, **kwargs):
        runs = super().list_runs(**kwargs)
        for run in runs:
            self.update_run(run.id, {"status": RunStatus.COMPLETED}, expected_status=RunStatus.RUNNING)
        return runs


class _BrokenStore(InMemoryCurationStore):
    def list_runs(self, **kwargs):
        raise RuntimeError("database unavailable")


class _OneBadRunStore(InMemoryCurationStore):
    def update_run(self, run_id, changes, *, expected_status=None):
        if run_id == "run_bad":
            raise StorageError("row locked")
        return super().update_run(run_id, changes, expected_status=expected_status)


def _running(store, run_id: str, hours_ago: float) -> CurationRun:
    run = store.create_run(
        CurationRun(id=run_id, status=RunStatus.RUNNING, started_at=NOW - timedelta(hours=hours_ago))
    )
    store.acquire_run_slot(run_id)
    return run


def _sweep(store, notifier=None) -> RecoverySweep:
    return RecoverySweep(store, notifier, recipient="ops@example.com", clock=lambda: NOW)


def test_sweep_recovers_only_stuck_runs_and_notifies_once() -> None:
    store = InMemoryCurationStore()
    _running(store, "run_stuck", hours_ago=3.4)
    store.create_run(CurationRun(id="run_fresh", status=RunStatus.RUNNING, started_at=NOW - timedelta(minutes=30)))
    store.create_run(CurationRun(id="run_done", status=RunStatus.COMPLETED, started_at=NOW - timedelta(hours=5)))
    notifier = _RecordingNotifier()

    report = _sweep(store, notifier).sweep()

    assert [item.run_id for item in report.recovered] == ["run_stuck"]
    assert report.notified is True
    stuck = store.get_run("run_stuck")
    assert stuck.status == RunStatus.FAILED
    assert stuck.error_message == "auto-recovery: stuck for 3 hours"
    assert stuck.completed_at == NOW
    assert store.get_run("run_fresh").status == RunStatus.RUNNING
    assert store.get_run_slot_holder() is None
    assert len(notifier.sent) == 1
    assert "run_stuck" in notifier.sent[0][2]


def test_sweep_without_stuck_runs_sends_nothing() -> None:
    store = InMemoryCurationStore()
    store.create_run(CurationRun(id="run_fresh", status=RunStatus.RUNNING, started_at=NOW - timedelta(minutes=5)))
    notifier = _RecordingNotifier()

    report = _sweep(store, notifier).sweep()

    assert report.recovered == []
    assert notifier.sent == []


def test_notification_failure_does_not_undo_recovery() -> None:
    store = InMemoryCurationStore()
    _running(store, "run_stuck", hours_ago=6)

    report = _sweep(store, _RecordingNotifier(fail=True)).sweep()

    assert report.notified is False
    assert store.get_run("run_stuck").status == RunStatus.FAILED


def test_sweep_skips_run_that_finished_concurrently() -> None:
    store = _StaleListStore()
    _running(store, "run_racing", hours_ago=4)

    report = _sweep(store).sweep()

    assert report.recovered == []
    run = store.get_run("run_racing")
    assert run.status == RunStatus.COMPLETED
    assert run.error_message is None


def test_sweep_failure_is_reported_not_raised() -> None:
    notifier = _RecordingNotifier()

    report = _sweep(_BrokenStore(), notifier).sweep()

    assert report.errors == ["database unavailable"]
    assert notifier.sent[0][1] == "Curation recovery sweep failed"


def test_manual_recovery() -> None:
    store = InMemoryCurationStore()
    _running(store, "run_1", hours_ago=0.5)
    store.create_run(CurationRun(id="run_2", status=RunStatus.COMPLETED))
    sweep = _sweep(store)

    closed = sweep.recover_run("run_1")

    assert closed.status == RunStatus.FAILED
    assert closed.error_message == "manual recovery: cleared by operator"
    assert [event.event for event in store.list_run_events("run_1")] == ["recovered"]
    with pytest.raises(RunStateError) as excinfo:
        sweep.recover_run("run_2")
    assert excinfo.value.status == "completed"
    with pytest.raises(RunStateError):
        sweep.recover_run("run_missing")


def test_status_counts_running_stuck_and_recent_recoveries() -> None:
    store = InMemoryCurationStore()
    _running(store, "run_stuck", hours_ago=3)
    store.create_run(CurationRun(id="run_fresh", status=RunStatus.RUNNING, started_at=NOW - timedelta(minutes=10)))
    store.create_run(
        CurationRun(
            id="run_old_recovered",
            status=RunStatus.FAILED,
            completed_at=NOW - timedelta(days=1),
            error_message="auto-recovery: stuck for 5 hours",
        )
    )
    store.create_run(
        CurationRun(id="run_crashed", status=RunStatus.FAILED, completed_at=NOW, error_message="socket closed")
    )

    status = _sweep(store).status()

    assert status.running_count == 2
    assert status.stuck_count == 1
    assert status.recent_recoveries == 1


def test_scheduler_run_once_and_stop() -> None:
    store = InMemoryCurationStore()
    _running(store, "run_stuck", hours_ago=9)
    scheduler = RecoveryScheduler(_sweep(store), interval_minutes=60)

    report = scheduler.run_once()
    scheduler.start()
    assert scheduler.running is True
    scheduler.stop()

    assert len(report.recovered) == 1
    assert scheduler.running is False


def test_one_failing_run_does_not_block_the_rest_of_the_sweep() -> None:
    store = _OneBadRunStore()
    _running(store, "run_bad", hours_ago=6)
    _running(store, "run_ok", hours_ago=5)
    notifier = _RecordingNotifier()

    report = _sweep(store, notifier).sweep()

    assert [item.run_id for item in report.recovered] == ["run_ok"]
    assert report.errors == ["run_bad: row locked"]
    assert store.get_run("run_ok").status == RunStatus.FAILED
    assert store.get_run("run_bad").status == RunStatus.RUNNING
    assert len(notifier.sent) == 1
    assert "run_bad: row locked" in notifier.sent[0][2]


def test_scheduler_run_forever_stops_after_iterations_or_stop() -> None:
    store = InMemoryCurationStore()
    _running(store, "run_stuck", hours_ago=4)
    scheduler = RecoveryScheduler(_sweep(store), interval_minutes=60)
    reports = []

    assert scheduler.run_forever(iterations=1, on_report=reports.append) == 1
    assert [len(report.recovered) for report in reports] == [1]

    def _stop_after_report(report) -> None:
        reports.append(report)
        scheduler.stop()

    assert scheduler.run_forever(on_report=_stop_after_report) == 1
    assert len(reports) == 2
