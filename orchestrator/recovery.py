"""Stuck-run recovery: periodic sweep, manual recovery and a health summary."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from core import CurationRun, RecoveredRun, RecoveryReport, RecoveryStatus, RunStatus
from notifications import Notifier, safe_send
from storage.base import DEFAULT_RUN_SLOT, CurationStore
from utils.exceptions import RunStateError


logger = logging.getLogger(__name__)

AUTO_RECOVERY_PREFIX = "auto-recovery"
MANUAL_RECOVERY_MESSAGE = "manual recovery: cleared by operator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hours_between(start: Optional[datetime], end: datetime) -> float:
    if start is None:
        return 0.0
    return max(0.0, (end - start).total_seconds() / 3600.0)


def _format_report(recovered: List[RecoveredRun], threshold_hours: float, errors: Sequence[str] = ()) -> str:
    lines = [
        f"{len(recovered)} curation run(s) were stuck in 'running' for more than "
        f"{threshold_hours:g} hours and have been marked failed.",
        "",
    ]
    for item in recovered:
        started = item.started_at.isoformat(timespec="seconds") if item.started_at else "unknown"
        lines.append(
            f"- {item.run_id}: stuck {item.hours_stuck:.1f}h (started {started}), "
            f"evaluated={item.candidates_evaluated} accepted={item.candidates_accepted}"
        )
    if errors:
        lines.extend(["", "Runs that could not be recovered:"])
        lines.extend(f"- {error}" for error in errors)
    return "\n".join(lines)


class RecoverySweep:
    """Closes runs abandoned in ``running`` after a crash or restart."""

    def __init__(
        self,
        store: CurationStore,
        notifier: Optional[Notifier] = None,
        *,
        recipient: str = "admin@localhost",
        threshold_hours: float = 2.0,
        history_days: int = 7,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.recipient = recipient
        self.threshold_hours = float(threshold_hours)
        self.history_days = int(history_days)
        self._clock = clock or _utcnow

    def _close(self, run: CurationRun, message: str, now: datetime) -> Optional[CurationRun]:
        closed = self.store.update_run(
            run.id,
            {"status": RunStatus.FAILED, "completed_at": now, "error_message": message},
            expected_status=RunStatus.RUNNING,
        )
        if closed is None:
            logger.info(f"[Recovery] Run {run.id} already left running; skipped")
            return None
        self.store.release_run_slot(run.id, DEFAULT_RUN_SLOT, force=True)
        self.store.append_run_event(run.id, "recovered", message)
        return closed

    def sweep(self, now: Optional[datetime] = None) -> RecoveryReport:
        """One pass: recover every stuck run and send a single batched notification."""
        now = now or self._clock()
        report = RecoveryReport(checked_at=now)
        try:
            cutoff = now - timedelta(hours=self.threshold_hours)
            stuck = self.store.list_runs(status=RunStatus.RUNNING, started_before=cutoff)
        except Exception as exc:
            logger.error(f"[Recovery] Sweep failed: {exc}")
            report.errors.append(str(exc))
            safe_send(self.notifier, self.recipient, "Curation recovery sweep failed", f"Error: {exc}")
            return report

        for run in stuck:
            hours = _hours_between(run.started_at, now)
            message = f"{AUTO_RECOVERY_PREFIX}: stuck for {int(hours)} hours"
            try:
                closed = self._close(run, message, now)
            except Exception as exc:
                logger.error(f"[Recovery] Could not recover run {run.id}: {exc}")
                report.errors.append(f"{run.id}: {exc}")
                continue
            if closed is None:
                continue
            report.recovered.append(
                RecoveredRun(
                    run_id=run.id,
                    hours_stuck=round(hours, 2),
                    started_at=run.started_at,
                    candidates_evaluated=run.candidates_evaluated,
                    candidates_accepted=run.candidates_accepted,
                )
            )
            logger.warning(f"[Recovery] Recovered run {run.id} ({hours:.1f}h stuck)")

        if report.errors and not report.recovered:
            safe_send(
                self.notifier,
                self.recipient,
                "Curation recovery sweep failed",
                "Errors:\n" + "\n".join(report.errors),
            )
            return report

        if report.recovered:
            report.notified = safe_send(
                self.notifier,
                self.recipient,
                f"Recovered {len(report.recovered)} stuck curation run(s)",
                _format_report(report.recovered, self.threshold_hours, report.errors),
            )
        else:
            logger.debug("[Recovery] No stuck runs")
        return report

    def recover_run(self, run_id: str) -> CurationRun:
        """Operator-initiated recovery of a single running run."""
        run = self.store.get_run(run_id)
        if run is None:
            raise RunStateError(f"Run not found: {run_id}", run_id=run_id)
        if run.status != RunStatus.RUNNING:
            raise RunStateError(
                f"Run {run_id} is not running (status={run.status.value})",
                run_id=run_id,
                status=run.status.value,
            )
        closed = self._close(run, MANUAL_RECOVERY_MESSAGE, self._clock())
        if closed is None:
            latest = self.store.get_run(run_id)
            raise RunStateError(
                f"Run {run_id} left running before it could be recovered",
                run_id=run_id,
                status=latest.status.value if latest else None,
            )
        logger.warning(f"[Recovery] Run {run_id} cleared by operator")
        return closed

    def status(self, now: Optional[datetime] = None) -> RecoveryStatus:
        now = now or self._clock()
        running = self.store.list_runs(status=RunStatus.RUNNING)
        cutoff = now - timedelta(hours=self.threshold_hours)
        stuck = [run for run in running if run.started_at is not None and run.started_at < cutoff]
        recent = self.store.list_runs(
            status=RunStatus.FAILED,
            completed_after=now - timedelta(days=self.history_days),
        )
        recoveries = [
            run for run in recent
            if (run.error_message or "").startswith((AUTO_RECOVERY_PREFIX, "manual recovery"))
        ]
        return RecoveryStatus(
            checked_at=now,
            running_count=len(running),
            stuck_count=len(stuck),
            recent_recoveries=len(recoveries),
        )


class RecoveryScheduler:
    """Runs the sweep on a fixed interval, in a daemon thread or the calling thread."""

    def __init__(self, sweep: RecoverySweep, *, interval_minutes: float = 30.0) -> None:
        self.sweep = sweep
        self.interval_seconds = max(1.0, float(interval_minutes) * 60.0)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> RecoveryReport:
        return self.sweep.sweep()

    def run_forever(
        self,
        iterations: int = 0,
        on_report: Optional[Callable[[RecoveryReport], None]] = None,
    ) -> int:
        """
        Sweep in the calling thread until ``stop()`` or ``iterations`` passes.

        Returns:
            Number of sweeps performed
        """
        logger.info(f"[Recovery] Scheduler started (every {self.interval_seconds / 60:.0f} min)")
        count = 0
        while not self._stop.is_set():
            report = self.run_once()
            count += 1
            if on_report is not None:
                on_report(report)
            if iterations and count >= iterations:
                break
            self._stop.wait(self.interval_seconds)
        logger.info(f"[Recovery] Scheduler stopped after {count} sweep(s)")
        return count

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="recovery-sweep", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
