"""Curation run controller: one end-to-end run from search queries to stored records."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set
from uuid import uuid4

from core import (
    Candidate,
    CurationRun,
    EvaluationContext,
    RunEvent,
    RunStatus,
    TriggerSource,
)
from curation.evaluator import CandidateEvaluator
from curation.planner import QueryPlanner
from sources.youtube_client import YouTubeSourceClient
from storage.base import DEFAULT_RUN_SLOT, CurationStore
from utils.exceptions import QuotaExceededError, RunSlotBusyError, StorageError


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id() -> str:
    return f"run_{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}_{uuid4().hex[:8]}"


@dataclass
class RunCounters:
    """Progress counters mirrored onto the CurationRun row."""

    candidates_evaluated: int = 0
    candidates_accepted: int = 0
    candidates_rejected: int = 0
    searches_performed: int = 0
    skipped_duration: int = 0
    skipped_duplicates: int = 0
    skipped_quota: int = 0
    skipped_other: int = 0
    seen: Set[str] = field(default_factory=set)

    def as_changes(self) -> Dict[str, int]:
        return {
            "candidates_evaluated": self.candidates_evaluated,
            "candidates_accepted": self.candidates_accepted,
            "candidates_rejected": self.candidates_rejected,
            "searches_performed": self.searches_performed,
            "skipped_duration": self.skipped_duration,
            "skipped_duplicates": self.skipped_duplicates,
            "skipped_quota": self.skipped_quota,
            "skipped_other": self.skipped_other,
        }


class RunOwnershipLost(Exception):
    """The run left ``running`` underneath the controller (e.g. recovered by the sweep)."""


class CurationController:
    """Drives pending -> running -> completed/failed for a single curation run."""

    def __init__(
        self,
        store: CurationStore,
        source: YouTubeSourceClient,
        evaluator: CandidateEvaluator,
        *,
        planner: Optional[QueryPlanner] = None,
        results_per_search: int = 25,
        max_searches: int = 10,
        delay_seconds: float = 2.0,
        exclusive_runs: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.source = source
        self.evaluator = evaluator
        self.planner = planner or QueryPlanner(evaluator.catalog, store)
        self.results_per_search = max(1, int(results_per_search))
        self.max_searches = max(1, int(max_searches))
        self.delay_seconds = max(0.0, float(delay_seconds))
        self.exclusive_runs = bool(exclusive_runs)
        self._sleep = sleep
        self._clock = clock or _utcnow
        self._source_calls = 0

    @classmethod
    def from_settings(
        cls,
        store: CurationStore,
        source: YouTubeSourceClient,
        evaluator: CandidateEvaluator,
        settings=None,
        **kwargs,
    ) -> "CurationController":
        if settings is None:
            from config import get_curation_settings
            settings = get_curation_settings()
        planner = kwargs.pop("planner", None) or QueryPlanner(
            evaluator.catalog, store, fixed_queries=settings.queries
        )
        return cls(
            store,
            source,
            evaluator,
            planner=planner,
            results_per_search=settings.results_per_search,
            max_searches=settings.max_searches,
            delay_seconds=settings.inter_call_delay_seconds,
            exclusive_runs=settings.exclusive_runs,
            **kwargs,
        )

    # ---- lifecycle ---------------------------------------------------------

    def run(
        self,
        trigger_source: TriggerSource = TriggerSource.MANUAL,
        queries: Optional[Sequence[str]] = None,
    ) -> CurationRun:
        """
        Execute one curation run.

        Raises:
            RunSlotBusyError: another run holds the advisory slot

        Returns:
            The run in a terminal state
        """
        run_id = new_run_id()
        if self.exclusive_runs and not self.store.acquire_run_slot(run_id, DEFAULT_RUN_SLOT):
            holder = self.store.get_run_slot_holder(DEFAULT_RUN_SLOT)
            raise RunSlotBusyError(
                "Another curation run is in progress",
                run_id=holder,
                status=RunStatus.RUNNING.value,
            )

        try:
            self.store.create_run(CurationRun(id=run_id, trigger_source=TriggerSource(trigger_source)))
            return self._execute(run_id, queries)
        finally:
            if self.exclusive_runs:
                self.store.release_run_slot(run_id, DEFAULT_RUN_SLOT)

    def _execute(self, run_id: str, queries: Optional[Sequence[str]]) -> CurationRun:
        started = self.store.update_run(
            run_id,
            {"status": RunStatus.RUNNING, "started_at": self._clock()},
            expected_status=RunStatus.PENDING,
        )
        if started is None:
            logger.warning(f"[Controller] Run {run_id} could not start")
            return self.store.get_run(run_id)
        logger.info(f"[Controller] Run {run_id} started")

        counters = RunCounters()
        self._source_calls = 0
        try:
            self._event(run_id, "run_started", f"trigger={started.trigger_source.value}")
            plan = [q for q in (queries or []) if q and q.strip()] or self.planner.plan(self.max_searches)
            plan = plan[: self.max_searches]
            for index, query in enumerate(plan):
                try:
                    self._process_query(run_id, query, counters)
                except QuotaExceededError as exc:
                    counters.skipped_quota += len(plan) - index
                    self._event(run_id, "quota_exceeded", str(exc))
                    logger.warning(f"[Controller] Quota exhausted during run {run_id}: {exc.message}")
                    return self._finish(
                        run_id,
                        RunStatus.COMPLETED,
                        counters,
                        stopped_reason="quota_exceeded",
                    )
                self._checkpoint(run_id, counters)
        except RunOwnershipLost:
            logger.warning(f"[Controller] Run {run_id} was closed externally; stopping")
            self._event(run_id, "ownership_lost", "run left running state during execution")
            return self.store.get_run(run_id)
        except Exception as exc:
            logger.error(f"[Controller] Run {run_id} failed: {exc}")
            return self._finish(run_id, RunStatus.FAILED, counters, error_message=str(exc))

        return self._finish(run_id, RunStatus.COMPLETED, counters)

    def _finish(
        self,
        run_id: str,
        status: RunStatus,
        counters: RunCounters,
        *,
        stopped_reason: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> CurationRun:
        changes = counters.as_changes()
        changes.update(
            {
                "status": status,
                "completed_at": self._clock(),
                "stopped_reason": stopped_reason,
                "error_message": error_message,
            }
        )
        try:
            finished = self.store.update_run(run_id, changes, expected_status=RunStatus.RUNNING)
        except StorageError as exc:
            logger.error(f"[Controller] Could not close run {run_id}: {exc}")
            raise
        if finished is None:
            logger.warning(f"[Controller] Run {run_id} already closed by another actor")
            return self.store.get_run(run_id)

        self._event(run_id, f"run_{status.value}", error_message or stopped_reason or "ok")
        logger.info(
            f"[Controller] Run {run_id} {status.value}: "
            f"evaluated={counters.candidates_evaluated} accepted={counters.candidates_accepted} "
            f"rejected={counters.candidates_rejected}"
        )
        return finished

    def _checkpoint(self, run_id: str, counters: RunCounters) -> None:
        if self.store.update_run(run_id, counters.as_changes(), expected_status=RunStatus.RUNNING) is None:
            raise RunOwnershipLost(run_id)

    # ---- per query ---------------------------------------------------------

    def _pace(self) -> None:
        if self._source_calls and self.delay_seconds:
            self._sleep(self.delay_seconds)
        self._source_calls += 1

    def _process_query(self, run_id: str, query: str, counters: RunCounters) -> None:
        self._pace()
        refs = self.source.search(query, max_results=self.results_per_search)
        counters.searches_performed += 1
        self._event(run_id, "search", f"{query!r}: {len(refs)} results")

        fresh = [ref for ref in refs if ref.video_id not in counters.seen]
        counters.skipped_duplicates += len(refs) - len(fresh)
        counters.seen.update(ref.video_id for ref in fresh)
        if not fresh:
            return

        self._pace()
        details = self.source.fetch_details_many(fresh)
        context = EvaluationContext(run_id=run_id, query=query, now=self._clock())
        for ref in fresh:
            candidate = details.get(ref.video_id)
            if candidate is None:
                counters.skipped_other += 1
                continue
            self._process_candidate(run_id, candidate, context, counters)

    def _process_candidate(
        self,
        run_id: str,
        candidate: Candidate,
        context: EvaluationContext,
        counters: RunCounters,
    ) -> None:
        try:
            result = self.evaluator.evaluate(candidate, context)
        except (StorageError, QuotaExceededError):
            raise
        except Exception as exc:
            logger.warning(f"[Controller] Evaluation failed for {candidate.video_id}: {exc}")
            counters.skipped_other += 1
            return

        counters.candidates_evaluated += 1
        if result.rejected_by_filter == "duration":
            counters.skipped_duration += 1
        elif result.rejected_by_filter == "duplicate":
            counters.skipped_duplicates += 1

        if not result.accepted:
            counters.candidates_rejected += 1
            return

        record = self.evaluator.build_record(candidate, result, run_id)
        if not self.store.insert_knowledge_record(record):
            counters.skipped_duplicates += 1
            return
        counters.candidates_accepted += 1
        self._event(run_id, "accepted", f"{candidate.video_id} {result.reason}")
        self.evaluator.track_emerging(result, context.now)

    def _event(self, run_id: str, event: str, message: str) -> None:
        self.store.append_run_event(run_id, event, message)

    # ---- read side -----------------------------------------------------------

    def get_run(self, run_id: str) -> Optional[CurationRun]:
        return self.store.get_run(run_id)

    def list_events(self, run_id: str) -> List[RunEvent]:
        return self.store.list_run_events(run_id)


def run_curation(
    trigger_source: TriggerSource = TriggerSource.MANUAL,
    queries: Optional[Sequence[str]] = None,
) -> CurationRun:
    """Run curation with the process-wide controller."""
    from .runtime import get_controller

    return get_controller().run(trigger_source=trigger_source, queries=queries)


def get_run(run_id: str) -> Optional[CurationRun]:
    from .runtime import get_store

    return get_store().get_run(run_id)
