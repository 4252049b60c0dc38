from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from core import (
    Candidate,
    CandidateRef,
    ClassificationResult,
    RunStatus,
    TriggerSource,
)
from curation import CandidateEvaluator, QueryPlanner
from orchestrator import CurationController
from storage import DEFAULT_RUN_SLOT, InMemoryCurationStore
from utils.exceptions import QuotaExceededError, RunSlotBusyError, StorageError


NOW = datetime(2026, 5, 1, 12, tzinfo=timezone.utc)


class _FakeSource:
    def __init__(
        self,
        results: Dict[str, List[str]],
        *,
        failures: Optional[Dict[str, Exception]] = None,
        on_search=None,
    ) -> None:
        self.results = results
        self.failures = failures or {}
        self.on_search = on_search
        self.searches: List[str] = []

    def search(self, query: str, max_results: int = 25) -> List[CandidateRef]:
        self.searches.append(query)
        if self.on_search is not None:
            self.on_search(query)
        if query in self.failures:
            raise self.failures[query]
        return [CandidateRef(video_id=video_id, title=f"Armbar details {video_id}") for video_id in self.results[query]]

    def fetch_details_many(self, refs) -> Dict[str, Candidate]:
        return {
            ref.video_id: Candidate(
                video_id=ref.video_id,
                title=ref.title,
                channel_title="Grappling Lab",
                duration_seconds=90 if ref.video_id.startswith("short") else 600,
            )
            for ref in refs
            if not ref.video_id.startswith("gone")
        }


class _FakeClassifier:
    def __init__(self, broken: tuple = ()) -> None:
        self.broken = set(broken)
        self.calls = 0

    def classify(self, candidate: Candidate) -> ClassificationResult:
        self.calls += 1
        if candidate.video_id in self.broken:
            raise RuntimeError("classifier crashed")
        return ClassificationResult(
            is_instructional=True,
            quality_estimate=9.0,
            technique_name="Armbar",
            instructor_name="John Danaher",
            difficulty=2,
            belt_levels=["white"],
            problems_solved=["finishing"],
        )


class _FailingInsertStore(InMemoryCurationStore):
    def insert_knowledge_record(self, record) -> bool:
        raise StorageError("disk full")


class _CountFailingStore(InMemoryCurationStore):
    def count_knowledge_records(self, **filters) -> int:
        raise StorageError("db down")


def _controller(store, source, *, classifier=None, sleeps=None, **kwargs) -> CurationController:
    evaluator = CandidateEvaluator(store, classifier or _FakeClassifier(), clock=lambda: NOW)
    return CurationController(
        store,
        source,
        evaluator,
        delay_seconds=2.0,
        sleep=(sleeps.append if sleeps is not None else (lambda _s: None)),
        clock=lambda: NOW,
        **kwargs,
    )


def test_run_accepts_candidates_and_completes() -> None:
    store = InMemoryCurationStore()
    source = _FakeSource({"q1": ["a1", "a2", "short1"], "q2": ["a2", "a3", "gone1"]})
    sleeps: List[float] = []

    run = _controller(store, source, sleeps=sleeps).run(TriggerSource.SCHEDULED, queries=["q1", "q2"])

    assert run.status == RunStatus.COMPLETED
    assert run.trigger_source == TriggerSource.SCHEDULED
    assert run.started_at == NOW and run.completed_at == NOW
    assert run.searches_performed == 2
    assert run.candidates_accepted == 3
    assert run.candidates_evaluated == 4
    assert run.candidates_rejected == 1
    assert run.skipped_duration == 1
    assert run.skipped_duplicates == 1
    assert run.skipped_other == 1
    assert run.stopped_reason is None
    assert sleeps == [2.0, 2.0, 2.0]
    assert len(store.list_knowledge_records()) == 3
    assert store.get_run_slot_holder(DEFAULT_RUN_SLOT) is None
    events = [event.event for event in store.list_run_events(run.id)]
    assert events[0] == "run_started" and events[-1] == "run_completed"


def test_quota_exhaustion_closes_run_as_completed_with_partial_results() -> None:
    store = InMemoryCurationStore()
    source = _FakeSource(
        {"q1": ["a1"], "q2": ["a2"], "q3": ["a3"]},
        failures={"q2": QuotaExceededError("quota likely exhausted", call_type="search")},
    )

    run = _controller(store, source).run(queries=["q1", "q2", "q3"])

    assert run.status == RunStatus.COMPLETED
    assert run.stopped_reason == "quota_exceeded"
    assert run.candidates_accepted == 1
    assert run.skipped_quota == 2
    assert source.searches == ["q1", "q2"]
    assert store.has_source_url("https://www.youtube.com/watch?v=a1")


def test_unexpected_error_fails_run_and_releases_slot() -> None:
    store = InMemoryCurationStore()
    source = _FakeSource({}, failures={"q1": RuntimeError("socket exploded")})

    run = _controller(store, source).run(queries=["q1"])

    assert run.status == RunStatus.FAILED
    assert run.error_message == "socket exploded"
    assert run.completed_at == NOW
    assert store.get_run_slot_holder() is None


def test_storage_error_fails_run() -> None:
    store = _FailingInsertStore()

    run = _controller(store, _FakeSource({"q1": ["a1"]})).run(queries=["q1"])

    assert run.status == RunStatus.FAILED
    assert "disk full" in run.error_message


def test_single_candidate_failure_does_not_abort_batch() -> None:
    store = InMemoryCurationStore()
    classifier = _FakeClassifier(broken=("a1",))

    run = _controller(store, _FakeSource({"q1": ["a1", "a2"]}), classifier=classifier).run(queries=["q1"])

    assert run.status == RunStatus.COMPLETED
    assert run.skipped_other == 1
    assert run.candidates_accepted == 1


def test_rerun_with_same_results_is_idempotent() -> None:
    store = InMemoryCurationStore()
    source = _FakeSource({"q1": ["a1", "a2"]})
    classifier = _FakeClassifier()

    first = _controller(store, source, classifier=classifier).run(queries=["q1"])
    calls_after_first = classifier.calls
    second = _controller(store, source, classifier=classifier).run(queries=["q1"])

    assert first.candidates_accepted == 2
    assert second.candidates_accepted == 0
    assert second.skipped_duplicates == 2
    assert classifier.calls == calls_after_first
    assert len(store.list_knowledge_records()) == 2


def test_busy_slot_refuses_second_run() -> None:
    store = InMemoryCurationStore()
    store.acquire_run_slot("run_other")

    with pytest.raises(RunSlotBusyError) as excinfo:
        _controller(store, _FakeSource({"q1": []})).run(queries=["q1"])

    assert excinfo.value.run_id == "run_other"
    assert store.list_runs() == []


def test_non_exclusive_mode_ignores_slot() -> None:
    store = InMemoryCurationStore()
    store.acquire_run_slot("run_other")

    run = _controller(store, _FakeSource({"q1": []}), exclusive_runs=False).run(queries=["q1"])

    assert run.status == RunStatus.COMPLETED
    assert store.get_run_slot_holder() == "run_other"


def test_run_closed_by_recovery_is_not_overwritten() -> None:
    store = InMemoryCurationStore()

    def _recover_underneath(query: str) -> None:
        for run in store.list_runs(status=RunStatus.RUNNING):
            store.update_run(
                run.id,
                {"status": RunStatus.FAILED, "error_message": "auto-recovery: stuck for 3 hours"},
                expected_status=RunStatus.RUNNING,
            )

    source = _FakeSource({"q1": ["a1"], "q2": ["a2"]}, on_search=_recover_underneath)

    run = _controller(store, source).run(queries=["q1", "q2"])

    assert run.status == RunStatus.FAILED
    assert run.error_message.startswith("auto-recovery")
    assert source.searches == ["q1"]


def test_planner_supplies_queries_when_none_given() -> None:
    store = InMemoryCurationStore()
    evaluator = CandidateEvaluator(store, _FakeClassifier(), clock=lambda: NOW)
    planner = QueryPlanner(evaluator.catalog, store)
    source = _FakeSource({query: [] for query in planner.plan(3)})

    controller = CurationController(store, source, evaluator, planner=planner, max_searches=3, sleep=lambda _s: None)
    run = controller.run()

    assert run.searches_performed == 3
    assert source.searches == planner.plan(3)


def test_planning_failure_fails_run_instead_of_leaving_it_running() -> None:
    store = _CountFailingStore()
    source = _FakeSource({})

    run = _controller(store, source).run()

    assert run.status == RunStatus.FAILED
    assert "db down" in run.error_message
    assert source.searches == []
    assert [r.status for r in store.list_runs()] == [RunStatus.FAILED]
    assert store.get_run_slot_holder() is None
