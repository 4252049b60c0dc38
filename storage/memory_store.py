"""In-memory curation store for tests and single-process deployments."""

from __future__ import annotations

from datetime import date, datetime, timezone
from threading import RLock
from typing import Any, Dict, List, Optional

from core import (
    ABTestExperiment,
    CurationRun,
    DailyMetrics,
    DifficultyLevel,
    EmergingTechnique,
    FeedbackEvent,
    InstructorPerformance,
    KnowledgeRecord,
    QuotaUsage,
    RecommendationOutcome,
    RecordStatus,
    RunEvent,
    RunStatus,
    UserLearningProfile,
    VideoInteraction,
)
from .base import DEFAULT_RUN_SLOT, CurationStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCurationStore(CurationStore):
    """Thread-safe store; every read returns a deep copy."""

    def __init__(self) -> None:
        self._runs: Dict[str, CurationRun] = {}
        self._events: Dict[str, List[RunEvent]] = {}
        self._slots: Dict[str, str] = {}
        self._records: Dict[str, KnowledgeRecord] = {}
        self._record_ids_by_url: Dict[str, str] = {}
        self._emerging: Dict[str, EmergingTechnique] = {}
        self._profiles: Dict[str, UserLearningProfile] = {}
        self._performance: Dict[str, InstructorPerformance] = {}
        self._feedback: List[FeedbackEvent] = []
        self._daily: Dict[date, DailyMetrics] = {}
        self._outcomes: Dict[str, RecommendationOutcome] = {}
        self._interactions: List[VideoInteraction] = []
        self._experiments: Dict[str, ABTestExperiment] = {}
        self._quota: Dict[str, QuotaUsage] = {}
        self._lock = RLock()

    # ---- curation runs ---------------------------------------------------

    def create_run(self, run: CurationRun) -> CurationRun:
        with self._lock:
            self._runs[run.id] = run.model_copy(deep=True)
            self._events.setdefault(run.id, [])
            return run.model_copy(deep=True)

    def get_run(self, run_id: str) -> Optional[CurationRun]:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    def update_run(
        self,
        run_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[RunStatus] = None,
    ) -> Optional[CurationRun]:
        with self._lock:
            run = self._runs.get(run_id)
            if not run:
                return None
            if expected_status is not None and run.status != expected_status:
                return None
            updated = run.model_copy(update=dict(changes), deep=True)
            self._runs[run_id] = updated
            return updated.model_copy(deep=True)

    def list_runs(
        self,
        *,
        status: Optional[RunStatus] = None,
        started_before: Optional[datetime] = None,
        completed_after: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[CurationRun]:
        with self._lock:
            runs = sorted(self._runs.values(), key=lambda item: item.created_at)
            selected: List[CurationRun] = []
            for run in runs:
                if status is not None and run.status != status:
                    continue
                if started_before is not None and (run.started_at is None or run.started_at >= started_before):
                    continue
                if completed_after is not None and (run.completed_at is None or run.completed_at < completed_after):
                    continue
                selected.append(run.model_copy(deep=True))
            return selected[:limit] if limit else selected

    def append_run_event(self, run_id: str, event: str, message: str) -> bool:
        with self._lock:
            if run_id not in self._runs:
                return False
            self._events.setdefault(run_id, []).append(RunEvent(run_id=run_id, event=event, message=message))
            return True

    def list_run_events(self, run_id: str) -> List[RunEvent]:
        with self._lock:
            return [item.model_copy() for item in self._events.get(run_id, [])]

    def acquire_run_slot(self, run_id: str, slot: str = DEFAULT_RUN_SLOT) -> bool:
        with self._lock:
            holder = self._slots.get(slot)
            if holder and holder != run_id:
                return False
            self._slots[slot] = run_id
            return True

    def release_run_slot(self, run_id: str, slot: str = DEFAULT_RUN_SLOT, *, force: bool = False) -> bool:
        with self._lock:
            holder = self._slots.get(slot)
            if holder is None:
                return False
            if holder != run_id and not force:
                return False
            del self._slots[slot]
            return True

    def get_run_slot_holder(self, slot: str = DEFAULT_RUN_SLOT) -> Optional[str]:
        with self._lock:
            return self._slots.get(slot)

    # ---- knowledge records -----------------------------------------------

    def has_source_url(self, source_url: str) -> bool:
        with self._lock:
            return source_url in self._record_ids_by_url

    def insert_knowledge_record(self, record: KnowledgeRecord) -> bool:
        with self._lock:
            if record.source_url in self._record_ids_by_url:
                return False
            self._records[record.id] = record.model_copy(deep=True)
            self._record_ids_by_url[record.source_url] = record.id
            return True

    def get_knowledge_record(self, record_id: str) -> Optional[KnowledgeRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    def list_knowledge_records(
        self,
        *,
        technique_name: Optional[str] = None,
        instructor_name: Optional[str] = None,
        status: Optional[RecordStatus] = RecordStatus.ACTIVE,
    ) -> List[KnowledgeRecord]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if (technique_name is None or record.technique_name == technique_name)
                and (instructor_name is None or record.instructor_name == instructor_name)
                and (status is None or record.status == status)
            ]

    def count_knowledge_records(
        self,
        *,
        technique_name: Optional[str] = None,
        difficulty_level: Optional[DifficultyLevel] = None,
        status: Optional[RecordStatus] = RecordStatus.ACTIVE,
    ) -> int:
        with self._lock:
            return sum(
                1
                for record in self._records.values()
                if (technique_name is None or record.technique_name == technique_name)
                and (difficulty_level is None or record.difficulty_level == difficulty_level)
                and (status is None or record.status == status)
            )

    def set_record_status(self, record_id: str, status: RecordStatus) -> bool:
        with self._lock:
            record = self._records.get(record_id)
            if not record:
                return False
            record.status = status
            record.updated_at = _utcnow()
            return True

    # ---- emerging techniques ---------------------------------------------

    def get_emerging_technique(self, technique_name: str) -> Optional[EmergingTechnique]:
        with self._lock:
            item = self._emerging.get(technique_name)
            return item.model_copy() if item else None

    def upsert_emerging_technique(self, item: EmergingTechnique) -> EmergingTechnique:
        with self._lock:
            self._emerging[item.technique_name] = item.model_copy()
            return item.model_copy()

    # ---- feedback ----------------------------------------------------------

    def record_feedback(
        self,
        event: FeedbackEvent,
        profile: UserLearningProfile,
        performance: InstructorPerformance,
    ) -> None:
        with self._lock:
            self._feedback.append(event)
            self._profiles[profile.user_id] = profile.model_copy(deep=True)
            self._performance[performance.instructor_name] = performance.model_copy()

    def get_user_profile(self, user_id: str) -> Optional[UserLearningProfile]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return profile.model_copy(deep=True) if profile else None

    def get_instructor_performance(self, instructor_name: str) -> Optional[InstructorPerformance]:
        with self._lock:
            performance = self._performance.get(instructor_name)
            return performance.model_copy() if performance else None

    def list_feedback_events(
        self,
        *,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[FeedbackEvent]:
        with self._lock:
            return [
                event
                for event in self._feedback
                if (user_id is None or event.user_id == user_id)
                and (since is None or event.created_at >= since)
                and (until is None or event.created_at < until)
            ]

    # ---- daily metrics -----------------------------------------------------

    def upsert_daily_metrics(self, metrics: DailyMetrics) -> DailyMetrics:
        with self._lock:
            self._daily[metrics.day] = metrics.model_copy(deep=True)
            return metrics.model_copy(deep=True)

    def get_daily_metrics(self, day: date) -> Optional[DailyMetrics]:
        with self._lock:
            metrics = self._daily.get(day)
            return metrics.model_copy(deep=True) if metrics else None

    # ---- recommendation outcomes -----------------------------------------

    def add_recommendation_outcome(self, outcome: RecommendationOutcome) -> RecommendationOutcome:
        with self._lock:
            self._outcomes[outcome.id] = outcome.model_copy(deep=True)
            return outcome.model_copy(deep=True)

    def get_recommendation_outcome(self, outcome_id: str) -> Optional[RecommendationOutcome]:
        with self._lock:
            outcome = self._outcomes.get(outcome_id)
            return outcome.model_copy(deep=True) if outcome else None

    def save_outcome_evaluation(self, outcome_id: str, changes: Dict[str, Any]) -> Optional[RecommendationOutcome]:
        with self._lock:
            outcome = self._outcomes.get(outcome_id)
            if not outcome or outcome.evaluated_at is not None:
                return None
            updated = outcome.model_copy(update=dict(changes), deep=True)
            self._outcomes[outcome_id] = updated
            return updated.model_copy(deep=True)

    def list_recommendation_outcomes(
        self,
        *,
        since: Optional[datetime] = None,
        unevaluated_only: bool = False,
        evaluated_only: bool = False,
        variant: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[RecommendationOutcome]:
        with self._lock:
            selected = [
                outcome.model_copy(deep=True)
                for outcome in sorted(self._outcomes.values(), key=lambda item: item.created_at)
                if (since is None or outcome.created_at >= since)
                and (not unevaluated_only or outcome.evaluated_at is None)
                and (not evaluated_only or outcome.evaluated_at is not None)
                and (variant is None or outcome.algorithm_variant == variant)
            ]
            return selected[:limit] if limit else selected

    def add_video_interaction(self, interaction: VideoInteraction) -> VideoInteraction:
        with self._lock:
            self._interactions.append(interaction.model_copy())
            return interaction.model_copy()

    def get_latest_interaction(self, user_id: str, video_id: str) -> Optional[VideoInteraction]:
        with self._lock:
            matches = [
                item for item in self._interactions
                if item.user_id == user_id and item.video_id == video_id
            ]
            if not matches:
                return None
            return max(matches, key=lambda item: item.created_at).model_copy()

    # ---- source quota ------------------------------------------------------

    def get_quota_usage(self, quota_day: str) -> Optional[QuotaUsage]:
        with self._lock:
            usage = self._quota.get(quota_day)
            return usage.model_copy(deep=True) if usage else None

    def save_quota_usage(self, usage: QuotaUsage) -> QuotaUsage:
        with self._lock:
            self._quota[usage.quota_day] = usage.model_copy(deep=True)
            return usage.model_copy(deep=True)

    # ---- experiments -------------------------------------------------------

    def create_experiment(self, experiment: ABTestExperiment) -> ABTestExperiment:
        with self._lock:
            self._experiments[experiment.id] = experiment.model_copy(deep=True)
            return experiment.model_copy(deep=True)

    def get_experiment(self, experiment_id: str) -> Optional[ABTestExperiment]:
        with self._lock:
            experiment = self._experiments.get(experiment_id)
            return experiment.model_copy(deep=True) if experiment else None

    def update_experiment(self, experiment_id: str, changes: Dict[str, Any]) -> Optional[ABTestExperiment]:
        with self._lock:
            experiment = self._experiments.get(experiment_id)
            if not experiment:
                return None
            updated = experiment.model_copy(update=dict(changes), deep=True)
            self._experiments[experiment_id] = updated
            return updated.model_copy(deep=True)
