"""
Curation Store
Abstract persistence contract shared by the in-memory and SQL adapters.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
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


DEFAULT_RUN_SLOT = "curation"


class CurationStore(ABC):
    """
    Typed tables used by the pipeline.

    Run transitions go through ``update_run`` with ``expected_status`` so that
    concurrent closers (controller vs recovery sweep) resolve as
    compare-and-set: the first writer wins and the other gets ``None``.
    """

    # ---- curation runs ---------------------------------------------------

    @abstractmethod
    def create_run(self, run: CurationRun) -> CurationRun:
        pass

    @abstractmethod
    def get_run(self, run_id: str) -> Optional[CurationRun]:
        pass

    @abstractmethod
    def update_run(
        self,
        run_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[RunStatus] = None,
    ) -> Optional[CurationRun]:
        """
        Apply field changes to a run.

        Returns:
            The updated run, or None when the run does not exist or its
            current status differs from ``expected_status``.
        """
        pass

    @abstractmethod
    def list_runs(
        self,
        *,
        status: Optional[RunStatus] = None,
        started_before: Optional[datetime] = None,
        completed_after: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[CurationRun]:
        pass

    @abstractmethod
    def append_run_event(self, run_id: str, event: str, message: str) -> bool:
        pass

    @abstractmethod
    def list_run_events(self, run_id: str) -> List[RunEvent]:
        pass

    @abstractmethod
    def acquire_run_slot(self, run_id: str, slot: str = DEFAULT_RUN_SLOT) -> bool:
        """Take the advisory slot. False if another run already holds it."""
        pass

    @abstractmethod
    def release_run_slot(self, run_id: str, slot: str = DEFAULT_RUN_SLOT, *, force: bool = False) -> bool:
        """Release the slot if held by ``run_id`` (or unconditionally with force)."""
        pass

    @abstractmethod
    def get_run_slot_holder(self, slot: str = DEFAULT_RUN_SLOT) -> Optional[str]:
        pass

    # ---- knowledge records -----------------------------------------------

    @abstractmethod
    def has_source_url(self, source_url: str) -> bool:
        pass

    @abstractmethod
    def insert_knowledge_record(self, record: KnowledgeRecord) -> bool:
        """Insert a record. Returns False (no-op) if source_url already exists."""
        pass

    @abstractmethod
    def get_knowledge_record(self, record_id: str) -> Optional[KnowledgeRecord]:
        pass

    @abstractmethod
    def list_knowledge_records(
        self,
        *,
        technique_name: Optional[str] = None,
        instructor_name: Optional[str] = None,
        status: Optional[RecordStatus] = RecordStatus.ACTIVE,
    ) -> List[KnowledgeRecord]:
        pass

    @abstractmethod
    def count_knowledge_records(
        self,
        *,
        technique_name: Optional[str] = None,
        difficulty_level: Optional[DifficultyLevel] = None,
        status: Optional[RecordStatus] = RecordStatus.ACTIVE,
    ) -> int:
        pass

    @abstractmethod
    def set_record_status(self, record_id: str, status: RecordStatus) -> bool:
        pass

    # ---- emerging techniques ---------------------------------------------

    @abstractmethod
    def get_emerging_technique(self, technique_name: str) -> Optional[EmergingTechnique]:
        pass

    @abstractmethod
    def upsert_emerging_technique(self, item: EmergingTechnique) -> EmergingTechnique:
        pass

    # ---- feedback ----------------------------------------------------------

    @abstractmethod
    def record_feedback(
        self,
        event: FeedbackEvent,
        profile: UserLearningProfile,
        performance: InstructorPerformance,
    ) -> None:
        """Append the event and write both aggregates in one unit of work."""
        pass

    @abstractmethod
    def get_user_profile(self, user_id: str) -> Optional[UserLearningProfile]:
        pass

    @abstractmethod
    def get_instructor_performance(self, instructor_name: str) -> Optional[InstructorPerformance]:
        pass

    @abstractmethod
    def list_feedback_events(
        self,
        *,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[FeedbackEvent]:
        pass

    # ---- daily metrics -----------------------------------------------------

    @abstractmethod
    def upsert_daily_metrics(self, metrics: DailyMetrics) -> DailyMetrics:
        pass

    @abstractmethod
    def get_daily_metrics(self, day: date) -> Optional[DailyMetrics]:
        pass

    # ---- recommendation outcomes -----------------------------------------

    @abstractmethod
    def add_recommendation_outcome(self, outcome: RecommendationOutcome) -> RecommendationOutcome:
        pass

    @abstractmethod
    def get_recommendation_outcome(self, outcome_id: str) -> Optional[RecommendationOutcome]:
        pass

    @abstractmethod
    def save_outcome_evaluation(self, outcome_id: str, changes: Dict[str, Any]) -> Optional[RecommendationOutcome]:
        """Fill computed fields once. None if unknown or already evaluated."""
        pass

    @abstractmethod
    def list_recommendation_outcomes(
        self,
        *,
        since: Optional[datetime] = None,
        unevaluated_only: bool = False,
        evaluated_only: bool = False,
        variant: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[RecommendationOutcome]:
        pass

    @abstractmethod
    def add_video_interaction(self, interaction: VideoInteraction) -> VideoInteraction:
        pass

    @abstractmethod
    def get_latest_interaction(self, user_id: str, video_id: str) -> Optional[VideoInteraction]:
        pass

    # ---- source quota ------------------------------------------------------

    @abstractmethod
    def get_quota_usage(self, quota_day: str) -> Optional[QuotaUsage]:
        pass

    @abstractmethod
    def save_quota_usage(self, usage: QuotaUsage) -> QuotaUsage:
        """Upsert the usage row for ``usage.quota_day``."""
        pass

    # ---- experiments -------------------------------------------------------

    @abstractmethod
    def create_experiment(self, experiment: ABTestExperiment) -> ABTestExperiment:
        pass

    @abstractmethod
    def get_experiment(self, experiment_id: str) -> Optional[ABTestExperiment]:
        pass

    @abstractmethod
    def update_experiment(self, experiment_id: str, changes: Dict[str, Any]) -> Optional[ABTestExperiment]:
        pass

    def close(self) -> None:
        """Release underlying resources (default no-op)."""
        return None
