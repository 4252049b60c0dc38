"""Canonical data contracts for curation runs, knowledge records and learning signals."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def youtube_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class RunStatus(str, Enum):
    """Curation run lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_RUN_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED})


class TriggerSource(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class Decision(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


class FeedbackAction(str, Enum):
    """User reaction to a delivered video."""

    CLICKED = "clicked"
    SKIPPED = "skipped"
    REPLIED_BAD = "replied_bad"
    MULTIPLE_VIEWS = "multiple_views"
    NO_ACTION = "no_action"


class RecordStatus(str, Enum):
    ACTIVE = "active"
    UNAVAILABLE = "unavailable"


class InstructorTier(str, Enum):
    ELITE = "elite"
    HIGH_QUALITY = "high_quality"
    UNKNOWN = "unknown"


class DifficultyLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class EmergingStatus(str, Enum):
    MONITORING = "monitoring"
    VALIDATED = "validated"


class ExperimentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class ABWinner(str, Enum):
    CONTROL = "control"
    TREATMENT = "treatment"
    INCONCLUSIVE = "inconclusive"


class CurationRun(BaseModel):
    """One invocation of the ingestion pipeline."""

    id: str
    trigger_source: TriggerSource = TriggerSource.MANUAL
    status: RunStatus = RunStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    candidates_evaluated: int = 0
    candidates_accepted: int = 0
    candidates_rejected: int = 0
    searches_performed: int = 0
    skipped_duration: int = 0
    skipped_duplicates: int = 0
    skipped_quota: int = 0
    skipped_other: int = 0
    stopped_reason: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES


class RunEvent(BaseModel):
    """Progress log line attached to a run."""

    run_id: str
    ts: datetime = Field(default_factory=_utcnow)
    event: str = "event"
    message: str = ""

    @field_validator("event", mode="before")
    @classmethod
    def _event_name(cls, value: Any) -> str:
        return str(value or "").strip() or "event"

    @field_validator("message", mode="before")
    @classmethod
    def _message_text(cls, value: Any) -> str:
        return str(value or "").strip()


class CandidateRef(BaseModel):
    """Search hit returned by the source client."""

    video_id: str
    title: str = ""
    description: str = ""
    channel_id: str = ""
    channel_title: str = ""
    published_at: Optional[datetime] = None

    @property
    def source_url(self) -> str:
        return youtube_watch_url(self.video_id)


class Candidate(BaseModel):
    """Fully detailed candidate video ready for evaluation."""

    video_id: str
    title: str = ""
    description: str = ""
    channel_id: str = ""
    channel_title: str = ""
    published_at: Optional[datetime] = None
    duration_seconds: int = 0
    view_count: int = 0
    like_count: int = 0
    tags: List[str] = Field(default_factory=list)

    @property
    def source_url(self) -> str:
        return youtube_watch_url(self.video_id)


class ClassificationResult(BaseModel):
    """Inference verdict on whether a candidate is real instruction."""

    is_instructional: bool = False
    quality_estimate: float = 0.0
    technique_name: Optional[str] = None
    instructor_name: Optional[str] = None
    difficulty: Optional[int] = None
    belt_levels: List[str] = Field(default_factory=list)
    gi_type: Optional[str] = None
    category: Optional[str] = None
    key_details: List[str] = Field(default_factory=list)
    problems_solved: List[str] = Field(default_factory=list)
    has_progressions: bool = False
    reasoning: str = ""
    available: bool = True

    @classmethod
    def neutral(cls, reason: str = "classification unavailable") -> "ClassificationResult":
        return cls(is_instructional=False, quality_estimate=0.0, reasoning=reason, available=False)


class DimensionScores(BaseModel):
    """Seven named 0-100 sub-scores."""

    instructor_authority: float = 50.0
    taxonomy_mapping: float = 50.0
    coverage_balance: float = 50.0
    unique_value: float = 50.0
    user_feedback: float = 50.0
    belt_level_fit: float = 50.0
    emerging_technique: float = 50.0


class EvaluationContext(BaseModel):
    """Per-call context for candidate evaluation."""

    run_id: Optional[str] = None
    user_id: Optional[str] = None
    query: Optional[str] = None
    now: Optional[datetime] = None


class EvaluationResult(BaseModel):
    decision: Decision
    final_score: float = 0.0
    reason: str = ""
    dimension_scores: Optional[DimensionScores] = None
    boosts_applied: List[str] = Field(default_factory=list)
    good_because: List[str] = Field(default_factory=list)
    bad_because: List[str] = Field(default_factory=list)
    dimension_failures: List[str] = Field(default_factory=list)
    classification: Optional[ClassificationResult] = None
    instructor_name: Optional[str] = None
    technique_name: Optional[str] = None
    instructor_tier: InstructorTier = InstructorTier.UNKNOWN
    difficulty_level: Optional[DifficultyLevel] = None
    rejected_by_filter: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.decision == Decision.ACCEPT


class KnowledgeRecord(BaseModel):
    """Accepted video persisted in the knowledge store. source_url is unique."""

    id: str
    source_url: str
    video_id: str
    title: str = ""
    channel_title: str = ""
    instructor_name: Optional[str] = None
    technique_name: Optional[str] = None
    duration_seconds: int = 0
    dimension_scores: DimensionScores = Field(default_factory=DimensionScores)
    final_score: float = 0.0
    boosts_applied: List[str] = Field(default_factory=list)
    good_because: List[str] = Field(default_factory=list)
    instructor_tier: InstructorTier = InstructorTier.UNKNOWN
    difficulty_level: Optional[DifficultyLevel] = None
    quality_estimate: float = 0.0
    belt_levels: List[str] = Field(default_factory=list)
    gi_type: Optional[str] = None
    run_id: Optional[str] = None
    status: RecordStatus = RecordStatus.ACTIVE
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class InstructorPerformance(BaseModel):
    """Aggregate engagement and credibility per instructor."""

    instructor_name: str
    total_sent: int = 0
    total_clicks: int = 0
    total_skips: int = 0
    total_bad_ratings: int = 0
    click_rate: float = 0.0
    skip_rate: float = 0.0
    bad_rate: float = 0.0
    credibility_score: float = 20.0
    updated_at: datetime = Field(default_factory=_utcnow)


class UserLearningProfile(BaseModel):
    user_id: str
    favorite_instructors: List[str] = Field(default_factory=list)
    avoid_instructors: List[str] = Field(default_factory=list)
    preferred_positions: List[str] = Field(default_factory=list)
    learning_style: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class FeedbackEvent(BaseModel):
    """Append-only user reaction fact."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    video_id: str
    instructor: str
    technique: Optional[str] = None
    action: FeedbackAction
    created_at: datetime = Field(default_factory=_utcnow)


class ScoringAdjustments(BaseModel):
    instructor_adjustment: float = 0.0
    technique_adjustment: float = 0.0

    @property
    def total(self) -> float:
        return self.instructor_adjustment + self.technique_adjustment


class VideoInteraction(BaseModel):
    """Raw engagement signals for a delivered video."""

    user_id: str
    video_id: str
    clicked: bool = False
    watch_duration_seconds: float = 0.0
    completed: bool = False
    saved_to_library: bool = False
    shared: bool = False
    thumbs_up: bool = False
    thumbs_down: bool = False
    rewatch_count: int = 0
    problem_solved: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class RecommendationOutcome(BaseModel):
    """Recorded recommendation plus its computed quality once evaluated."""

    id: str
    user_id: str
    video_id: str
    algorithm_variant: str = "control"
    clicked: bool = False
    helpful: Optional[bool] = None
    solved_problem: bool = False
    asked_same_problem_again: bool = False
    follow_up_sentiment: Optional[str] = None
    engagement_prediction: Optional[float] = None
    relevance_score: Optional[float] = None

    immediate_quality: Optional[float] = None
    short_term_quality: Optional[float] = None
    long_term_quality: Optional[float] = None
    overall_quality: Optional[float] = None
    actual_engagement: Optional[float] = None
    actual_learning_gain: Optional[float] = None
    prediction_accuracy: Optional[float] = None
    why_it_worked: List[str] = Field(default_factory=list)
    what_to_replicate: List[str] = Field(default_factory=list)
    what_to_avoid: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    evaluated_at: Optional[datetime] = None

    @field_validator("follow_up_sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> Optional[str]:
        text = str(value or "").strip().lower()
        return text or None


class Attribution(BaseModel):
    why_it_worked: List[str] = Field(default_factory=list)
    what_to_replicate: List[str] = Field(default_factory=list)
    what_to_avoid: List[str] = Field(default_factory=list)


class RecommendationQuality(BaseModel):
    recommendation_id: str
    immediate: float
    short_term: float
    long_term: float
    overall: float
    prediction_accuracy: float
    attribution: Attribution = Field(default_factory=Attribution)


class BatchEvaluationReport(BaseModel):
    evaluated: List[RecommendationQuality] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


class ArmResult(BaseModel):
    variant: str
    sample_size: int = 0
    avg_engagement: float = 0.0
    avg_satisfaction: float = 0.0


class ABTestExperiment(BaseModel):
    id: str
    name: str = ""
    control_variant: str = "control"
    treatment_variant: str = "treatment"
    status: ExperimentStatus = ExperimentStatus.ACTIVE
    control: Optional[ArmResult] = None
    treatment: Optional[ArmResult] = None
    winner: Optional[ABWinner] = None
    conclusion: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None


class DailyMetrics(BaseModel):
    """Platform-wide engagement aggregate for one UTC day."""

    day: date
    total_events: int = 0
    total_users: int = 0
    click_rate: float = 0.0
    skip_rate: float = 0.0
    bad_rate: float = 0.0
    diversity_score: float = 0.0
    duplicate_instructor_violations: int = 0
    avg_quality_score: Optional[float] = None
    alerts: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)


class EmergingTechnique(BaseModel):
    technique_name: str
    video_count: int = 0
    status: EmergingStatus = EmergingStatus.MONITORING
    confidence_score: float = 0.0
    first_seen_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class QuotaUsage(BaseModel):
    """Snapshot of the predicted daily quota state."""

    quota_day: str
    calls: Dict[str, int] = Field(default_factory=dict)
    units_used: int = 0
    daily_limit: int = 10000
    exhausted: bool = False
    reset_at: datetime

    @property
    def units_remaining(self) -> int:
        return max(0, self.daily_limit - self.units_used)


class RecoveredRun(BaseModel):
    run_id: str
    hours_stuck: float
    started_at: Optional[datetime] = None
    candidates_evaluated: int = 0
    candidates_accepted: int = 0


class RecoveryReport(BaseModel):
    checked_at: datetime = Field(default_factory=_utcnow)
    recovered: List[RecoveredRun] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    notified: bool = False


class RecoveryStatus(BaseModel):
    checked_at: datetime = Field(default_factory=_utcnow)
    running_count: int = 0
    stuck_count: int = 0
    recent_recoveries: int = 0

    @property
    def healthy(self) -> bool:
        return self.stuck_count == 0
