"""Core contracts and shared types for the curation pipeline."""

from .contracts import (
    ABTestExperiment,
    ABWinner,
    ArmResult,
    Attribution,
    BatchEvaluationReport,
    Candidate,
    CandidateRef,
    ClassificationResult,
    CurationRun,
    DailyMetrics,
    Decision,
    DifficultyLevel,
    DimensionScores,
    EmergingStatus,
    EmergingTechnique,
    EvaluationContext,
    EvaluationResult,
    ExperimentStatus,
    FeedbackAction,
    FeedbackEvent,
    InstructorPerformance,
    InstructorTier,
    KnowledgeRecord,
    QuotaUsage,
    RecommendationOutcome,
    RecommendationQuality,
    RecordStatus,
    RecoveredRun,
    RecoveryReport,
    RecoveryStatus,
    RunEvent,
    RunStatus,
    ScoringAdjustments,
    TERMINAL_RUN_STATUSES,
    TriggerSource,
    UserLearningProfile,
    VideoInteraction,
    youtube_watch_url,
)

__all__ = [
    "ABTestExperiment",
    "ABWinner",
    "ArmResult",
    "Attribution",
    "BatchEvaluationReport",
    "Candidate",
    "CandidateRef",
    "ClassificationResult",
    "CurationRun",
    "DailyMetrics",
    "Decision",
    "DifficultyLevel",
    "DimensionScores",
    "EmergingStatus",
    "EmergingTechnique",
    "EvaluationContext",
    "EvaluationResult",
    "ExperimentStatus",
    "FeedbackAction",
    "FeedbackEvent",
    "InstructorPerformance",
    "InstructorTier",
    "KnowledgeRecord",
    "QuotaUsage",
    "RecommendationOutcome",
    "RecommendationQuality",
    "RecordStatus",
    "RecoveredRun",
    "RecoveryReport",
    "RecoveryStatus",
    "RunEvent",
    "RunStatus",
    "ScoringAdjustments",
    "TERMINAL_RUN_STATUSES",
    "TriggerSource",
    "UserLearningProfile",
    "VideoInteraction",
    "youtube_watch_url",
]
