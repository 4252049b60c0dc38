"""Recommendation outcome evaluation across three horizons, batch mode and A/B tests."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from statistics import fmean
from typing import Callable, List, Optional
from uuid import uuid4

from core import (
    ABTestExperiment,
    ABWinner,
    ArmResult,
    Attribution,
    BatchEvaluationReport,
    ExperimentStatus,
    RecommendationOutcome,
    RecommendationQuality,
    VideoInteraction,
)
from storage.base import CurationStore
from utils.exceptions import CurationError


logger = logging.getLogger(__name__)

DEFAULT_PREDICTION = 50.0
FULL_WATCH_SECONDS = 300.0
QUICK_EXIT_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def immediate_quality(outcome: RecommendationOutcome, interaction: Optional[VideoInteraction]) -> float:
    """Click (40) + watch time scaled to five minutes (up to 40) + completion (20)."""
    score = 0.0
    if outcome.clicked or (interaction is not None and interaction.clicked):
        score += 40.0
    if interaction is not None:
        if interaction.watch_duration_seconds > 0:
            score += min(40.0, interaction.watch_duration_seconds / FULL_WATCH_SECONDS * 40.0)
        if interaction.completed:
            score += 20.0
    return _clamp(score)


def short_term_quality(interaction: Optional[VideoInteraction]) -> float:
    score = 50.0
    if interaction is None:
        return score
    if interaction.saved_to_library:
        score += 30.0
    if interaction.shared:
        score += 20.0
    if interaction.thumbs_up:
        score += 15.0
    if interaction.thumbs_down:
        score -= 30.0
    if interaction.rewatch_count:
        score += min(20.0, interaction.rewatch_count * 10.0)
    return _clamp(score)


def long_term_quality(outcome: RecommendationOutcome, interaction: Optional[VideoInteraction]) -> float:
    score = 50.0
    if outcome.solved_problem or (interaction is not None and interaction.problem_solved):
        score += 40.0
    if outcome.helpful:
        score += 25.0
    if not outcome.asked_same_problem_again:
        score += 15.0
    if outcome.follow_up_sentiment == "positive":
        score += 10.0
    elif outcome.follow_up_sentiment in ("negative", "frustrated"):
        score -= 20.0
    return _clamp(score)


def overall_quality(immediate: float, short_term: float, long_term: float) -> float:
    return immediate * 0.30 + short_term * 0.30 + long_term * 0.40


def prediction_accuracy(predicted: Optional[float], overall: float) -> float:
    expected = DEFAULT_PREDICTION if predicted is None else float(predicted)
    return max(0.0, 100.0 - abs(expected - overall))


def attribute(
    outcome: RecommendationOutcome,
    interaction: Optional[VideoInteraction],
    overall: float,
) -> Attribution:
    """Rule checks explaining a strong (>= 70) or weak (< 40) recommendation."""
    why: List[str] = []
    replicate: List[str] = []
    avoid: List[str] = []

    if overall >= 70.0:
        if interaction is not None and interaction.completed:
            why.append("High completion rate indicates good relevance")
            replicate.append("Match algorithm that led to this recommendation")
        if interaction is not None and interaction.saved_to_library:
            why.append("User saved for future reference - high perceived value")
            replicate.append("Content characteristics that drive saves")
        if outcome.solved_problem:
            why.append("Recommendation directly solved user's problem")
            replicate.append("Query understanding to video matching accuracy")
        if (outcome.relevance_score or 0.0) > 80.0:
            replicate.append("High relevance score correlates with success")

    if overall < 40.0:
        if not outcome.clicked:
            avoid.append("Recommendation not clicked - poor title/description?")
        if (
            interaction is not None
            and not interaction.completed
            and interaction.watch_duration_seconds < QUICK_EXIT_SECONDS
        ):
            avoid.append("User left quickly - content didn't match expectation")
        if interaction is not None and interaction.thumbs_down:
            avoid.append("Negative feedback - wrong skill level or irrelevant")
        if outcome.asked_same_problem_again:
            avoid.append("Didn't solve problem - need better matching")

    return Attribution(
        why_it_worked=why or ["Standard recommendation flow"],
        what_to_replicate=replicate or ["Continue current approach"],
        what_to_avoid=avoid or ["No major issues identified"],
    )


def _stored_quality(outcome: RecommendationOutcome) -> RecommendationQuality:
    return RecommendationQuality(
        recommendation_id=outcome.id,
        immediate=outcome.immediate_quality or 0.0,
        short_term=outcome.short_term_quality or 0.0,
        long_term=outcome.long_term_quality or 0.0,
        overall=outcome.overall_quality or 0.0,
        prediction_accuracy=outcome.prediction_accuracy or 0.0,
        attribution=Attribution(
            why_it_worked=list(outcome.why_it_worked),
            what_to_replicate=list(outcome.what_to_replicate),
            what_to_avoid=list(outcome.what_to_avoid),
        ),
    )


class OutcomeEvaluator:
    """Scores delivered recommendations and closes A/B experiments."""

    def __init__(self, store: CurationStore, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self._clock = clock or _utcnow

    def evaluate_recommendation(self, outcome_id: str) -> RecommendationQuality:
        outcome = self.store.get_recommendation_outcome(outcome_id)
        if outcome is None:
            raise CurationError(f"Recommendation outcome not found: {outcome_id}")
        if outcome.evaluated_at is not None:
            logger.info(f"[Outcomes] {outcome_id} already evaluated; returning stored values")
            return _stored_quality(outcome)

        interaction = self.store.get_latest_interaction(outcome.user_id, outcome.video_id)
        immediate = immediate_quality(outcome, interaction)
        short_term = short_term_quality(interaction)
        long_term = long_term_quality(outcome, interaction)
        overall = overall_quality(immediate, short_term, long_term)
        accuracy = prediction_accuracy(outcome.engagement_prediction, overall)
        attribution = attribute(outcome, interaction, overall)

        saved = self.store.save_outcome_evaluation(
            outcome_id,
            {
                "immediate_quality": immediate,
                "short_term_quality": short_term,
                "long_term_quality": long_term,
                "overall_quality": overall,
                "actual_engagement": immediate,
                "actual_learning_gain": long_term,
                "prediction_accuracy": accuracy,
                "why_it_worked": attribution.why_it_worked,
                "what_to_replicate": attribution.what_to_replicate,
                "what_to_avoid": attribution.what_to_avoid,
                "evaluated_at": self._clock(),
            },
        )
        if saved is None:
            logger.info(f"[Outcomes] {outcome_id} evaluated concurrently; returning stored values")
            return _stored_quality(self.store.get_recommendation_outcome(outcome_id))
        logger.info(f"[Outcomes] {outcome_id} overall={overall:.1f} accuracy={accuracy:.1f}")

        return RecommendationQuality(
            recommendation_id=outcome_id,
            immediate=immediate,
            short_term=short_term,
            long_term=long_term,
            overall=overall,
            prediction_accuracy=accuracy,
            attribution=attribution,
        )

    def evaluate_recent(self, hours: int = 24, limit: int = 100) -> BatchEvaluationReport:
        """Evaluate unevaluated outcomes created in the trailing window."""
        since = self._clock() - timedelta(hours=hours)
        pending = self.store.list_recommendation_outcomes(since=since, unevaluated_only=True, limit=limit)
        report = BatchEvaluationReport()
        for outcome in pending:
            try:
                report.evaluated.append(self.evaluate_recommendation(outcome.id))
            except Exception as exc:
                logger.error(f"[Outcomes] Failed to evaluate {outcome.id}: {exc}")
                report.failed[outcome.id] = str(exc)

        if report.evaluated:
            avg = fmean(item.overall for item in report.evaluated)
            logger.info(f"[Outcomes] Batch complete: {len(report.evaluated)} evaluated, avg quality {avg:.1f}")
        return report

    # ---- A/B experiments ---------------------------------------------------

    def create_experiment(
        self,
        name: str,
        control_variant: str = "control",
        treatment_variant: str = "treatment",
    ) -> ABTestExperiment:
        experiment = ABTestExperiment(
            id=f"exp_{uuid4().hex[:10]}",
            name=name,
            control_variant=control_variant,
            treatment_variant=treatment_variant,
            started_at=self._clock(),
        )
        return self.store.create_experiment(experiment)

    def _arm(self, variant: str) -> ArmResult:
        outcomes = self.store.list_recommendation_outcomes(evaluated_only=True, variant=variant)
        if not outcomes:
            return ArmResult(variant=variant)
        return ArmResult(
            variant=variant,
            sample_size=len(outcomes),
            avg_engagement=fmean(item.actual_engagement or 0.0 for item in outcomes),
            avg_satisfaction=fmean(item.actual_learning_gain or 0.0 for item in outcomes),
        )

    def evaluate_ab_test(self, experiment_id: str) -> ABTestExperiment:
        experiment = self.store.get_experiment(experiment_id)
        if experiment is None:
            raise CurationError(f"Experiment not found: {experiment_id}")
        if experiment.status != ExperimentStatus.ACTIVE:
            raise CurationError(f"Experiment is not active: {experiment_id}", {"status": experiment.status.value})

        control = self._arm(experiment.control_variant)
        treatment = self._arm(experiment.treatment_variant)

        if not control.sample_size or not treatment.sample_size:
            winner = ABWinner.INCONCLUSIVE
            conclusion = "Inconclusive: an arm has no evaluated outcomes"
        elif treatment.avg_engagement > control.avg_engagement:
            winner = ABWinner.TREATMENT
            conclusion = "Treatment algorithm performed better"
        elif treatment.avg_engagement < control.avg_engagement:
            winner = ABWinner.CONTROL
            conclusion = "Control algorithm performed better"
        else:
            winner = ABWinner.INCONCLUSIVE
            conclusion = "Inconclusive: equal mean engagement"

        updated = self.store.update_experiment(
            experiment_id,
            {
                "control": control,
                "treatment": treatment,
                "winner": winner,
                "conclusion": conclusion,
                "status": ExperimentStatus.COMPLETED,
                "ended_at": self._clock(),
            },
        )
        logger.info(f"[Outcomes] A/B test {experiment.name or experiment_id} complete. Winner: {winner.value}")
        return updated
