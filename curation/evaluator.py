"""Candidate evaluator: cheap filters, classification, seven dimensions, boosts, threshold."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from core import (
    Candidate,
    ClassificationResult,
    Decision,
    DimensionScores,
    EmergingStatus,
    EmergingTechnique,
    EvaluationContext,
    EvaluationResult,
    InstructorTier,
    KnowledgeRecord,
    ScoringAdjustments,
)
from intelligence.classifier import InstructionalClassifier
from learning.feedback import FeedbackLoop
from storage.base import CurationStore
from . import dimensions as dims
from .boosts import DEFAULT_BOOST_RULES, BoostContext, BoostRule, apply_boosts
from .catalog import Catalog, normalize_technique_name


logger = logging.getLogger(__name__)

DIMENSION_WEIGHTS: Dict[str, float] = {
    "instructor_authority": 0.25,
    "taxonomy_mapping": 0.15,
    "coverage_balance": 0.10,
    "unique_value": 0.15,
    "user_feedback": 0.10,
    "belt_level_fit": 0.15,
    "emerging_technique": 0.10,
}

ACCEPT_THRESHOLD = 71.0
MIN_DURATION_SECONDS = 120
MIN_QUALITY_ESTIMATE = 7.0


def weighted_score(scores: DimensionScores, weights: Optional[Dict[str, float]] = None) -> float:
    weights = weights or DIMENSION_WEIGHTS
    values = scores.model_dump()
    return sum(values[name] * weight for name, weight in weights.items())


class CandidateEvaluator:
    """
    Accept/reject a single candidate.

    Cheap filters run first and never touch the classifier. A failing
    dimension falls back to the neutral score instead of aborting.
    """

    def __init__(
        self,
        store: CurationStore,
        classifier: InstructionalClassifier,
        *,
        catalog: Optional[Catalog] = None,
        feedback: Optional[FeedbackLoop] = None,
        threshold: float = ACCEPT_THRESHOLD,
        min_duration_seconds: int = MIN_DURATION_SECONDS,
        min_quality_estimate: float = MIN_QUALITY_ESTIMATE,
        boost_rules: Sequence[BoostRule] = DEFAULT_BOOST_RULES,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.catalog = catalog or Catalog.default()
        self.feedback = feedback or FeedbackLoop(store)
        self.threshold = float(threshold)
        self.min_duration_seconds = int(min_duration_seconds)
        self.min_quality_estimate = float(min_quality_estimate)
        self.boost_rules = tuple(boost_rules)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, store: CurationStore, classifier: InstructionalClassifier, settings=None, **kwargs):
        if settings is None:
            from config import get_curation_settings
            settings = get_curation_settings()
        catalog = kwargs.pop("catalog", None)
        if catalog is None:
            catalog = (
                Catalog.from_file(settings.taxonomy_path, settings.default_coverage_target)
                if settings.taxonomy_path
                else Catalog.default(settings.default_coverage_target)
            )
        return cls(
            store,
            classifier,
            catalog=catalog,
            threshold=settings.acceptance_threshold,
            min_duration_seconds=settings.min_duration_seconds,
            min_quality_estimate=settings.min_quality_estimate,
            **kwargs,
        )

    # ---- filters -----------------------------------------------------------

    def _reject(self, reason: str, *, filter_name: Optional[str] = None, **fields) -> EvaluationResult:
        return EvaluationResult(
            decision=Decision.REJECT,
            final_score=0.0,
            reason=reason,
            bad_because=[reason],
            rejected_by_filter=filter_name,
            **fields,
        )

    def cheap_filter(self, candidate: Candidate) -> Optional[EvaluationResult]:
        if candidate.duration_seconds < self.min_duration_seconds:
            return self._reject(
                f"Too short: {candidate.duration_seconds}s < {self.min_duration_seconds}s minimum",
                filter_name="duration",
            )
        if self.store.has_source_url(candidate.source_url):
            return self._reject("Duplicate: already in knowledge store", filter_name="duplicate")
        return None

    # ---- main entry --------------------------------------------------------

    def evaluate(self, candidate: Candidate, context: Optional[EvaluationContext] = None) -> EvaluationResult:
        context = context or EvaluationContext()
        now = context.now or self._clock()

        rejected = self.cheap_filter(candidate)
        if rejected is not None:
            logger.debug(f"[Evaluator] {candidate.video_id} filtered: {rejected.reason}")
            return rejected

        classification = self.classifier.classify(candidate)
        if not classification.available:
            return self._reject(
                classification.reasoning or "classification unavailable",
                filter_name="classification",
                classification=classification,
            )
        if not classification.is_instructional:
            return self._reject(
                f"Not instructional content{': ' + classification.reasoning if classification.reasoning else ''}",
                filter_name="classification",
                classification=classification,
            )
        if classification.quality_estimate < self.min_quality_estimate:
            return self._reject(
                f"Quality estimate {classification.quality_estimate:.1f} < {self.min_quality_estimate:.1f}",
                filter_name="quality",
                classification=classification,
            )

        return self._score(candidate, classification, context, now)

    # ---- scoring -----------------------------------------------------------

    def _safe(self, name: str, failures: List[str], fn: Callable[[], dims.DimensionOutcome]) -> dims.DimensionOutcome:
        try:
            return fn()
        except Exception as exc:
            logger.warning(f"[Evaluator] Dimension {name} failed, using neutral score: {exc}")
            failures.append(name)
            return dims.DimensionOutcome(score=dims.NEUTRAL_SCORE)

    def _score(
        self,
        candidate: Candidate,
        classification: ClassificationResult,
        context: EvaluationContext,
        now: datetime,
    ) -> EvaluationResult:
        failures: List[str] = []
        outcomes: Dict[str, dims.DimensionOutcome] = {}

        performance = None
        if classification.instructor_name:
            try:
                performance = self.store.get_instructor_performance(classification.instructor_name)
            except Exception as exc:
                logger.warning(f"[Evaluator] Instructor performance unavailable: {exc}")

        outcomes["instructor_authority"] = self._safe(
            "instructor_authority",
            failures,
            lambda: dims.instructor_authority(classification.instructor_name, candidate, self.catalog, performance),
        )
        authority = outcomes["instructor_authority"].signals
        instructor_name = authority.get("instructor_name", classification.instructor_name)
        if instructor_name and performance is None and instructor_name != classification.instructor_name:
            performance = self.store.get_instructor_performance(instructor_name)

        outcomes["taxonomy_mapping"] = self._safe(
            "taxonomy_mapping",
            failures,
            lambda: dims.taxonomy_mapping(classification.technique_name, classification, self.catalog, candidate),
        )
        taxonomy = outcomes["taxonomy_mapping"].signals
        technique_name = taxonomy.get("technique_name", classification.technique_name)
        level = dims.difficulty_level_for(classification.difficulty)

        outcomes["coverage_balance"] = self._safe(
            "coverage_balance",
            failures,
            lambda: dims.coverage_balance(technique_name, level, self.store, self.catalog),
        )
        outcomes["unique_value"] = self._safe(
            "unique_value",
            failures,
            lambda: dims.unique_value(candidate, technique_name, instructor_name, classification, self.store),
        )

        adjustments: Optional[ScoringAdjustments] = None
        if context.user_id:
            try:
                adjustments = self.feedback.get_scoring_adjustments(context.user_id, instructor_name, technique_name)
            except Exception as exc:
                logger.warning(f"[Evaluator] Scoring adjustments unavailable: {exc}")
        outcomes["user_feedback"] = self._safe(
            "user_feedback",
            failures,
            lambda: dims.user_feedback(performance, adjustments),
        )
        outcomes["belt_level_fit"] = self._safe(
            "belt_level_fit",
            failures,
            lambda: dims.belt_level_fit(classification, candidate, taxonomy.get("technique")),
        )
        outcomes["emerging_technique"] = self._safe(
            "emerging_technique",
            failures,
            lambda: dims.emerging_technique(technique_name, instructor_name, candidate, self.store, self.catalog, now),
        )

        scores = DimensionScores(**{name: outcome.score for name, outcome in outcomes.items()})
        base = weighted_score(scores)

        tier = authority.get("tier", InstructorTier.UNKNOWN)
        boost_ctx = BoostContext(
            scores=scores,
            tier=tier,
            boost_multiplier=float(authority.get("boost_multiplier", 1.0)),
            difficulty_level=level,
            signals={name: outcome.signals for name, outcome in outcomes.items()},
            adjustments=adjustments,
        )
        boosted, boosts_applied = apply_boosts(base, boost_ctx, self.boost_rules)
        final_score = round(dims.clamp(boosted), 2)

        good = [reason for outcome in outcomes.values() for reason in outcome.reasons_good]
        bad = [reason for outcome in outcomes.values() for reason in outcome.reasons_bad]
        if final_score >= self.threshold:
            decision = Decision.ACCEPT
            reason = f"Quality score: {final_score:.1f}/100 ({len(good)} positive factors)"
        else:
            decision = Decision.REJECT
            reason = f"Score too low: {final_score:.1f}/{self.threshold:.0f} required"

        logger.info(
            f"[Evaluator] {candidate.video_id} {decision.value} score={final_score:.1f} "
            f"base={base:.1f} boosts={len(boosts_applied)}"
        )

        return EvaluationResult(
            decision=decision,
            final_score=final_score,
            reason=reason,
            dimension_scores=scores,
            boosts_applied=boosts_applied,
            good_because=good,
            bad_because=bad,
            dimension_failures=failures,
            classification=classification,
            instructor_name=instructor_name,
            technique_name=technique_name,
            instructor_tier=tier,
            difficulty_level=level,
        )

    # ---- persistence helpers ----------------------------------------------

    def build_record(self, candidate: Candidate, result: EvaluationResult, run_id: Optional[str] = None) -> KnowledgeRecord:
        classification = result.classification or ClassificationResult()
        return KnowledgeRecord(
            id=f"kr_{uuid4().hex[:12]}",
            source_url=candidate.source_url,
            video_id=candidate.video_id,
            title=candidate.title,
            channel_title=candidate.channel_title,
            instructor_name=result.instructor_name,
            technique_name=result.technique_name,
            duration_seconds=candidate.duration_seconds,
            dimension_scores=result.dimension_scores or DimensionScores(),
            final_score=result.final_score,
            boosts_applied=list(result.boosts_applied),
            good_because=list(result.good_because),
            instructor_tier=result.instructor_tier,
            difficulty_level=result.difficulty_level,
            quality_estimate=classification.quality_estimate,
            belt_levels=list(classification.belt_levels),
            gi_type=classification.gi_type,
            run_id=run_id,
            published_at=candidate.published_at,
        )

    def track_emerging(self, result: EvaluationResult, now: Optional[datetime] = None) -> Optional[EmergingTechnique]:
        """Record or bump an emerging technique after an accepted candidate."""
        if not result.accepted or not result.technique_name:
            return None
        now = now or self._clock()
        key = normalize_technique_name(result.technique_name)
        tracked = self.store.get_emerging_technique(key)
        if tracked is not None:
            tracked = tracked.model_copy(update={"video_count": tracked.video_count + 1, "updated_at": now})
            return self.store.upsert_emerging_technique(tracked)

        boosts = " ".join(result.boosts_applied)
        if "emerging_technique" not in boosts:
            return None
        item = EmergingTechnique(
            technique_name=key,
            video_count=1,
            status=EmergingStatus.MONITORING,
            confidence_score=60.0,
            first_seen_at=now,
            updated_at=now,
        )
        logger.info(f"[Evaluator] Tracking emerging technique: {result.technique_name}")
        return self.store.upsert_emerging_technique(item)
