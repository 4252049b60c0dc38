from __future__ import annotations

from datetime import datetime, timezone

from core import (
    Candidate,
    ClassificationResult,
    Decision,
    DifficultyLevel,
    EmergingStatus,
    EmergingTechnique,
    EvaluationContext,
    InstructorTier,
    KnowledgeRecord,
)
from curation import CandidateEvaluator, Catalog
from learning import FeedbackLoop
from storage import InMemoryCurationStore


NOW = datetime(2026, 5, 1, 12, tzinfo=timezone.utc)


class _FakeClassifier:
    def __init__(self, result: ClassificationResult) -> None:
        self.result = result
        self.calls = 0

    def classify(self, candidate: Candidate) -> ClassificationResult:
        self.calls += 1
        return self.result


class _BrokenCountStore(InMemoryCurationStore):
    def count_knowledge_records(self, **kwargs) -> int:
        raise RuntimeError("count unavailable")


def _candidate(video_id: str = "vid1", *, title: str = "Armbar details for beginners", duration: int = 600) -> Candidate:
    return Candidate(
        video_id=video_id,
        title=title,
        channel_title="Grappling Lab",
        duration_seconds=duration,
    )


def _elite_armbar() -> ClassificationResult:
    return ClassificationResult(
        is_instructional=True,
        quality_estimate=9.0,
        technique_name="Armbar",
        instructor_name="John Danaher",
        difficulty=2,
        belt_levels=["white"],
        category="submission",
        problems_solved=["losing the arm on the finish"],
        has_progressions=True,
    )


def _evaluator(store, classification: ClassificationResult, **kwargs):
    classifier = _FakeClassifier(classification)
    evaluator = CandidateEvaluator(store, classifier, clock=lambda: NOW, **kwargs)
    return evaluator, classifier


def test_short_video_rejected_without_classifier_call() -> None:
    evaluator, classifier = _evaluator(InMemoryCurationStore(), _elite_armbar())

    result = evaluator.evaluate(_candidate(duration=90))

    assert result.decision == Decision.REJECT
    assert result.rejected_by_filter == "duration"
    assert "90s" in result.reason
    assert classifier.calls == 0


def test_duplicate_source_url_rejected_before_classification() -> None:
    store = InMemoryCurationStore()
    store.insert_knowledge_record(
        KnowledgeRecord(id="kr_1", source_url=_candidate().source_url, video_id="vid1")
    )
    evaluator, classifier = _evaluator(store, _elite_armbar())

    result = evaluator.evaluate(_candidate())

    assert result.rejected_by_filter == "duplicate"
    assert classifier.calls == 0


def test_unavailable_classification_is_rejected() -> None:
    evaluator, _ = _evaluator(
        InMemoryCurationStore(),
        ClassificationResult.neutral("classification unavailable: inference failed"),
    )

    result = evaluator.evaluate(_candidate())

    assert result.decision == Decision.REJECT
    assert result.rejected_by_filter == "classification"
    assert "classification unavailable" in result.reason


def test_low_quality_estimate_is_rejected() -> None:
    weak = _elite_armbar().model_copy(update={"quality_estimate": 6.5})
    evaluator, _ = _evaluator(InMemoryCurationStore(), weak)

    result = evaluator.evaluate(_candidate())

    assert result.rejected_by_filter == "quality"
    assert result.dimension_scores is None


def test_elite_instructor_on_uncovered_technique_is_accepted() -> None:
    evaluator, _ = _evaluator(InMemoryCurationStore(), _elite_armbar())

    result = evaluator.evaluate(_candidate())

    assert result.decision == Decision.ACCEPT
    assert result.final_score == 100.0
    assert result.reason.startswith("Quality score: 100.0/100")
    assert result.instructor_tier == InstructorTier.ELITE
    assert result.technique_name == "Armbar"
    assert result.difficulty_level == DifficultyLevel.BEGINNER
    assert result.dimension_scores.instructor_authority == 85.0
    assert result.dimension_scores.coverage_balance == 100.0
    labels = " ".join(result.boosts_applied)
    assert "elite_instructor: +15" in labels
    assert "coverage_gap: +25" in labels
    assert "beginner_fundamentals: +5" in labels
    assert result.dimension_failures == []


def test_unknown_instructor_on_saturated_technique_scores_below_threshold() -> None:
    store = InMemoryCurationStore()
    store.insert_knowledge_record(
        KnowledgeRecord(
            id="kr_1",
            source_url="https://www.youtube.com/watch?v=other",
            video_id="other",
            technique_name="Mystery Move",
            instructor_name="Someone Else",
        )
    )
    classification = ClassificationResult(
        is_instructional=True,
        quality_estimate=7.5,
        technique_name="Mystery Move",
        difficulty=5,
    )
    evaluator, _ = _evaluator(store, classification, catalog=Catalog([], [], default_target=1))

    result = evaluator.evaluate(_candidate(title="Mystery move"))

    assert result.decision == Decision.REJECT
    assert result.final_score == 43.5
    assert result.reason == "Score too low: 43.5/71 required"
    assert result.boosts_applied == []


def test_failing_dimension_falls_back_to_neutral() -> None:
    evaluator, _ = _evaluator(_BrokenCountStore(), _elite_armbar())

    result = evaluator.evaluate(_candidate())

    assert result.dimension_failures == ["coverage_balance"]
    assert result.dimension_scores.coverage_balance == 50.0
    assert result.decision == Decision.ACCEPT


def test_avoided_instructor_lowers_score_for_that_user() -> None:
    store = InMemoryCurationStore()
    feedback = FeedbackLoop(store, clock=lambda: NOW)
    feedback.record_feedback("user_1", "John Danaher", "old_video", "replied_bad")
    baseline, _ = _evaluator(InMemoryCurationStore(), _elite_armbar())
    evaluator, _ = _evaluator(store, _elite_armbar(), feedback=feedback)

    plain = baseline.evaluate(_candidate(title="Armbar finish"), EvaluationContext(now=NOW))
    personal = evaluator.evaluate(_candidate(title="Armbar finish"), EvaluationContext(user_id="user_1", now=NOW))

    assert personal.dimension_scores.user_feedback < plain.dimension_scores.user_feedback
    assert any(label.startswith("avoided_instructor: -10") for label in personal.boosts_applied)


def test_tracked_emerging_technique_gets_boost_and_count_bump() -> None:
    store = InMemoryCurationStore()
    store.upsert_emerging_technique(
        EmergingTechnique(technique_name="armbar", video_count=2, status=EmergingStatus.VALIDATED, confidence_score=80)
    )
    evaluator, _ = _evaluator(store, _elite_armbar())

    result = evaluator.evaluate(_candidate())
    tracked = evaluator.track_emerging(result, NOW)

    assert result.dimension_scores.emerging_technique == 95.0
    assert any(label.startswith("emerging_technique: +25") for label in result.boosts_applied)
    assert tracked is not None
    assert tracked.video_count == 3


def test_build_record_copies_scores_and_provenance() -> None:
    evaluator, _ = _evaluator(InMemoryCurationStore(), _elite_armbar())
    candidate = _candidate()
    result = evaluator.evaluate(candidate)

    record = evaluator.build_record(candidate, result, run_id="run_1")

    assert record.id.startswith("kr_")
    assert record.source_url == candidate.source_url
    assert record.final_score == result.final_score
    assert record.run_id == "run_1"
    assert record.quality_estimate == 9.0
    assert record.boosts_applied == result.boosts_applied
