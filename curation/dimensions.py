"""
Seven scoring dimensions for candidate evaluation.

Each function returns a DimensionOutcome with a 0-100 score plus the reasons
and side signals (gap boosts, tier, emerging status) that the boost table and
the evaluator read afterwards.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core import (
    Candidate,
    ClassificationResult,
    DifficultyLevel,
    EmergingStatus,
    EmergingTechnique,
    InstructorPerformance,
    InstructorTier,
    ScoringAdjustments,
)
from storage.base import CurationStore
from .catalog import (
    BRAZILIAN_NAME_MARKERS,
    KNOWN_GYM_MARKERS,
    Catalog,
    TechniqueEntry,
    normalize_technique_name,
)


NEUTRAL_SCORE = 50.0

_UNIQUE_ANGLES = (
    (re.compile(r"\bvs\b|against|counter"), "Specific counter or response"),
    (re.compile(r"mistake|error|wrong"), "Common mistakes breakdown"),
    (re.compile(r"detail|secret|key"), "Key details focus"),
    (re.compile(r"beginner|white belt|first"), "Beginner-friendly approach"),
    (re.compile(r"advanced|complex|high level"), "Advanced variations"),
    (re.compile(r"competition|match|fight"), "Competition application"),
    (re.compile(r"drilling|training|practice"), "Training methodology"),
)

FUNDAMENTAL_KEYWORDS = ("basic", "fundamental", "foundation", "beginner", "first", "introduction", "simple")
ADVANCED_KEYWORDS = ("advanced", "complex", "subtle", "timing", "counter", "transition", "combination", "system", "strategy")
EMERGING_KEYWORDS = ("new", "modern", "latest", "innovation", "2024", "2025", "2026")
EMERGING_CONFIDENCE_THRESHOLD = 60.0


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, float(value)))


def difficulty_level_for(difficulty: Optional[int]) -> Optional[DifficultyLevel]:
    if difficulty is None:
        return None
    if difficulty <= 3:
        return DifficultyLevel.BEGINNER
    if difficulty <= 6:
        return DifficultyLevel.INTERMEDIATE
    return DifficultyLevel.ADVANCED


@dataclass
class DimensionOutcome:
    score: float = NEUTRAL_SCORE
    reasons_good: List[str] = field(default_factory=list)
    reasons_bad: List[str] = field(default_factory=list)
    signals: Dict[str, Any] = field(default_factory=dict)


# ---- 1. instructor authority ------------------------------------------------


def instructor_authority(
    instructor_name: Optional[str],
    candidate: Candidate,
    catalog: Catalog,
    performance: Optional[InstructorPerformance] = None,
) -> DimensionOutcome:
    entry = catalog.find_instructor(instructor_name, candidate.channel_id)
    if entry is None and not instructor_name:
        entry = catalog.detect_instructor_in_text(candidate.title, InstructorTier.ELITE)

    outcome = DimensionOutcome()
    if entry is not None:
        outcome.score = catalog.base_credibility(entry)
        outcome.signals.update(
            {"tier": entry.tier, "instructor_name": entry.name, "boost_multiplier": entry.boost_multiplier}
        )
        if entry.tier == InstructorTier.ELITE:
            outcome.reasons_good.append("Elite instructor with proven track record")
        elif entry.tier == InstructorTier.HIGH_QUALITY:
            outcome.reasons_good.append("Known quality instructor")
    elif instructor_name:
        lowered = instructor_name.lower()
        outcome.score = 40.0
        if any(marker in lowered for marker in KNOWN_GYM_MARKERS):
            outcome.score += 10.0
            outcome.reasons_good.append("Associated with reputable academy")
        if any(marker in lowered for marker in BRAZILIAN_NAME_MARKERS):
            outcome.score += 5.0
        outcome.signals.update({"tier": InstructorTier.UNKNOWN, "instructor_name": instructor_name})
    else:
        outcome.score = 30.0
        outcome.reasons_bad.append("Instructor not identified")
        outcome.signals.update({"tier": InstructorTier.UNKNOWN, "instructor_name": None})

    if performance is not None and performance.total_sent > 0:
        delta = performance.credibility_score - 20.0
        if delta:
            outcome.score += delta
            target = outcome.reasons_good if delta > 0 else outcome.reasons_bad
            target.append(f"Engagement credibility {performance.credibility_score:.0f}/100")

    outcome.score = clamp(outcome.score)
    return outcome


# ---- 2. taxonomy mapping ----------------------------------------------------


def taxonomy_mapping(
    technique_name: Optional[str],
    classification: ClassificationResult,
    catalog: Catalog,
    candidate: Candidate,
) -> DimensionOutcome:
    entry: Optional[TechniqueEntry] = catalog.find_technique(technique_name) if technique_name else None
    if entry is None:
        entry = catalog.match_technique_in_text(candidate.title)

    outcome = DimensionOutcome()
    if entry is None:
        if technique_name:
            outcome.score = 40.0
            outcome.reasons_bad.append(f"Technique '{technique_name}' not in taxonomy")
            outcome.signals["technique_name"] = technique_name
        else:
            outcome.score = 30.0
            outcome.reasons_bad.append("No technique identified")
            outcome.signals["technique_name"] = None
        return outcome

    outcome.score = 85.0
    outcome.reasons_good.append(f"Maps to taxonomy technique {entry.name}")
    outcome.signals.update({"technique_name": entry.name, "technique": entry})

    gi_type = classification.gi_type
    if gi_type and entry.gi_type != "both" and gi_type != "both" and gi_type != entry.gi_type:
        outcome.score -= 20.0
        outcome.reasons_bad.append(f"Gi/no-gi mismatch ({gi_type} vs {entry.gi_type})")

    category = classification.category
    if category and category != "other" and entry.category != "other" and category != entry.category:
        outcome.score -= 10.0
        outcome.reasons_bad.append(f"Category mismatch ({category} vs {entry.category})")

    outcome.score = clamp(outcome.score)
    return outcome


# ---- 3. coverage balance ----------------------------------------------------


def coverage_balance(
    technique_name: Optional[str],
    level: Optional[DifficultyLevel],
    store: CurationStore,
    catalog: Catalog,
) -> DimensionOutcome:
    if not technique_name:
        return DimensionOutcome(score=NEUTRAL_SCORE, signals={"gap_boost": 0.0, "level_gap": False})

    target = max(1, catalog.target_for(technique_name))
    current = store.count_knowledge_records(technique_name=technique_name)
    ratio = current / target

    outcome = DimensionOutcome(score=clamp(100.0 * (1.0 - min(1.0, ratio))))
    common = current >= 10
    if ratio < 0.3:
        gap_boost = 10.0 if common else 25.0
    elif ratio < 0.5:
        gap_boost = 8.0 if common else 15.0
    elif ratio < 0.8:
        gap_boost = 3.0 if common else 5.0
    else:
        gap_boost = 0.0

    level_gap = False
    if level is not None and current > 0:
        counts = {
            item: store.count_knowledge_records(technique_name=technique_name, difficulty_level=item)
            for item in DifficultyLevel
        }
        level_gap = counts[level] == min(counts.values()) and counts[level] < max(counts.values())

    if gap_boost:
        outcome.reasons_good.append(f"Fills coverage gap ({current}/{target} videos)")
    else:
        outcome.reasons_bad.append(f"Technique well covered ({current}/{target} videos)")
    if level_gap and level is not None:
        outcome.reasons_good.append(f"Fills {level.value} level gap")

    outcome.signals.update(
        {
            "current_count": current,
            "target_count": target,
            "needs_more": ratio < 0.8,
            "gap_boost": gap_boost,
            "level_gap": level_gap,
        }
    )
    return outcome


# ---- 4. unique value --------------------------------------------------------


def unique_angle(title: str) -> Optional[str]:
    lowered = str(title or "").lower()
    for pattern, angle in _UNIQUE_ANGLES:
        if pattern.search(lowered):
            return angle
    return None


def unique_value(
    candidate: Candidate,
    technique_name: Optional[str],
    instructor_name: Optional[str],
    classification: ClassificationResult,
    store: CurationStore,
) -> DimensionOutcome:
    outcome = DimensionOutcome(score=70.0)
    existing = store.list_knowledge_records(technique_name=technique_name) if technique_name else []

    same_instructor = [
        record for record in existing
        if instructor_name and (record.instructor_name or "").lower() == instructor_name.lower()
    ]
    if same_instructor:
        outcome.score -= min(30.0, 15.0 + 5.0 * (len(same_instructor) - 1))
        outcome.reasons_bad.append(f"{instructor_name} already covers {technique_name} ({len(same_instructor)} videos)")

    if classification.problems_solved:
        outcome.score += 20.0
        outcome.reasons_good.append(f"Solves specific problems: {', '.join(classification.problems_solved[:3])}")

    angle = unique_angle(candidate.title)
    if angle:
        outcome.score += 10.0
        outcome.reasons_good.append(angle)
        outcome.signals["angle"] = angle

    if existing and instructor_name and not same_instructor:
        outcome.score += 10.0
        outcome.reasons_good.append("Adds instructor variety")

    outcome.score = clamp(outcome.score)
    return outcome


# ---- 5. user feedback -------------------------------------------------------


def user_feedback(
    performance: Optional[InstructorPerformance],
    adjustments: Optional[ScoringAdjustments] = None,
    *,
    min_sample: int = 5,
) -> DimensionOutcome:
    outcome = DimensionOutcome(score=NEUTRAL_SCORE)
    if performance is not None and performance.total_sent >= min_sample:
        delta = 0.3 * performance.click_rate - 0.3 * performance.skip_rate - 0.5 * performance.bad_rate
        outcome.score += delta
        if delta > 0:
            outcome.reasons_good.append(f"Instructor engagement: {performance.click_rate:.0f}% click rate")
        elif delta < 0:
            outcome.reasons_bad.append(
                f"Instructor engagement: {performance.skip_rate:.0f}% skips, {performance.bad_rate:.0f}% bad"
            )
    if adjustments is not None and adjustments.total:
        outcome.score += adjustments.total
        target = outcome.reasons_good if adjustments.total > 0 else outcome.reasons_bad
        target.append(f"User preference adjustment {adjustments.total:+.0f}")
        outcome.signals["adjustments"] = adjustments
    outcome.score = clamp(outcome.score)
    return outcome


# ---- 6. belt-level fit ------------------------------------------------------


def _target_levels(difficulty: Optional[int], belt_levels: List[str]) -> List[str]:
    if belt_levels:
        return belt_levels
    if difficulty is None:
        return []
    if difficulty <= 3:
        return ["white", "blue"]
    if difficulty <= 6:
        return ["blue", "purple"]
    return ["purple", "brown", "black"]


def belt_level_fit(
    classification: ClassificationResult,
    candidate: Candidate,
    technique: Optional[TechniqueEntry] = None,
) -> DimensionOutcome:
    outcome = DimensionOutcome(score=70.0)
    levels = _target_levels(classification.difficulty, classification.belt_levels)
    text = " ".join([candidate.title] + classification.key_details).lower()

    fundamentals = any(keyword in text for keyword in FUNDAMENTAL_KEYWORDS) or bool(technique and technique.fundamental)
    advanced = any(keyword in text for keyword in ADVANCED_KEYWORDS)

    if fundamentals and "white" in levels:
        outcome.score += 15.0
        outcome.reasons_good.append("Fundamentals for white belts")
        outcome.signals["beginner_fundamentals"] = True
    if advanced and any(level in levels for level in ("purple", "brown", "black")):
        outcome.score += 10.0
        outcome.reasons_good.append("Advanced details for purple belt and above")
    if classification.has_progressions:
        outcome.score += 5.0
        outcome.reasons_good.append("Includes progressions")

    outcome.signals["target_levels"] = levels
    outcome.score = clamp(outcome.score)
    return outcome


# ---- 7. emerging technique --------------------------------------------------


def emerging_technique(
    technique_name: Optional[str],
    instructor_name: Optional[str],
    candidate: Candidate,
    store: CurationStore,
    catalog: Catalog,
    now: Optional[datetime] = None,
) -> DimensionOutcome:
    now = now or datetime.now(timezone.utc)
    if not technique_name:
        return DimensionOutcome(score=NEUTRAL_SCORE, signals={"emerging_boost": 0.0})

    tracked: Optional[EmergingTechnique] = store.get_emerging_technique(normalize_technique_name(technique_name))
    outcome = DimensionOutcome()
    if tracked is not None:
        if tracked.status == EmergingStatus.VALIDATED:
            outcome.score, boost = 90.0, 20.0
        else:
            outcome.score, boost = 70.0, 15.0
        if tracked.confidence_score > 70:
            outcome.score += 5.0
            boost += 5.0
        outcome.reasons_good.append(f"Emerging technique ({tracked.status.value})")
        outcome.signals.update({"emerging_boost": boost, "tracked": tracked})
        outcome.score = clamp(outcome.score)
        return outcome

    confidence = 40.0
    if candidate.published_at is not None and now - candidate.published_at < timedelta(days=182):
        confidence += 20.0
    elite_names = {name.lower() for name in catalog.names_for_tier(InstructorTier.ELITE)}
    if instructor_name and instructor_name.lower() in elite_names:
        confidence += 30.0
    if any(keyword in f"{technique_name} {candidate.title}".lower() for keyword in EMERGING_KEYWORDS):
        confidence += 10.0

    outcome.score = clamp(confidence)
    is_new = confidence >= EMERGING_CONFIDENCE_THRESHOLD and catalog.find_technique(technique_name) is None
    outcome.signals.update({"emerging_boost": 10.0 if is_new else 0.0, "newly_emerging": is_new, "confidence": confidence})
    if is_new:
        outcome.reasons_good.append("Possible emerging technique")
    return outcome
