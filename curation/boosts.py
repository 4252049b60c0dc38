"""Declarative boost table applied after the weighted dimension sum."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from core import DifficultyLevel, DimensionScores, InstructorTier, ScoringAdjustments


@dataclass
class BoostContext:
    """Everything a boost condition may look at."""

    scores: DimensionScores
    tier: InstructorTier = InstructorTier.UNKNOWN
    boost_multiplier: float = 1.0
    difficulty_level: Optional[DifficultyLevel] = None
    signals: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    adjustments: Optional[ScoringAdjustments] = None

    def signal(self, dimension: str, key: str, default: Any = None) -> Any:
        return self.signals.get(dimension, {}).get(key, default)


Delta = Union[float, Callable[[BoostContext], float]]


@dataclass(frozen=True)
class BoostRule:
    name: str
    condition: Callable[[BoostContext], bool]
    delta: Delta
    rationale: str

    def amount(self, ctx: BoostContext) -> float:
        return float(self.delta(ctx) if callable(self.delta) else self.delta)


DEFAULT_BOOST_RULES: Tuple[BoostRule, ...] = (
    BoostRule(
        name="elite_instructor",
        condition=lambda ctx: ctx.tier == InstructorTier.ELITE,
        delta=15.0,
        rationale="Elite instructor",
    ),
    BoostRule(
        name="high_quality_instructor",
        condition=lambda ctx: ctx.tier == InstructorTier.HIGH_QUALITY,
        delta=5.0,
        rationale="Known quality instructor",
    ),
    BoostRule(
        name="instructor_multiplier",
        condition=lambda ctx: ctx.boost_multiplier > 1.0,
        delta=lambda ctx: (ctx.boost_multiplier - 1.0) * 20.0,
        rationale="Instructor priority multiplier",
    ),
    BoostRule(
        name="coverage_gap",
        condition=lambda ctx: ctx.signal("coverage_balance", "gap_boost", 0.0) > 0,
        delta=lambda ctx: ctx.signal("coverage_balance", "gap_boost", 0.0),
        rationale="Technique under-covered",
    ),
    BoostRule(
        name="level_gap",
        condition=lambda ctx: bool(ctx.signal("coverage_balance", "level_gap", False)),
        delta=5.0,
        rationale="Least-covered difficulty level for this technique",
    ),
    BoostRule(
        name="emerging_technique",
        condition=lambda ctx: ctx.signal("emerging_technique", "emerging_boost", 0.0) > 0,
        delta=lambda ctx: ctx.signal("emerging_technique", "emerging_boost", 0.0),
        rationale="Emerging technique",
    ),
    BoostRule(
        name="beginner_fundamentals",
        condition=lambda ctx: bool(ctx.signal("belt_level_fit", "beginner_fundamentals", False))
        and ctx.difficulty_level == DifficultyLevel.BEGINNER,
        delta=5.0,
        rationale="Beginner fundamentals",
    ),
    BoostRule(
        name="strong_user_feedback",
        condition=lambda ctx: ctx.scores.user_feedback >= 75.0,
        delta=5.0,
        rationale="Strong user engagement",
    ),
    BoostRule(
        name="avoided_instructor",
        condition=lambda ctx: ctx.adjustments is not None and ctx.adjustments.instructor_adjustment < 0,
        delta=-10.0,
        rationale="User avoids this instructor",
    ),
)


def apply_boosts(
    base_score: float,
    ctx: BoostContext,
    rules: Sequence[BoostRule] = DEFAULT_BOOST_RULES,
) -> Tuple[float, List[str]]:
    """Evaluate every rule uniformly; returns (boosted score, applied labels)."""
    score = float(base_score)
    applied: List[str] = []
    for rule in rules:
        if not rule.condition(ctx):
            continue
        amount = rule.amount(ctx)
        if not amount:
            continue
        score += amount
        applied.append(f"{rule.name}: {amount:+.0f} ({rule.rationale})")
    return score, applied
