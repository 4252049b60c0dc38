from __future__ import annotations

import json

import pytest

from core import DifficultyLevel, DimensionScores, InstructorTier, KnowledgeRecord, ScoringAdjustments
from curation import BoostContext, BoostRule, Catalog, QueryPlanner, apply_boosts, normalize_technique_name
from storage import InMemoryCurationStore
from utils.exceptions import ConfigurationError


def test_normalize_technique_name() -> None:
    assert normalize_technique_name("De La Riva  Guard!") == "de_la_riva_guard"
    assert normalize_technique_name("x-guard") == "x_guard"
    assert normalize_technique_name(None) == ""


def test_catalog_lookups() -> None:
    catalog = Catalog.default()

    assert catalog.find_technique("arm bar").name == "Armbar"
    assert catalog.find_technique("Juji Gatame").name == "Armbar"
    assert catalog.find_technique("flying unicorn") is None
    assert catalog.match_technique_in_text("My favourite knee slice details").name == "Knee Cut Pass"
    assert catalog.find_instructor("john danaher").tier == InstructorTier.ELITE
    assert catalog.tier_for("Jon Thomas") == InstructorTier.HIGH_QUALITY
    assert catalog.tier_for("Nobody Special") == InstructorTier.UNKNOWN
    assert catalog.target_for("Armbar") == 50


def test_catalog_from_file(tmp_path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            {
                "techniques": [{"name": "Imanari Roll", "target_count": 5, "aliases": ["imanari"]}],
                "instructors": [{"name": "Coach Local", "tier": "high_quality", "channel_ids": ["UC123"]}],
                "default_target": 20,
            }
        ),
        encoding="utf-8",
    )

    catalog = Catalog.from_file(path)

    assert catalog.target_for("imanari") == 5
    assert catalog.target_for("Armbar") == 20
    assert catalog.find_instructor(channel_id="UC123").name == "Coach Local"
    with pytest.raises(ConfigurationError):
        Catalog.from_file(tmp_path / "missing.json")


def test_planner_orders_fundamentals_with_least_coverage_first() -> None:
    store = InMemoryCurationStore()
    planner = QueryPlanner(Catalog.default(), store)

    assert planner.plan(3) == [
        "armbar bjj technique",
        "closed guard jiu jitsu tutorial",
        "half guard instructional",
    ]

    store.insert_knowledge_record(
        KnowledgeRecord(id="kr_1", source_url="https://www.youtube.com/watch?v=a", video_id="a", technique_name="Armbar")
    )
    assert planner.plan(2) == ["closed guard bjj technique", "half guard jiu jitsu tutorial"]
    assert planner.coverage_ratio("Armbar") == pytest.approx(0.02)


def test_planner_prefers_configured_queries() -> None:
    planner = QueryPlanner(Catalog.default(), InMemoryCurationStore(), fixed_queries=["  leg lock entries ", "", "kimura trap"])

    assert planner.plan(5) == ["leg lock entries", "kimura trap"]
    assert planner.plan(1) == ["leg lock entries"]


def test_boosts_apply_in_table_order() -> None:
    ctx = BoostContext(
        scores=DimensionScores(user_feedback=80.0),
        tier=InstructorTier.HIGH_QUALITY,
        boost_multiplier=1.5,
        difficulty_level=DifficultyLevel.BEGINNER,
        signals={"belt_level_fit": {"beginner_fundamentals": True}},
        adjustments=ScoringAdjustments(instructor_adjustment=-15.0),
    )

    score, labels = apply_boosts(60.0, ctx)

    assert score == 60.0 + 5 + 10 + 5 + 5 - 10
    assert [label.split(":")[0] for label in labels] == [
        "high_quality_instructor",
        "instructor_multiplier",
        "beginner_fundamentals",
        "strong_user_feedback",
        "avoided_instructor",
    ]


def test_boost_rules_with_zero_delta_are_not_labelled() -> None:
    rules = (
        BoostRule(name="always_zero", condition=lambda ctx: True, delta=0.0, rationale="noop"),
        BoostRule(name="flat", condition=lambda ctx: True, delta=lambda ctx: 3.0, rationale="flat bonus"),
    )

    score, labels = apply_boosts(10.0, BoostContext(scores=DimensionScores()), rules)

    assert score == 13.0
    assert labels == ["flat: +3 (flat bonus)"]
