"""
Curation package
Catalog, scoring dimensions, boost table, evaluator and query planning.
"""

from .boosts import DEFAULT_BOOST_RULES, BoostContext, BoostRule, apply_boosts
from .catalog import Catalog, InstructorEntry, TechniqueEntry, normalize_technique_name
from .dimensions import NEUTRAL_SCORE, DimensionOutcome, difficulty_level_for
from .evaluator import ACCEPT_THRESHOLD, DIMENSION_WEIGHTS, CandidateEvaluator, weighted_score
from .planner import QUERY_TEMPLATES, QueryPlanner


__all__ = [
    "ACCEPT_THRESHOLD",
    "BoostContext",
    "BoostRule",
    "CandidateEvaluator",
    "Catalog",
    "DEFAULT_BOOST_RULES",
    "DIMENSION_WEIGHTS",
    "DimensionOutcome",
    "InstructorEntry",
    "NEUTRAL_SCORE",
    "QUERY_TEMPLATES",
    "QueryPlanner",
    "TechniqueEntry",
    "apply_boosts",
    "difficulty_level_for",
    "normalize_technique_name",
    "weighted_score",
]
