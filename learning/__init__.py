"""
Learning package
Feedback loop, daily metrics and recommendation outcome evaluation.
"""

from .feedback import ACTION_DELTAS, BASE_CREDIBILITY, FeedbackLoop, compute_credibility
from .metrics import DailyMetricsAggregator, build_alerts, duplicate_instructor_violations
from .outcomes import (
    OutcomeEvaluator,
    attribute,
    immediate_quality,
    long_term_quality,
    overall_quality,
    prediction_accuracy,
    short_term_quality,
)


__all__ = [
    "ACTION_DELTAS",
    "BASE_CREDIBILITY",
    "DailyMetricsAggregator",
    "FeedbackLoop",
    "OutcomeEvaluator",
    "attribute",
    "build_alerts",
    "compute_credibility",
    "duplicate_instructor_violations",
    "immediate_quality",
    "long_term_quality",
    "overall_quality",
    "prediction_accuracy",
    "short_term_quality",
]
