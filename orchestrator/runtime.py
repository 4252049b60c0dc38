"""Shared runtime singletons for CLI and scheduler entrypoints."""

from __future__ import annotations

from threading import RLock
from typing import Dict

from config import get_settings
from curation.evaluator import CandidateEvaluator
from intelligence.classifier import InstructionalClassifier
from learning.feedback import FeedbackLoop
from learning.metrics import DailyMetricsAggregator
from learning.outcomes import OutcomeEvaluator
from notifications import Notifier, get_notifier
from sources.quota import QuotaTracker
from sources.youtube_client import YouTubeSourceClient
from storage import CurationStore, get_store as _build_store
from .recovery import RecoverySweep, RecoveryScheduler
from .service import CurationController


_LOCK = RLock()
_INSTANCES: Dict[str, object] = {}


def _singleton(name: str, factory):
    with _LOCK:
        if name not in _INSTANCES:
            _INSTANCES[name] = factory()
        return _INSTANCES[name]


def reset_runtime() -> None:
    """Drop cached singletons (tests, settings reload)."""
    with _LOCK:
        store = _INSTANCES.get("store")
        _INSTANCES.clear()
    if store is not None:
        store.close()


def get_store() -> CurationStore:
    return _singleton("store", lambda: _build_store(get_settings().storage.database_url))


def get_quota_tracker() -> QuotaTracker:
    return _singleton(
        "quota", lambda: QuotaTracker.from_settings(get_settings().youtube, store=get_store())
    )


def get_source() -> YouTubeSourceClient:
    return _singleton(
        "source",
        lambda: YouTubeSourceClient.from_settings(get_settings().youtube, quota=get_quota_tracker()),
    )


def get_notifier_instance() -> Notifier:
    return _singleton("notifier", lambda: get_notifier(get_settings().notification))


def get_feedback_loop() -> FeedbackLoop:
    return _singleton(
        "feedback",
        lambda: FeedbackLoop(get_store(), window_days=get_settings().learning.feedback_window_days),
    )


def get_evaluator() -> CandidateEvaluator:
    return _singleton(
        "evaluator",
        lambda: CandidateEvaluator.from_settings(
            get_store(),
            InstructionalClassifier(),
            get_settings().curation,
            feedback=get_feedback_loop(),
        ),
    )


def get_controller() -> CurationController:
    return _singleton(
        "controller",
        lambda: CurationController.from_settings(
            get_store(), get_source(), get_evaluator(), get_settings().curation
        ),
    )


def get_recovery_sweep() -> RecoverySweep:
    def _build() -> RecoverySweep:
        settings = get_settings()
        return RecoverySweep(
            get_store(),
            get_notifier_instance(),
            recipient=settings.notification.admin_email,
            threshold_hours=settings.recovery.stuck_threshold_hours,
            history_days=settings.recovery.history_days,
        )

    return _singleton("recovery", _build)


def get_recovery_scheduler() -> RecoveryScheduler:
    return _singleton(
        "scheduler",
        lambda: RecoveryScheduler(
            get_recovery_sweep(), interval_minutes=get_settings().recovery.interval_minutes
        ),
    )


def get_metrics_aggregator() -> DailyMetricsAggregator:
    def _build() -> DailyMetricsAggregator:
        settings = get_settings()
        return DailyMetricsAggregator(
            get_store(),
            get_notifier_instance(),
            recipient=settings.notification.admin_email,
            skip_alert=settings.learning.skip_rate_alert,
            bad_alert=settings.learning.bad_rate_alert,
        )

    return _singleton("metrics", _build)


def get_outcome_evaluator() -> OutcomeEvaluator:
    return _singleton("outcomes", lambda: OutcomeEvaluator(get_store()))
