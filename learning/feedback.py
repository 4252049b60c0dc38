"""Feedback recording, instructor credibility and per-user scoring adjustments."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Union
from uuid import uuid4

from core import (
    FeedbackAction,
    FeedbackEvent,
    InstructorPerformance,
    ScoringAdjustments,
    UserLearningProfile,
)
from storage.base import CurationStore


logger = logging.getLogger(__name__)

BASE_CREDIBILITY = 20.0
FAVORITE_ADJUSTMENT = 5.0
AVOID_ADJUSTMENT = -15.0

ACTION_DELTAS: Dict[FeedbackAction, float] = {
    FeedbackAction.CLICKED: 5.0,
    FeedbackAction.MULTIPLE_VIEWS: 5.0,
    FeedbackAction.SKIPPED: -5.0,
    FeedbackAction.REPLIED_BAD: -15.0,
    FeedbackAction.NO_ACTION: 0.0,
}

_POSITIVE_ACTIONS = {FeedbackAction.CLICKED, FeedbackAction.MULTIPLE_VIEWS}
_NEGATIVE_ACTIONS = {FeedbackAction.SKIPPED, FeedbackAction.REPLIED_BAD}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_credibility(click_rate: float, skip_rate: float, bad_rate: float) -> float:
    """Fixed-rule credibility from percentage rates, clamped to [0, 100]. No time decay."""
    score = BASE_CREDIBILITY
    if click_rate > 30.0:
        score += 5.0
    if skip_rate > 20.0:
        score -= 5.0
    if bad_rate > 10.0:
        score -= 5.0
    return max(0.0, min(100.0, score))


def _rate(count: int, total: int) -> float:
    return round(count / total * 100.0, 2) if total > 0 else 0.0


class FeedbackLoop:
    """Turns user reactions into aggregate state read by the evaluator on later runs."""

    def __init__(
        self,
        store: CurationStore,
        *,
        window_days: int = 30,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.window_days = int(window_days)
        self._clock = clock or _utcnow

    def record_feedback(
        self,
        user_id: str,
        instructor: str,
        video_id: str,
        action: Union[FeedbackAction, str],
        technique: Optional[str] = None,
    ) -> InstructorPerformance:
        """
        Append a FeedbackEvent and update profile + instructor aggregates.

        Both aggregates are written with the event in one store call.

        Returns:
            The updated InstructorPerformance
        """
        action = FeedbackAction(action)
        user_id = str(user_id or "").strip()
        instructor = str(instructor or "").strip()
        if not user_id or not instructor:
            raise ValueError("user_id and instructor are required")

        now = self._clock()
        event = FeedbackEvent(
            id=f"fb_{uuid4().hex[:12]}",
            user_id=user_id,
            video_id=str(video_id or "").strip(),
            instructor=instructor,
            technique=(technique or "").strip() or None,
            action=action,
            created_at=now,
        )

        profile = self.store.get_user_profile(user_id) or UserLearningProfile(user_id=user_id)
        favorites = [name for name in profile.favorite_instructors if name != instructor]
        avoid = [name for name in profile.avoid_instructors if name != instructor]
        if action in _POSITIVE_ACTIONS:
            favorites.append(instructor)
        elif action in _NEGATIVE_ACTIONS:
            avoid.append(instructor)
        else:
            favorites = list(profile.favorite_instructors)
            avoid = list(profile.avoid_instructors)
        profile = profile.model_copy(
            update={"favorite_instructors": favorites, "avoid_instructors": avoid, "updated_at": now}
        )

        perf = self.store.get_instructor_performance(instructor) or InstructorPerformance(instructor_name=instructor)
        total_sent = perf.total_sent + 1
        total_clicks = perf.total_clicks + (1 if action == FeedbackAction.CLICKED else 0)
        total_skips = perf.total_skips + (1 if action == FeedbackAction.SKIPPED else 0)
        total_bad = perf.total_bad_ratings + (1 if action == FeedbackAction.REPLIED_BAD else 0)
        click_rate = _rate(total_clicks, total_sent)
        skip_rate = _rate(total_skips, total_sent)
        bad_rate = _rate(total_bad, total_sent)
        perf = perf.model_copy(
            update={
                "total_sent": total_sent,
                "total_clicks": total_clicks,
                "total_skips": total_skips,
                "total_bad_ratings": total_bad,
                "click_rate": click_rate,
                "skip_rate": skip_rate,
                "bad_rate": bad_rate,
                "credibility_score": compute_credibility(click_rate, skip_rate, bad_rate),
                "updated_at": now,
            }
        )

        self.store.record_feedback(event, profile, perf)
        logger.info(
            f"[Feedback] {user_id} {action.value} {instructor} -> credibility {perf.credibility_score:.0f}"
        )
        return perf

    def get_scoring_adjustments(
        self,
        user_id: str,
        instructor: Optional[str],
        technique: Optional[str] = None,
    ) -> ScoringAdjustments:
        """
        Instructor adjustment from the profile (+5 favourite, -15 avoided) and a
        technique adjustment summed over the user's feedback in the trailing window.
        """
        profile = self.store.get_user_profile(user_id)
        if profile is None:
            return ScoringAdjustments()

        instructor_adjustment = 0.0
        if instructor and instructor in profile.favorite_instructors:
            instructor_adjustment += FAVORITE_ADJUSTMENT
        if instructor and instructor in profile.avoid_instructors:
            instructor_adjustment += AVOID_ADJUSTMENT

        since = self._clock() - timedelta(days=self.window_days)
        events = self.store.list_feedback_events(user_id=user_id, since=since)
        technique_adjustment = sum(ACTION_DELTAS.get(event.action, 0.0) for event in events)

        return ScoringAdjustments(
            instructor_adjustment=instructor_adjustment,
            technique_adjustment=technique_adjustment,
        )

    def get_instructor_credibility(self, instructor: str) -> float:
        perf = self.store.get_instructor_performance(instructor)
        return perf.credibility_score if perf else BASE_CREDIBILITY
