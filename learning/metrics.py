"""Daily platform metrics over feedback events, with threshold alerts."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from core import DailyMetrics, FeedbackAction, FeedbackEvent
from notifications import Notifier, safe_send
from storage.base import CurationStore


logger = logging.getLogger(__name__)


def _rate(count: int, total: int) -> float:
    return round(count / total * 100.0, 2) if total else 0.0


def duplicate_instructor_violations(events: List[FeedbackEvent]) -> int:
    """Extra deliveries of the same instructor to the same user within the day."""
    pairs = Counter((event.user_id, event.instructor.lower()) for event in events)
    return sum(count - 1 for count in pairs.values() if count > 1)


def build_alerts(metrics: DailyMetrics, skip_alert: float, bad_alert: float) -> List[str]:
    alerts: List[str] = []
    if metrics.skip_rate > skip_alert:
        alerts.append(f"Skip rate above {skip_alert:.0f}%: {metrics.skip_rate:.2f}%")
    if metrics.bad_rate > bad_alert:
        alerts.append(f"BAD rate above {bad_alert:.0f}%: {metrics.bad_rate:.2f}%")
    if metrics.duplicate_instructor_violations > 0:
        alerts.append(f"Duplicate violations detected: {metrics.duplicate_instructor_violations}")
    return alerts


class DailyMetricsAggregator:
    def __init__(
        self,
        store: CurationStore,
        notifier: Optional[Notifier] = None,
        *,
        recipient: str = "admin@localhost",
        skip_alert: float = 15.0,
        bad_alert: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.recipient = recipient
        self.skip_alert = float(skip_alert)
        self.bad_alert = float(bad_alert)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def compute(self, day: date) -> DailyMetrics:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        events = self.store.list_feedback_events(since=start, until=start + timedelta(days=1))
        total = len(events)
        actions = Counter(event.action for event in events)

        metrics = DailyMetrics(
            day=day,
            total_events=total,
            total_users=len({event.user_id for event in events}),
            click_rate=_rate(actions[FeedbackAction.CLICKED], total),
            skip_rate=_rate(actions[FeedbackAction.SKIPPED], total),
            bad_rate=_rate(actions[FeedbackAction.REPLIED_BAD], total),
            diversity_score=_rate(len({event.instructor.lower() for event in events}), total),
            duplicate_instructor_violations=duplicate_instructor_violations(events),
            created_at=self._clock(),
        )
        metrics.alerts = build_alerts(metrics, self.skip_alert, self.bad_alert)
        return metrics

    def record_daily_metrics(self, day: Optional[date] = None) -> DailyMetrics:
        """Persist metrics for ``day`` (yesterday by default) and notify on alerts."""
        day = day or (self._clock().date() - timedelta(days=1))
        metrics = self.store.upsert_daily_metrics(self.compute(day))
        logger.info(
            f"[Metrics] {day.isoformat()} events={metrics.total_events} "
            f"skip={metrics.skip_rate:.1f}% bad={metrics.bad_rate:.1f}% alerts={len(metrics.alerts)}"
        )
        if metrics.alerts:
            body = "\n".join(f"- {alert}" for alert in metrics.alerts)
            safe_send(self.notifier, self.recipient, f"Daily metrics alerts for {day.isoformat()}", body)
        return metrics
