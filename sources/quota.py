"""Daily quota predictor for the YouTube Data API."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from core import QuotaUsage
from storage.base import CurationStore
from utils.exceptions import StorageError


logger = logging.getLogger(__name__)

DEFAULT_CALL_COSTS: Dict[str, int] = {
    "search": 100,
    "details": 1,
    "channel": 1,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaTracker:
    """
    Tracks estimated quota units per provider day.

    The provider resets quota at midnight in its own timezone (Pacific for
    YouTube), so counters roll over on the local day boundary rather than UTC.
    With a ``store`` the day's usage is loaded on construction and saved after
    every change, so separate processes share one running total.
    """

    def __init__(
        self,
        *,
        daily_limit: int = 10000,
        costs: Optional[Dict[str, int]] = None,
        safety_ratio: float = 0.95,
        reset_timezone: str = "America/Los_Angeles",
        clock: Optional[Callable[[], datetime]] = None,
        store: Optional[CurationStore] = None,
    ) -> None:
        self.daily_limit = int(daily_limit)
        self.costs = dict(DEFAULT_CALL_COSTS)
        self.costs.update(costs or {})
        self.safety_ratio = max(0.0, min(1.0, float(safety_ratio)))
        self._tz = ZoneInfo(reset_timezone)
        self._clock = clock or _utcnow
        self._store = store
        self._lock = Lock()

        now = self._clock()
        self._day = self._quota_day(now)
        self._calls: Dict[str, int] = {name: 0 for name in self.costs}
        self._exhausted = False
        self._load()

    @classmethod
    def from_settings(cls, settings=None, **kwargs) -> "QuotaTracker":
        if settings is None:
            from config import get_youtube_settings
            settings = get_youtube_settings()
        return cls(
            daily_limit=settings.daily_quota_limit,
            costs={
                "search": settings.search_cost,
                "details": settings.details_cost,
                "channel": settings.channel_cost,
            },
            safety_ratio=settings.quota_safety_ratio,
            reset_timezone=settings.quota_reset_timezone,
            **kwargs,
        )

    def _load(self) -> None:
        if self._store is None:
            return
        usage = self._store.get_quota_usage(self._day)
        if usage is None:
            return
        for name, count in usage.calls.items():
            self._calls[name] = int(count)
        self._exhausted = usage.exhausted
        logger.info(f"[Quota] Loaded {self._units_used()} units used on {self._day}")

    def _save(self, now: datetime) -> None:
        if self._store is None:
            return
        usage = QuotaUsage(
            quota_day=self._day,
            calls=dict(self._calls),
            units_used=self._units_used(),
            daily_limit=self.daily_limit,
            exhausted=self._exhausted,
            reset_at=self.next_reset(now),
        )
        try:
            self._store.save_quota_usage(usage)
        except StorageError as exc:
            logger.warning(f"[Quota] Could not persist usage for {self._day}: {exc}")

    def _quota_day(self, now: datetime) -> str:
        return now.astimezone(self._tz).date().isoformat()

    def next_reset(self, now: Optional[datetime] = None) -> datetime:
        """Next provider midnight, in UTC."""
        local = (now or self._clock()).astimezone(self._tz)
        midnight = datetime.combine(local.date() + timedelta(days=1), time(0, 0), tzinfo=self._tz)
        return midnight.astimezone(timezone.utc)

    def _roll_over(self, now: datetime) -> None:
        day = self._quota_day(now)
        if day == self._day:
            return
        logger.info(f"[Quota] New quota day {day}, resetting counters (previous {self._day})")
        self._day = day
        self._calls = {name: 0 for name in self.costs}
        self._exhausted = False
        self._load()

    def _units_used(self) -> int:
        return sum(count * self.costs.get(name, 1) for name, count in self._calls.items())

    def cost_of(self, call_type: str) -> int:
        return int(self.costs.get(call_type, 1))

    @property
    def safe_limit(self) -> float:
        return self.daily_limit * self.safety_ratio

    def is_exhaustion_likely(self, call_type: str = "search") -> bool:
        """True when the next call of this type would pass the safe threshold."""
        with self._lock:
            self._roll_over(self._clock())
            if self._exhausted:
                return True
            return self._units_used() + self.cost_of(call_type) > self.safe_limit

    def record_call(self, call_type: str, count: int = 1) -> int:
        with self._lock:
            now = self._clock()
            self._roll_over(now)
            self._calls[call_type] = self._calls.get(call_type, 0) + max(0, int(count))
            self._save(now)
            return self._units_used()

    def mark_exhausted(self, reason: str = "") -> datetime:
        """Record provider-reported exhaustion. Returns the reset time."""
        with self._lock:
            now = self._clock()
            self._roll_over(now)
            self._exhausted = True
            self._save(now)
            reset_at = self.next_reset(now)
        logger.warning(f"[Quota] Marked exhausted until {reset_at.isoformat()} {reason}".rstrip())
        return reset_at

    def force_reset(self, reason: str = "manual") -> None:
        with self._lock:
            now = self._clock()
            self._calls = {name: 0 for name in self.costs}
            self._exhausted = False
            self._day = self._quota_day(now)
            self._save(now)
        logger.info(f"[Quota] Counters force-reset ({reason})")

    def snapshot(self) -> QuotaUsage:
        with self._lock:
            now = self._clock()
            self._roll_over(now)
            return QuotaUsage(
                quota_day=self._day,
                calls=dict(self._calls),
                units_used=self._units_used(),
                daily_limit=self.daily_limit,
                exhausted=self._exhausted,
                reset_at=self.next_reset(now),
            )
