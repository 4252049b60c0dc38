"""Quota-aware external video sources."""

from .quota import DEFAULT_CALL_COSTS, QuotaTracker
from .youtube_client import QUOTA_ERROR_REASONS, YouTubeSourceClient, parse_iso8601_duration

__all__ = [
    "DEFAULT_CALL_COSTS",
    "QUOTA_ERROR_REASONS",
    "QuotaTracker",
    "YouTubeSourceClient",
    "parse_iso8601_duration",
]
