"""Quota-aware YouTube Data API v3 client."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core import Candidate, CandidateRef
from utils.exceptions import ConfigurationError, QuotaExceededError, SourceError
from .quota import QuotaTracker


logger = logging.getLogger(__name__)

QUOTA_ERROR_REASONS = frozenset(
    {"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded", "userRateLimitExceeded"}
)

_DURATION_RE = re.compile(
    r"^P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)

_DETAILS_BATCH_SIZE = 50


def parse_iso8601_duration(value: Any) -> int:
    """Parse an ISO-8601 duration (``PT1H2M3S``) into seconds; malformed input is 0."""
    text = str(value or "").strip().upper()
    if not text or text in {"P", "PT"}:
        return 0
    match = _DURATION_RE.match(text)
    if not match:
        return 0
    parts = {key: float(val) if val else 0.0 for key, val in match.groupdict().items()}
    total = (
        parts["weeks"] * 7 * 86400
        + parts["days"] * 86400
        + parts["hours"] * 3600
        + parts["minutes"] * 60
        + parts["seconds"]
    )
    return int(total)


def _parse_datetime(value: Any) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _error_info(response: httpx.Response) -> Dict[str, str]:
    try:
        payload = response.json()
    except ValueError:
        return {"reason": "", "message": response.text[:300]}
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return {"reason": "", "message": str(payload)[:300]}
    reasons = [
        str(item.get("reason") or "")
        for item in list(error.get("errors") or [])
        if isinstance(item, dict)
    ]
    return {"reason": next((r for r in reasons if r), ""), "message": str(error.get("message") or "")}


class YouTubeSourceClient:
    """
    YouTube search/details client guarded by a QuotaTracker.

    Quota exhaustion (predicted or reported by the provider) raises
    QuotaExceededError so callers can stop issuing calls. Every other provider
    failure is logged and surfaces as an empty result.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        quota: Optional[QuotaTracker] = None,
        base_url: str = "https://www.googleapis.com/youtube/v3",
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_wait: Any = None,
    ) -> None:
        self.api_key = (api_key or "").strip() or None
        self.quota = quota or QuotaTracker()
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    @classmethod
    def from_settings(cls, settings=None, *, quota: Optional[QuotaTracker] = None) -> "YouTubeSourceClient":
        if settings is None:
            from config import get_youtube_settings
            settings = get_youtube_settings()
        return cls(
            settings.api_key,
            quota=quota or QuotaTracker.from_settings(settings),
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )

    @property
    def name(self) -> str:
        return "YouTube"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ---- public API -------------------------------------------------------

    def search(self, query: str, max_results: int = 25) -> List[CandidateRef]:
        """search.list for videos matching ``query``."""
        query = str(query or "").strip()
        if not query:
            return []
        params = {
            "part": "snippet",
            "q": query,
            "type": "video",
            "maxResults": max(1, min(50, int(max_results))),
            "relevanceLanguage": "en",
        }
        logger.info(f"[YouTube] Searching: {query}")
        payload = self._call("search", "search", params)
        if payload is None:
            return []

        refs: List[CandidateRef] = []
        for item in list(payload.get("items") or []):
            video_id = str(((item or {}).get("id") or {}).get("videoId") or "").strip()
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            refs.append(
                CandidateRef(
                    video_id=video_id,
                    title=str(snippet.get("title") or ""),
                    description=str(snippet.get("description") or ""),
                    channel_id=str(snippet.get("channelId") or ""),
                    channel_title=str(snippet.get("channelTitle") or ""),
                    published_at=_parse_datetime(snippet.get("publishedAt")),
                )
            )
        logger.info(f"[YouTube] '{query}' -> {len(refs)} results")
        return refs

    def fetch_details(self, ref: Union[CandidateRef, str]) -> Optional[Candidate]:
        """videos.list for one video. None when the video is missing or the call failed."""
        video_id = ref.video_id if isinstance(ref, CandidateRef) else str(ref or "").strip()
        if not video_id:
            return None
        return self.fetch_details_many([video_id]).get(video_id)

    def fetch_details_many(self, refs: Iterable[Union[CandidateRef, str]]) -> Dict[str, Candidate]:
        """Batched videos.list (50 ids per call, one quota unit each)."""
        ids: List[str] = []
        for ref in refs:
            video_id = ref.video_id if isinstance(ref, CandidateRef) else str(ref or "").strip()
            if video_id and video_id not in ids:
                ids.append(video_id)

        details: Dict[str, Candidate] = {}
        for start in range(0, len(ids), _DETAILS_BATCH_SIZE):
            chunk = ids[start:start + _DETAILS_BATCH_SIZE]
            payload = self._call(
                "details",
                "videos",
                {"part": "snippet,contentDetails,statistics", "id": ",".join(chunk)},
            )
            if payload is None:
                continue
            for item in list(payload.get("items") or []):
                candidate = self._to_candidate(item)
                if candidate:
                    details[candidate.video_id] = candidate
        return details

    # ---- internals ---------------------------------------------------------

    @staticmethod
    def _to_candidate(item: Dict[str, Any]) -> Optional[Candidate]:
        video_id = str((item or {}).get("id") or "").strip()
        if not video_id:
            return None
        snippet = item.get("snippet") or {}
        content = item.get("contentDetails") or {}
        stats = item.get("statistics") or {}
        return Candidate(
            video_id=video_id,
            title=str(snippet.get("title") or ""),
            description=str(snippet.get("description") or ""),
            channel_id=str(snippet.get("channelId") or ""),
            channel_title=str(snippet.get("channelTitle") or ""),
            published_at=_parse_datetime(snippet.get("publishedAt")),
            duration_seconds=parse_iso8601_duration(content.get("duration")),
            view_count=_to_int(stats.get("viewCount")),
            like_count=_to_int(stats.get("likeCount")),
            tags=[str(tag) for tag in list(snippet.get("tags") or [])],
        )

    def _call(self, call_type: str, path: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.api_key:
            raise ConfigurationError("YOUTUBE_API_KEY is not configured", {"call_type": call_type})

        if self.quota.is_exhaustion_likely(call_type):
            usage = self.quota.snapshot()
            raise QuotaExceededError(
                "YouTube quota likely exhausted",
                call_type=call_type,
                reset_at=usage.reset_at,
                units_used=usage.units_used,
                daily_limit=usage.daily_limit,
            )

        try:
            payload = self._request_with_retry(path, params)
        except QuotaExceededError:
            raise
        except SourceError as exc:
            logger.error(f"[YouTube] {call_type} call failed: {exc}")
            return None
        except httpx.HTTPError as exc:
            logger.error(f"[YouTube] {call_type} request error after retries: {exc}")
            return None

        self.quota.record_call(call_type)
        return payload

    def _request_with_retry(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self._retry_wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._request(path, params)
        raise SourceError("retry loop exited without result", source="youtube")

    def _request(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(params)
        query["key"] = self.api_key
        with httpx.Client(timeout=self.timeout) as client:
            response = client.get(f"{self.base_url}/{path}", params=query)

        status = int(response.status_code)
        if status in (403, 429):
            info = _error_info(response)
            if status == 429 or info["reason"] in QUOTA_ERROR_REASONS or "quota" in info["message"].lower():
                reset_at = self.quota.mark_exhausted(info["reason"] or f"HTTP {status}")
                raise QuotaExceededError(
                    f"YouTube quota exceeded: {info['reason'] or info['message'] or status}",
                    call_type=path,
                    reset_at=reset_at,
                    status_code=status,
                )
        if status >= 400:
            info = _error_info(response)
            raise SourceError(
                f"YouTube API HTTP {status}: {info['message'] or info['reason']}",
                source="youtube",
                status_code=status,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceError("YouTube API returned invalid JSON", source="youtube") from exc
        if not isinstance(payload, dict):
            raise SourceError("YouTube API returned unexpected payload", source="youtube")
        return payload
