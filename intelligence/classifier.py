"""Instructional-content classification via the LLM layer."""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from core import Candidate, ClassificationResult
from .json_extract import extract_json_object
from .llm import BaseLLM


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a Brazilian jiu-jitsu coach screening YouTube videos for a curated "
    "instructional library. Only real technique instruction qualifies: highlight "
    "reels, match footage, vlogs, podcasts and Q&A do not. Reply with one JSON object only."
)

USER_PROMPT_TEMPLATE = """Classify this video.

Title: {title}
Channel: {channel}
Duration: {duration}
Description:
{description}

Heuristic content hint: {hint}

Return JSON with these keys:
{{
  "is_instructional": true | false,
  "quality": 1-10 (teaching quality estimate),
  "technique": "primary technique name or null",
  "instructor": "instructor full name or null",
  "difficulty": 1-10,
  "belt_levels": ["white", "blue", "purple", "brown", "black"],
  "gi_type": "gi" | "nogi" | "both",
  "category": "guard | passing | submission | escape | takedown | sweep | control | other",
  "key_details": ["..."],
  "problems_solved": ["..."],
  "has_progressions": true | false,
  "reasoning": "one sentence"
}}"""

_HIGHLIGHT_PATTERNS = (
    "highlights", "highlight reel", "compilation", "best of", "top 10",
    "full match", "rolling with", "sparring footage", "destroys",
)
_MATCH_CONTEXT = ("match", "championship", "tournament", "adcc", "worlds", "finals")
_VLOG_PATTERNS = ("vlog", "day in the life", "behind the scenes", "podcast", "interview", "reaction")
_QA_PATTERNS = ("q&a", "q and a", "ask me", "answering questions", "debate", "opinion on")
_INSTRUCTIONAL_PATTERNS = (
    "how to", "tutorial", "technique", "breakdown", "guide", "escape", "submission",
    "guard", "pass", "sweep", "choke", "armbar", "kimura", "triangle", "details",
    "setup", "step by step", "instruction", "drill", "defense", "entry",
)

_GI_ALIASES = {
    "gi": "gi",
    "nogi": "nogi",
    "no-gi": "nogi",
    "no gi": "nogi",
    "both": "both",
}

_TRUE_TEXT = {"true", "yes", "y", "1"}


def detect_content_type(title: str, description: str = "") -> str:
    """Cheap keyword guess: instructional, highlight, vlog, qa or other."""
    text = f"{title} {description}".lower()
    is_match = (" vs " in text or " vs." in text or "versus" in text) and any(k in text for k in _MATCH_CONTEXT)
    if is_match or any(p in text for p in _HIGHLIGHT_PATTERNS):
        return "highlight"
    if any(p in text for p in _VLOG_PATTERNS):
        return "vlog"
    if any(p in text for p in _QA_PATTERNS):
        return "qa"
    if any(p in text for p in _INSTRUCTIONAL_PATTERNS):
        return "instructional"
    return "other"


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value or "").strip().lower() in _TRUE_TEXT


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_text(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    if not text or text.lower() in {"null", "none", "unknown", "n/a"}:
        return None
    return text


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in list(value or []) if str(item or "").strip()]


def _format_duration(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}m{secs:02d}s"


def parse_classification(payload: dict) -> ClassificationResult:
    """Coerce a loosely-typed model payload into a ClassificationResult."""
    quality = max(0.0, min(10.0, _as_float(payload.get("quality", payload.get("quality_estimate")))))
    difficulty_raw = payload.get("difficulty")
    difficulty = None
    if difficulty_raw is not None and _as_float(difficulty_raw, -1.0) >= 0:
        difficulty = int(max(1, min(10, round(_as_float(difficulty_raw)))))
    gi_type = _GI_ALIASES.get(str(payload.get("gi_type") or "").strip().lower())

    return ClassificationResult(
        is_instructional=_as_bool(payload.get("is_instructional")),
        quality_estimate=quality,
        technique_name=_as_text(payload.get("technique")),
        instructor_name=_as_text(payload.get("instructor")),
        difficulty=difficulty,
        belt_levels=[item.lower() for item in _as_list(payload.get("belt_levels"))],
        gi_type=gi_type,
        category=(_as_text(payload.get("category")) or "").lower() or None,
        key_details=_as_list(payload.get("key_details")),
        problems_solved=_as_list(payload.get("problems_solved")),
        has_progressions=_as_bool(payload.get("has_progressions")),
        reasoning=str(payload.get("reasoning") or "").strip(),
        available=True,
    )


class InstructionalClassifier:
    """
    Ask the LLM whether a candidate is genuine instruction.

    Never raises: call failures and unparseable replies map to the neutral
    classification, which the evaluator rejects.
    """

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        *,
        llm_factory: Optional[Callable[[], BaseLLM]] = None,
    ) -> None:
        self._llm = llm
        self._llm_factory = llm_factory
        self.calls = 0

    def _get_llm(self) -> BaseLLM:
        if self._llm is None:
            if self._llm_factory is None:
                from .llm import get_llm
                self._llm_factory = get_llm
            self._llm = self._llm_factory()
        return self._llm

    def build_prompt(self, candidate: Candidate) -> str:
        return USER_PROMPT_TEMPLATE.format(
            title=candidate.title,
            channel=candidate.channel_title or "unknown",
            duration=_format_duration(candidate.duration_seconds),
            description=(candidate.description or "")[:1500],
            hint=detect_content_type(candidate.title, candidate.description),
        )

    def classify(self, candidate: Candidate) -> ClassificationResult:
        self.calls += 1
        try:
            content = self._get_llm().chat(self.build_prompt(candidate), system_prompt=SYSTEM_PROMPT)
        except Exception as exc:
            logger.warning(f"[Classifier] Inference failed for {candidate.video_id}: {exc}")
            return ClassificationResult.neutral("classification unavailable: inference failed")

        payload = extract_json_object(content)
        if payload is None:
            logger.warning(f"[Classifier] Unparseable reply for {candidate.video_id}: {str(content)[:120]!r}")
            return ClassificationResult.neutral("classification unavailable: unparseable reply")

        result = parse_classification(payload)
        logger.debug(
            f"[Classifier] {candidate.video_id} instructional={result.is_instructional} "
            f"quality={result.quality_estimate:.1f}"
        )
        return result
