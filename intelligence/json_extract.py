"""Tolerant JSON extraction from free-text model output."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def _balanced_object_end(text: str, start: int) -> int:
    """Index one past the brace closing the object opened at ``start``, or -1."""
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return idx + 1
    return -1


def extract_json_object(content: Any) -> Optional[Dict[str, Any]]:
    """
    Return the first JSON object found in ``content``.

    Accepts bare JSON, fenced ```json blocks and prose with an embedded
    object. Returns None instead of raising when nothing parses.
    """
    text = str(content or "").strip()
    if not text:
        return None

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    candidates = [match.group(1).strip() for match in _FENCE_RE.finditer(text)]
    candidates.append(text)
    for block in candidates:
        for start, ch in enumerate(block):
            if ch != "{":
                continue
            end = _balanced_object_end(block, start)
            if end < 0:
                continue
            try:
                parsed = json.loads(block[start:end])
            except ValueError:
                continue
            if isinstance(parsed, dict):
                return parsed
    return None
