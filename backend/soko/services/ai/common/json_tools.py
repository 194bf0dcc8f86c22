"""Pull the JSON object out of a model reply (prose, code fences and all)."""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)


def _object_end(text: str, start: int) -> int | None:
    """Index just past the ``}`` that closes the ``{`` at *start*.

    Braces inside string literals do not count. ``None`` when unbalanced.
    """
    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return pos + 1
    return None


def _loads_object(candidate: str) -> dict | None:
    try:
        parsed = json.loads(candidate)
    except ValueError:
        logger.debug("Not valid JSON: %s", candidate[:200])
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(text: str) -> dict | None:
    """Return the first ``{...}`` object in *text*, parsed, or ``None``.

    A reply that is entirely JSON is parsed as is. Otherwise the first
    ``{`` is walked to its balancing ``}``. Only that first candidate is
    tried: a malformed object is a failure, not a reason to keep
    scanning. Top-level arrays and scalars are rejected.
    """
    if not text or not text.strip():
        return None
    text = text.strip()

    if text[0] == "{":
        whole = _loads_object(text)
        if whole is not None:
            return whole

    start = text.find("{")
    if start == -1:
        return None
    end = _object_end(text, start)
    if end is None:
        return None
    return _loads_object(text[start:end])
