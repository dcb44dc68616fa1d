"""
Robust JSON extraction utilities for LLM responses.
"""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA = re.compile(r',\s*([}\]])')


def _balanced_end(text: str, start: int) -> int | None:
    """Index of the brace closing the object opened at ``start``, or None."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return i
    return None


def find_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` region of ``text``, or None.

    Brace depth is counted outside of string literals only, so braces inside
    quoted values and nested objects do not end the region early. An opening
    brace that never closes (stray prose such as "use the { notation") is
    skipped and the scan restarts at the next one.
    """
    if not isinstance(text, str):
        return None

    start = text.find('{')
    while start != -1:
        end = _balanced_end(text, start)
        if end is not None:
            return text[start:end + 1]
        start = text.find('{', start + 1)
    return None


def extract_json_object(text: str) -> Any | None:
    """Extract a JSON object from arbitrary text.

    Handles common LLM output patterns:
    - Leading/trailing prose and fenced code blocks
    - Nested objects and braces inside string values
    - Trailing commas before closing braces/brackets
    Returns None when no balanced region decodes.
    """
    candidate = find_balanced_object(text)
    if candidate is None:
        return None

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    # Clean trailing commas before closing
    cleaned = _TRAILING_COMMA.sub(r'\1', candidate)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return None
