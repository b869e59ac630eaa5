"""
Recover a JSON object from model output that may be wrapped in prose or
markdown code fences.
"""

import json
import re
from typing import Any, Dict, Optional

from core.errors import JSONRecoveryError

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)


def _first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
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
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_json(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output.

    Tries, in order: the whole text, each fenced code block, then the first
    balanced {...} span. Raises JSONRecoveryError when all three fail.
    """
    if text is None or not text.strip():
        raise JSONRecoveryError("Extraction model returned an empty response", raw_text=text or "")

    value = _loads_object(text.strip())
    if value is not None:
        return value

    for block in _FENCE_RE.findall(text):
        value = _loads_object(block)
        if value is not None:
            return value

    span = _first_balanced_object(text)
    if span is not None:
        value = _loads_object(span)
        if value is not None:
            return value

    raise JSONRecoveryError(
        "Could not extract valid JSON from extraction model response", raw_text=text
    )
