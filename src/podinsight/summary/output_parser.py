"""
Model Output Parsing

Model responses are untrusted text. This module turns them into plain
dicts (or fails loudly) and offers small coercion helpers used by the
content schemas to clamp values into a typed contract.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import ModelOutputError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _first_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring, ignoring braces inside strings.
    """
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
    if not isinstance(value, dict):
        raise ModelOutputError(f"Expected a JSON object, got {type(value).__name__}")
    return value


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object in a model response.

    Tries, in order: the whole text, the contents of a Markdown code fence,
    then the first balanced {...} substring.

    Raises:
        ModelOutputError: if no JSON object can be recovered
    """
    if text is None or not text.strip():
        raise ModelOutputError("Model returned an empty response")

    stripped = text.strip()
    parsed = _loads_object(stripped)
    if parsed is not None:
        return parsed

    fence = _CODE_FENCE.search(stripped)
    if fence:
        parsed = _loads_object(fence.group(1).strip())
        if parsed is not None:
            logger.debug("Recovered JSON from code fence")
            return parsed

    candidate = _first_balanced_object(stripped)
    if candidate is not None:
        parsed = _loads_object(candidate)
        if parsed is not None:
            logger.warning("Model output was not pure JSON; extracted embedded object")
            return parsed

    raise ModelOutputError(f"No JSON object found in model output: {stripped[:120]!r}")


# --- Coercion helpers ---


def coerce_str(value: Any, default: str = "") -> str:
    """String value or default; None, dicts and lists become the default."""
    if value is None or isinstance(value, (dict, list)):
        return default
    text = str(value).strip()
    return text if text else default


def coerce_optional_str(value: Any) -> Optional[str]:
    text = coerce_str(value)
    return text or None


def coerce_int(value: Any, default: int = 0, minimum: Optional[int] = None) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        number = default
    if minimum is not None and number < minimum:
        number = default if default >= minimum else minimum
    return number


def coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def coerce_list(value: Any, limit: Optional[int] = None) -> List[Any]:
    """List value capped at limit; anything else becomes an empty list."""
    if not isinstance(value, list):
        return []
    return value[:limit] if limit is not None else list(value)


def coerce_str_list(value: Any, limit: Optional[int] = None) -> List[str]:
    """Non-empty strings from a list, capped after filtering."""
    items = [coerce_str(v) for v in coerce_list(value)]
    items = [v for v in items if v]
    return items[:limit] if limit is not None else items


def coerce_choice(value: Any, allowed: Iterable[str], default: str) -> str:
    """Value if it is one of `allowed` (case-insensitive), else default."""
    text = coerce_str(value).lower()
    allowed = tuple(allowed)
    if text in allowed:
        return text
    if value not in (None, ""):
        logger.debug(f"Coerced out-of-vocabulary value {value!r} to {default!r}")
    return default
