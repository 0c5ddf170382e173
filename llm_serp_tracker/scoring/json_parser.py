"""
Permissive JSON parsing for surface responses.

Models are asked for strict JSON but regularly wrap it in markdown fences or
surround it with prose. parse_json_permissive() tries, in order:

1. strict json.loads on the whole text
2. json.loads after stripping a markdown code fence
3. json.loads on the substring from the first "{" to the last "}"
4. give up and return None

Example:
    >>> parse_json_permissive('Sure! ```json\\n{"a": 1}\\n```')
    {'a': 1}
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# ```json ... ``` or ``` ... ```, anywhere in the text
CODE_FENCE_PATTERN = re.compile(r"```(?:[a-zA-Z0-9_-]+)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def strip_code_fence(text: str) -> str | None:
    """
    Return the body of the first markdown code fence, or None if there is none.

    Example:
        >>> strip_code_fence("```json\\n{}\\n```")
        '{}'
    """
    match = CODE_FENCE_PATTERN.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def extract_braced_span(text: str) -> str | None:
    """
    Return text between the first "{" and the last "}" inclusive.

    Example:
        >>> extract_braced_span('Result: {"a": {"b": 1}} done')
        '{"a": {"b": 1}}'
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def parse_json_permissive(text: str) -> Any | None:
    """
    Parse JSON out of loosely formatted model output.

    Args:
        text: Raw answer text from a surface

    Returns:
        The decoded JSON value, or None when every attempt fails.
        Never raises.
    """
    if not text or not text.strip():
        return None

    ok, value = _loads(text)
    if ok:
        return value

    fenced = strip_code_fence(text)
    if fenced is not None:
        ok, value = _loads(fenced)
        if ok:
            logger.debug("Parsed JSON after stripping markdown code fence")
            return value

    span = extract_braced_span(text)
    if span is not None:
        ok, value = _loads(span)
        if ok:
            logger.debug("Parsed JSON from braced substring")
            return value

    logger.debug(f"Could not parse JSON from answer text ({len(text)} chars)")
    return None
