"""
Input validation boundary.

Every raw value from a form or request passes through here before it
reaches an estimator, so the engine only ever sees clean text and finite
numbers.
"""
import math
import re
from typing import Any, Optional

MAX_TEXT_LENGTH = 1000
MAX_ABS_NUMBER = 1e10

_ANGLE_BRACKETS = re.compile(r'[<>]')
_JS_SCHEME = re.compile(r'javascript:', re.IGNORECASE)
_EVENT_HANDLER = re.compile(r'on\w+\s*=', re.IGNORECASE)
_LEADING_FLOAT = re.compile(r'[+-]?(?:inf(?:inity)?|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)', re.IGNORECASE)


def sanitize_text(raw: Any) -> str:
    """Strip markup and script fragments from user text."""
    if not isinstance(raw, str):
        return ''
    text = raw.strip()
    text = _ANGLE_BRACKETS.sub('', text)
    text = _JS_SCHEME.sub('', text)
    text = _EVENT_HANDLER.sub('', text)
    return text[:MAX_TEXT_LENGTH]


def parse_number(raw: Any) -> Optional[float]:
    """
    Parse a user-supplied number.

    Strings are read up to the first character that can't continue a
    number, so "12.5 sq ft" gives 12.5. Returns None for anything that
    isn't a finite number within +/-1e10.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        match = _LEADING_FLOAT.match(sanitize_text(raw))
        if not match:
            return None
        value = float(match.group(0))
    else:
        return None

    if not math.isfinite(value) or abs(value) > MAX_ABS_NUMBER:
        return None
    return value
