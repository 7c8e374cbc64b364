"""
Small shared utilities: timing and the lenient value coercions used when
reading raw uploaded rows.
"""
from __future__ import annotations

import math
import re
import time
from contextlib import contextmanager
from typing import Any, Generator

# Leading numeric prefix, the same tolerance a spreadsheet user expects:
# "12.5kg" -> 12.5, "  -3" -> -3, "1e3" -> 1000, "abc" -> not numeric.
_NUMERIC_PREFIX_RE = re.compile(
    r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))"
)


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def parse_float(value: Any) -> float | None:
    """Parse *value* as a number, returning ``None`` when it is not numeric.

    Real numbers pass straight through (``bool`` is not treated as a number).
    Strings are parsed on their leading numeric prefix.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        result = float(value)
        return None if math.isnan(result) else result
    match = _NUMERIC_PREFIX_RE.match(str(value))
    if match is None:
        return None
    return float(match.group(1))


def is_missing(value: Any) -> bool:
    """True for ``None``, empty strings and whitespace-only strings."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def to_text(value: Any, default: str = "") -> str:
    """Stringify a cell the way it is displayed: ``100.0`` -> ``"100"``."""
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
