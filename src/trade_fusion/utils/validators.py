"""Validation utilities for untrusted numeric and categorical fields."""

import math
from collections.abc import Collection
from typing import Any, TypeVar

T = TypeVar("T")


def coerce_float(value: Any) -> float | None:
    """
    Coerce a value to a finite float.

    Returns None for None, bools, unparseable strings, NaN and inf.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return min(max(value, low), high)


def clamp_unit(value: Any, default: float = 0.0) -> float:
    """Coerce to float and clamp into [0, 1]. Unusable input yields default."""
    number = coerce_float(value)
    if number is None:
        return default
    return clamp(number)


def coerce_choice(value: Any, allowed: Collection[T], default: T | None = None) -> T | None:
    """
    Match value against an allowlist, case-insensitively for strings.

    Returns the canonical allowlist entry, or default when nothing matches.
    """
    if value is None:
        return default
    if value in allowed:
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        for option in allowed:
            if isinstance(option, str) and option.lower() == lowered:
                return option
    return default


def coerce_str_list(value: Any, limit: int = 10) -> list[str]:
    """Coerce to a list of non-empty strings, capped at limit entries."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items = [str(v).strip() for v in value if v is not None and str(v).strip()]
    return items[:limit]
