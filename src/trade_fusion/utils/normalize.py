"""Canonical JSON serialization for cached artifacts.

A value read back from the cache must decode to the same artifact that was
written, so every payload is serialized the same way:
1. Keys sorted at every level, minimal separators
2. Tuples emitted as lists
3. NaN/inf replaced with null, -0.0 with 0.0
4. numpy scalars and arrays unwrapped, datetimes as ISO-8601 strings
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import numpy as np


def canonical_dumps(obj: Any) -> str:
    """Produce canonical JSON string with sorted keys and minimal separators.

    Uses allow_nan=False to fail fast if NaN/inf values slip through
    sanitization.
    """
    return json.dumps(
        sanitize_for_json(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def _clean_float(x: float) -> float | None:
    if math.isnan(x) or math.isinf(x):
        return None
    # -0.0 == 0.0, so this also turns -0.0 into 0.0
    return 0.0 if x == 0.0 else x


def sanitize_for_json(obj: Any) -> Any:
    """Recursively convert a payload into plain JSON-safe values.

    Collaborator payloads and pandas-derived levels can carry NaN or numpy
    scalars, neither of which is valid JSON.
    """
    if isinstance(obj, Mapping):
        return {str(k): sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(item) for item in obj]
    if isinstance(obj, np.ndarray):
        return [sanitize_for_json(item) for item in obj.tolist()]
    if isinstance(obj, np.generic):
        return sanitize_for_json(obj.item())
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return _clean_float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj
