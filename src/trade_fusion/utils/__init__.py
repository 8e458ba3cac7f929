"""Utility modules."""

from trade_fusion.utils.indicators import moving_average, wilder_atr
from trade_fusion.utils.levels import DerivedLevels, derive_levels
from trade_fusion.utils.normalize import canonical_dumps, sanitize_for_json
from trade_fusion.utils.ohlcv import standardize_bars
from trade_fusion.utils.provenance import build_error_response, build_meta
from trade_fusion.utils.sanitize import sanitize_required, sanitize_text, sanitize_texts
from trade_fusion.utils.validators import clamp, clamp_unit, coerce_choice, coerce_float

__all__ = [
    "moving_average",
    "wilder_atr",
    "DerivedLevels",
    "derive_levels",
    "canonical_dumps",
    "sanitize_for_json",
    "standardize_bars",
    "build_error_response",
    "build_meta",
    "sanitize_required",
    "sanitize_text",
    "sanitize_texts",
    "clamp",
    "clamp_unit",
    "coerce_choice",
    "coerce_float",
]
