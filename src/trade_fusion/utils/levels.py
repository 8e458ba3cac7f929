"""Support/resistance and ATR derivation from snapshot bars."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from trade_fusion.utils.indicators import last_value, moving_average, wilder_atr, window_extremes
from trade_fusion.utils.ohlcv import standardize_bars

# Lookback windows in trading days
_WINDOW_1M = 21
_WINDOW_3M = 63


@dataclass(frozen=True)
class DerivedLevels:
    """Levels derived from bars. Supports below price, resistances above, closest first."""

    support: tuple[float, ...] = field(default_factory=tuple)
    resistance: tuple[float, ...] = field(default_factory=tuple)
    atr_fraction: float | None = None


def _dedupe_sorted(levels: list[float], current_price: float) -> tuple[float, ...]:
    if not levels:
        return ()
    arr = np.round(np.asarray(levels, dtype=float), 2)
    arr = np.unique(arr[np.isfinite(arr)])
    ordered = sorted(arr.tolist(), key=lambda lvl: abs(lvl - current_price))
    return tuple(ordered)


def derive_levels(bars: Sequence[Mapping[str, Any]], current_price: float) -> DerivedLevels:
    """
    Derive support/resistance levels and ATR from OHLCV bars.

    Supports: 1-month low, 3-month low, SMA50 and SMA200 when below price.
    Resistances: 1-month high, 3-month high, SMA50 and SMA200 when above price.
    ATR is expressed as a fraction of current price.

    Args:
        bars: OHLCV rows, oldest first (any order accepted when dated)
        current_price: Reference price

    Returns:
        DerivedLevels (empty when bars are unusable)
    """
    df = standardize_bars(bars)
    if df.empty or current_price <= 0:
        return DerivedLevels()

    support: list[float] = []
    resistance: list[float] = []

    for window in (_WINDOW_1M, _WINDOW_3M):
        if len(df) >= min(window, 5):
            recent_low, recent_high = window_extremes(df, window)
            if recent_low is not None and recent_low < current_price:
                support.append(recent_low)
            if recent_high is not None and recent_high > current_price:
                resistance.append(recent_high)

    for period in (50, 200):
        sma = last_value(moving_average(df["close"], period))
        if sma is None:
            continue
        if sma < current_price:
            support.append(sma)
        elif sma > current_price:
            resistance.append(sma)

    atr = last_value(wilder_atr(df))
    atr_fraction = round(atr / current_price, 6) if atr is not None else None

    return DerivedLevels(
        support=_dedupe_sorted(support, current_price),
        resistance=_dedupe_sorted(resistance, current_price),
        atr_fraction=atr_fraction,
    )
