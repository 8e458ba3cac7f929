"""Bar indicators behind support/resistance and ATR derivation.

All functions take a standardized OHLCV frame (see utils.ohlcv). Missing
highs and lows fall back to the bar's close.
"""

import pandas as pd


def _high_low(frame: pd.DataFrame) -> tuple[pd.Series, pd.Series]:
    close = frame["close"]
    return frame["high"].fillna(close), frame["low"].fillna(close)


def moving_average(close: pd.Series, period: int) -> pd.Series:
    """Simple moving average, NaN until `period` closes are available."""
    return close.rolling(window=period, min_periods=period).mean()


def true_range(frame: pd.DataFrame) -> pd.Series:
    """Widest of the bar's own range and its gaps from the prior close."""
    high, low = _high_low(frame)
    prev_close = frame["close"].shift(1)
    spans = pd.concat([high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1)
    # First bar has no prior close; max skips the NaN gaps
    return spans.max(axis=1)


def wilder_atr(frame: pd.DataFrame, period: int = 14) -> pd.Series:
    """
    Average true range with Wilder's smoothing (alpha = 1 / period).

    Args:
        frame: Standardized OHLCV frame, oldest bar first
        period: Smoothing period (default: 14)

    Returns:
        ATR series in price units, NaN for the first period - 1 bars
    """
    return true_range(frame).ewm(alpha=1 / period, min_periods=period, adjust=False).mean()


def window_extremes(frame: pd.DataFrame, window: int) -> tuple[float | None, float | None]:
    """Lowest low and highest high over the last `window` bars."""
    high, low = _high_low(frame.tail(window))
    lowest, highest = low.min(), high.max()
    return (
        None if pd.isna(lowest) else float(lowest),
        None if pd.isna(highest) else float(highest),
    )


def last_value(series: pd.Series) -> float | None:
    """Last element as float, or None when empty or NaN."""
    if series.empty:
        return None
    value = series.iloc[-1]
    if pd.isna(value):
        return None
    return float(value)
