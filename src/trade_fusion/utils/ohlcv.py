"""OHLCV bar standardization utilities."""

from collections.abc import Mapping, Sequence
from typing import Any

import pandas as pd

CANONICAL_COLUMNS = ["date", "open", "high", "low", "close", "volume"]

# Short keys some collaborators emit for bars
_COLUMN_ALIASES = {
    "d": "date",
    "t": "date",
    "datetime": "date",
    "timestamp": "date",
    "o": "open",
    "h": "high",
    "l": "low",
    "c": "close",
    "adj close": "close",
    "v": "volume",
}


def _canonical_key(key: Any) -> str:
    name = str(key).lower().strip()
    return _COLUMN_ALIASES.get(name, name)


def standardize_bars(rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    """
    Standardize OHLCV rows from a market-context snapshot.

    Output columns (always, in this order): date, open, high, low, close, volume
    All lowercase. Rows sorted by date when dates are present. Non-numeric
    prices coerced to NaN. Missing columns filled with NaN.

    Args:
        rows: List of bar dicts (any key casing, short aliases accepted)

    Returns:
        Standardized DataFrame with consistent schema
    """
    # Resolve casing and aliases per row so "H" in one row and "High" in the next share a column
    df = pd.DataFrame([{_canonical_key(k): v for k, v in row.items()} for row in rows])
    if df.empty:
        return pd.DataFrame(columns=CANONICAL_COLUMNS)

    # CRITICAL: Ensure ALL 6 columns exist in exact order
    for col in CANONICAL_COLUMNS:
        if col not in df.columns:
            df[col] = pd.NA

    df = df[CANONICAL_COLUMNS]

    for col in ("open", "high", "low", "close", "volume"):
        df[col] = pd.to_numeric(df[col], errors="coerce")

    if df["date"].notna().any():
        df["date"] = pd.to_datetime(df["date"], errors="coerce", utc=True)
        df = df.sort_values("date", kind="stable")

    return df.reset_index(drop=True)
