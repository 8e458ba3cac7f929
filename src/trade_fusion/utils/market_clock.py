"""Market-timezone clock helpers for cycle ids and session labels."""

from datetime import datetime, timezone

import pytz


def _localize(at: datetime | None, tz: str) -> datetime:
    market_tz = pytz.timezone(tz)
    if at is None:
        return datetime.now(market_tz)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(market_tz)


def trading_date(at: datetime | None = None, tz: str = "America/New_York") -> str:
    """Market-local calendar date (YYYY-MM-DD), used as the default evaluation cycle id."""
    return _localize(at, tz).strftime("%Y-%m-%d")


def market_session(at: datetime | None = None, tz: str = "America/New_York") -> str:
    """
    Determine market session. Clock-based only (no holiday calendar).

    Returns:
        One of: pre_market, regular, after_hours, closed
    """
    now = _localize(at, tz)

    if now.weekday() >= 5:
        return "closed"

    time_minutes = now.hour * 60 + now.minute
    if time_minutes < 4 * 60:  # Before 4 AM
        return "closed"
    if time_minutes < 9 * 60 + 30:  # 4 AM - 9:30 AM
        return "pre_market"
    if time_minutes < 16 * 60:  # 9:30 AM - 4 PM
        return "regular"
    if time_minutes < 20 * 60:  # 4 PM - 8 PM
        return "after_hours"
    return "closed"
