"""Deterministic detection of conflicts between analytical sources."""

from trade_fusion.models import Candidate, CounterSignals

PUMP_RISK = "High social media pump risk detected"
BREAKOUT_VS_RISK = "Technical breakout conflicting with high risk assessment"
SENTIMENT_VS_SECTOR = "Positive stock sentiment conflicting with bearish sector rotation"
DRIFT_VS_FADE = "Positive earnings drift expectation with high fade risk"

_MITIGATIONS = {
    PUMP_RISK: "Reduce position size and use tight stops",
    BREAKOUT_VS_RISK: "Wait for better risk/reward setup",
    SENTIMENT_VS_SECTOR: "Monitor sector ETF performance for confirmation",
    DRIFT_VS_FADE: "Consider shorter time horizon and quicker profit-taking",
}


def _escalate(severity: str) -> str:
    return "medium" if severity == "low" else "high"


def detect_counter_signals(candidate: Candidate) -> CounterSignals:
    """
    Find conflicting evidence across sources.

    Pump risk above 0.7 is high severity on its own; every other conflict
    escalates low -> medium -> high.
    """
    sentiment = candidate.signal("sentiment")
    technical = candidate.signal("technical")
    risk = candidate.signal("risk")
    sector = candidate.signal("sector")
    earnings = candidate.signal("earnings")

    found: list[str] = []
    severity = "low"

    if sentiment is not None and (sentiment.subscore("pump_risk") or 0.0) > 0.7:
        found.append(PUMP_RISK)
        severity = "high"

    if technical is not None and risk is not None:
        if technical.label("setup_type") == "breakout" and (risk.subscore("overall_risk") or 0.0) > 0.8:
            found.append(BREAKOUT_VS_RISK)
            severity = _escalate(severity)

    if sentiment is not None and sector is not None:
        trend = sentiment.label("sentiment_trend") or ""
        if "positive" in trend and sector.label("rotation_signal") == "bearish":
            found.append(SENTIMENT_VS_SECTOR)
            severity = _escalate(severity)

    if earnings is not None:
        if earnings.label("expected_direction") == "bullish" and (earnings.subscore("fade_risk") or 0.0) > 0.7:
            found.append(DRIFT_VS_FADE)
            severity = _escalate(severity)

    if not found:
        return CounterSignals()

    return CounterSignals(
        identified=True,
        severity=severity,
        description="; ".join(found),
        mitigation="; ".join(_MITIGATIONS[item] for item in found),
        items=tuple(found),
    )
