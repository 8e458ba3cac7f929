"""Cycle-level analytics over the candidates, cards and verdicts of one run.

Market overview, portfolio guidance and fusion quality summarize a cycle for
the caller. Prompt feedback groups review findings by the prompt category
they point at, so recurring synthesis problems surface across cards.
"""

import logging
from collections.abc import Iterable, Sequence

from trade_fusion.models import (
    Candidate,
    MarketOverview,
    PortfolioGuidance,
    PromptFeedback,
    Recommendation,
    ValidationVerdict,
)

logger = logging.getLogger(__name__)

HIGH_VIX = 25.0
LOW_VIX = 15.0
RISK_ON_SECTOR = 0.02
# Share of candidates with a bullish rotation signal that makes rotation a theme
ROTATION_THEME_SHARE = 0.3
EARNINGS_DRIFT_PROBABILITY = 0.7
EARNINGS_THEME_MIN = 3

RISK_GRADE_VALUES = {"A": 0.2, "B": 0.4, "C": 0.6, "D": 0.8, "F": 1.0}
HIGH_AVG_RISK = 0.6
MULTIPLE_OPPORTUNITIES = 3

# Distinct setup types that count as a fully diverse cycle
DIVERSE_SETUPS = 6
QUALITY_WEIGHTS = {"confidence": 0.5, "data_quality": 0.3, "diversity": 0.2}

# Issue categories that usually trace back to the synthesis prompt
PROMPT_ISSUE_CATEGORIES = ("hallucination", "logic_error")
SEVERITY_IMPACT = {"critical": 0.3, "high": 0.2}
DEFAULT_IMPACT = 0.1

_CATEGORY_KEYWORDS = (
    ("technical_timing", ("technical", "chart", "indicator")),
    ("risk_assessment", ("risk", "position", "stop")),
    ("sector_analysis", ("sector", "rotation")),
    ("sentiment_analysis", ("sentiment", "social", "reddit")),
    ("earnings_drift", ("earnings", "drift")),
)


def _mean(values: Iterable[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def market_environment(avg_vix: float | None, avg_sector: float | None) -> str:
    """Volatility first, then sector breadth; Neutral when neither decides."""
    if avg_vix is not None and avg_vix > HIGH_VIX:
        return "High Volatility"
    if avg_vix is not None and avg_vix < LOW_VIX:
        return "Low Volatility"
    if avg_sector is not None and avg_sector > RISK_ON_SECTOR:
        return "Risk-On"
    if avg_sector is not None and avg_sector < -RISK_ON_SECTOR:
        return "Risk-Off"
    return "Neutral"


def market_overview(candidates: Sequence[Candidate]) -> MarketOverview:
    """
    Environment and dominant themes across every candidate of a cycle.

    VIX and sector performance are averaged over the candidates that report
    them. Themes come from bullish sector-rotation signals and high-probability
    earnings drift.
    """
    avg_vix = _mean(c.market_context.vix_level for c in candidates)
    avg_sector = _mean(c.market_context.sector_performance for c in candidates)

    rotations = 0
    earnings_plays = 0
    for candidate in candidates:
        sector = candidate.signal("sector")
        if sector is not None and sector.label("rotation_signal") == "bullish":
            rotations += 1
        earnings = candidate.signal("earnings")
        drift = earnings.subscore("drift_probability") if earnings is not None else None
        if drift is not None and drift > EARNINGS_DRIFT_PROBABILITY:
            earnings_plays += 1

    themes = []
    if rotations > len(candidates) * ROTATION_THEME_SHARE:
        themes.append("Sector rotation activity")
    if earnings_plays >= EARNINGS_THEME_MIN:
        themes.append("Earnings season opportunities")
    if not themes:
        themes.append("Mixed market signals")

    return MarketOverview(
        environment=market_environment(avg_vix, avg_sector),
        dominant_themes=tuple(themes),
        opportunity_assessment=(
            f"{len(themes)} key themes identified with {rotations} positive sector signals"
        ),
        avg_vix=avg_vix,
        avg_sector_performance=avg_sector,
    )


def portfolio_guidance(
    recommendations: Sequence[Recommendation], candidates: Sequence[Candidate]
) -> PortfolioGuidance:
    """Total allocation, sector tilts and a sizing note from the average risk grade."""
    by_symbol = {c.symbol: c for c in candidates}
    total = sum(rec.execution.position_size for rec in recommendations)
    avg_risk = _mean(RISK_GRADE_VALUES[rec.narrative.risk.risk_grade] for rec in recommendations)

    tilts: list[str] = []
    for rec in recommendations:
        candidate = by_symbol.get(rec.symbol)
        signal = candidate.signal("sector") if candidate is not None else None
        name = signal.label("sector") if signal is not None else None
        if name:
            tilt = f"Overweight {name.title()}"
            if tilt not in tilts:
                tilts.append(tilt)

    if avg_risk is None:
        risk_management = "No positions proposed"
    elif avg_risk > HIGH_AVG_RISK:
        risk_management = "High risk environment - use defensive position sizing"
    else:
        risk_management = "Moderate risk - standard position sizing appropriate"

    return PortfolioGuidance(
        overall_allocation=f"{total * 100:.1f}% of portfolio across {len(recommendations)} positions",
        total_allocation=total,
        sector_tilts=tuple(tilts),
        risk_management=risk_management,
        market_outlook=(
            "Multiple opportunities identified"
            if len(recommendations) > MULTIPLE_OPPORTUNITIES
            else "Selective opportunity environment"
        ),
        avg_risk=avg_risk,
    )


def fusion_quality(recommendations: Sequence[Recommendation]) -> float:
    """0.5 x mean confidence + 0.3 x mean data quality + 0.2 x setup diversity; 0 for no cards."""
    if not recommendations:
        return 0.0
    count = len(recommendations)
    confidence = sum(rec.header.confidence for rec in recommendations) / count
    data_quality = sum(rec.metadata.data_quality_score for rec in recommendations) / count
    diversity = min(1.0, len({rec.narrative.setup.type for rec in recommendations}) / DIVERSE_SETUPS)
    return (
        QUALITY_WEIGHTS["confidence"] * confidence
        + QUALITY_WEIGHTS["data_quality"] * data_quality
        + QUALITY_WEIGHTS["diversity"] * diversity
    )


def prompt_category(text: str) -> str:
    """Prompt category a suggestion or issue text points at (strategic_fusion by default)."""
    lowered = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "strategic_fusion"


def prompt_feedback(verdicts: Iterable[ValidationVerdict | None]) -> list[PromptFeedback]:
    """
    Aggregate reviewer prompt suggestions and prompt-related issues per category.

    Only hallucination and logic_error issues count; each adds 0.3 (critical),
    0.2 (high) or 0.1 to its category's confidence impact. Conservative
    verdicts carry no review findings and are skipped. Categories are returned
    in first-seen order.
    """
    grouped: dict[str, dict] = {}

    def bucket(category: str) -> dict:
        return grouped.setdefault(category, {"issues": [], "improvements": [], "impact": 0.0})

    for verdict in verdicts:
        if verdict is None or verdict.metadata.model_used == "fallback":
            continue
        for suggestion in verdict.improvement_suggestions.prompt_optimization:
            bucket(prompt_category(suggestion))["improvements"].append(suggestion)
        for issue in verdict.issues:
            if issue.category not in PROMPT_ISSUE_CATEGORIES:
                continue
            entry = bucket(prompt_category(issue.description))
            entry["issues"].append(issue.description)
            entry["impact"] += SEVERITY_IMPACT.get(issue.severity, DEFAULT_IMPACT)

    feedback = [
        PromptFeedback(
            prompt_category=category,
            issues_detected=tuple(entry["issues"]),
            suggested_improvements=tuple(entry["improvements"]),
            confidence_impact=round(entry["impact"], 2),
        )
        for category, entry in grouped.items()
    ]
    if feedback:
        logger.debug(f"Prompt feedback for {len(feedback)} categories: {[f.prompt_category for f in feedback]}")
    return feedback
