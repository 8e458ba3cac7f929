"""Rule-based substitute trade card used whenever synthesis fails."""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime

from trade_fusion import ENGINE_VERSION, SCHEMA_VERSION
from trade_fusion.config import DEFAULT_WEIGHTS, ZERO_FILL
from trade_fusion.fusion.composer import compose, data_quality_score, module_contributions
from trade_fusion.fusion.counter_signals import detect_counter_signals
from trade_fusion.fusion.synthesizer import DEFAULT_STOP_OFFSET, DEFAULT_TARGET_OFFSET, new_trade_id
from trade_fusion.models import (
    CatalystSection,
    Candidate,
    CompositeScore,
    ConfirmationSection,
    Execution,
    Recommendation,
    RecommendationMetadata,
    RiskSection,
    SetupSection,
    TimingSection,
    TradeHeader,
    TradeNarrative,
    derive_risk_reward,
    utc_now,
)

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "fallback"
FALLBACK_CONFIDENCE = 0.25
FALLBACK_POSITION_SIZE = 0.02
FALLBACK_RISK_GRADE = "D"


def fallback_levels(candidate: Candidate, short: bool) -> tuple[float, float, float]:
    """
    Entry, target and stop from the nearest known levels.

    Longs target the nearest resistance and stop under the nearest support;
    shorts mirror that. Missing levels fall back to fixed offsets.
    """
    ctx = candidate.market_context
    price = ctx.current_price
    support = ctx.nearest_support()
    resistance = ctx.nearest_resistance()

    if short:
        target = support if support is not None else price * (1 - DEFAULT_TARGET_OFFSET)
        stop = resistance if resistance is not None else price * (1 + DEFAULT_STOP_OFFSET)
    else:
        target = resistance if resistance is not None else price * (1 + DEFAULT_TARGET_OFFSET)
        stop = support if support is not None else price * (1 - DEFAULT_STOP_OFFSET)
    return price, target, stop


def fallback(
    candidate: Candidate,
    composite: CompositeScore | None = None,
    *,
    cycle_id: str | None = None,
    reason: str | None = None,
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
    policy: str = ZERO_FILL,
    clock: Callable[[], datetime] = utc_now,
) -> Recommendation:
    """
    Build a degraded but structurally valid trade card. Never fails.

    Tagged with metadata.model_used = "fallback" and a fixed low confidence.
    Direction is Short only when the market trend is bearish.
    """
    if composite is None:
        composite = compose(candidate, weights, policy)

    short = candidate.market_context.market_trend == "bearish"
    entry, target, stop = fallback_levels(candidate, short)
    price = candidate.market_context.current_price
    risk_reward = derive_risk_reward(entry, target, stop) or 0.0

    now = clock()
    cycle = cycle_id or now.strftime("%Y-%m-%d")
    warnings = ["synthesis_unavailable"]
    if reason:
        warnings.append(f"fallback_reason: {reason}")

    narrative = TradeNarrative(
        summary="Conservative analysis due to limited data availability",
        setup=SetupSection(
            type="Mean Reversion",
            strength=0.3,
            confluence_factors=("Limited signal confluence",),
            key_levels=(f"Current price: ${price:.2f}",),
        ),
        catalyst=CatalystSection(
            primary="Market normalization",
            timing_sensitivity="days",
            event_risk=False,
        ),
        timing=TimingSection(
            entry_window="Patient entry",
            optimal_entry="After confirmation",
            time_horizon="1-2 weeks",
            urgency="low",
        ),
        confirmation=ConfirmationSection(
            signals_needed=("Volume confirmation",),
            invalidation_triggers=("Break of key support" if not short else "Break of key resistance",),
            monitoring_points=("Price action", "Volume"),
        ),
        risk=RiskSection(
            risk_grade=FALLBACK_RISK_GRADE,
            position_sizing=FALLBACK_POSITION_SIZE,
            stop_loss_strategy=f"Fixed stop at ${stop:.2f}",
            primary_risks=("Limited analysis data", "Degraded synthesis"),
        ),
    )

    recommendation = Recommendation(
        id=new_trade_id(candidate.symbol, cycle),
        symbol=candidate.symbol,
        created_at=now.isoformat(),
        header=TradeHeader(
            title=f"Mean Reversion - {candidate.symbol}",
            subtitle="Market normalization",
            confidence=FALLBACK_CONFIDENCE,
            timeframe="1-2 weeks",
            trade_type="Short" if short else "Long",
        ),
        narrative=narrative,
        execution=Execution(
            entry_price=entry,
            target_price=target,
            stop_loss=stop,
            position_size=FALLBACK_POSITION_SIZE,
            risk_reward_ratio=risk_reward,
            max_loss_percent=abs(entry - stop) / entry,
        ),
        signal_composition=composite,
        counter_signals=detect_counter_signals(candidate),
        metadata=RecommendationMetadata(
            model_used=FALLBACK_MODEL,
            processing_time_ms=0.0,
            data_quality_score=data_quality_score(candidate),
            module_contributions=module_contributions(candidate, weights),
            fusion_confidence=composite.composite,
            warnings=tuple(warnings),
            engine_version=ENGINE_VERSION,
            schema_version=SCHEMA_VERSION,
        ),
    )
    logger.info(f"{candidate.symbol}: fallback card produced ({reason or 'no reason given'})")
    return recommendation
