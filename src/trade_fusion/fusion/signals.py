"""Analytical-source adapters and concurrent signal collection.

Each adapter turns one collaborator's raw output into an AnalyticalSignal whose
score is already adjusted for composition (risk inverted, sentiment discounted
by pump risk, and so on). Subscores keep the raw inputs for counter-signal
detection and validation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from time import perf_counter
from typing import Any

from trade_fusion.errors import UpstreamSignalMissing
from trade_fusion.models import AnalyticalSignal, MarketContext
from trade_fusion.utils.validators import clamp_unit, coerce_float, coerce_str_list

logger = logging.getLogger(__name__)

Analyzer = Callable[[str, MarketContext], Awaitable[AnalyticalSignal]]


def _subscores(raw: Mapping[str, Any], *names: str) -> dict[str, float]:
    out = {}
    for name in names:
        value = coerce_float(raw.get(name))
        if value is not None:
            out[name] = value
    return out


def _labels(raw: Mapping[str, Any], *names: str) -> dict[str, str]:
    return {name: str(raw[name]) for name in names if raw.get(name) is not None}


def technical_signal(raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Technical timing: score = confidence."""
    subs = _subscores(
        raw, "confidence", "entry_price", "target_price", "stop_loss", "risk_reward_ratio"
    )
    return AnalyticalSignal(
        source="technical",
        score=clamp_unit(raw.get("confidence")),
        subscores=subs,
        narrative=tuple(coerce_str_list(raw.get("narrative"))),
        labels=_labels(raw, "setup_type", "trend_signal", "pattern"),
    )


def sentiment_signal(raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Social sentiment: score = authenticity x (1 - pump_risk)."""
    authenticity = clamp_unit(raw.get("authenticity"))
    pump_risk = clamp_unit(raw.get("pump_risk"))
    return AnalyticalSignal(
        source="sentiment",
        score=authenticity * (1 - pump_risk),
        subscores=_subscores(raw, "authenticity", "pump_risk"),
        narrative=tuple(coerce_str_list(raw.get("narrative"))),
        labels=_labels(raw, "sentiment_trend", "momentum_type"),
    )


def risk_signal(raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Risk assessment: score = 1 - overall_risk, so lower risk raises the composite."""
    overall = clamp_unit(raw.get("overall_risk"), default=1.0)
    return AnalyticalSignal(
        source="risk",
        score=1 - overall,
        subscores=_subscores(raw, "overall_risk", "max_position_size"),
        narrative=tuple(coerce_str_list(raw.get("narrative"))),
        labels=_labels(raw, "risk_grade"),
    )


def sector_signal(raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Sector intelligence: score = confidence x relative_strength."""
    return AnalyticalSignal(
        source="sector",
        score=clamp_unit(raw.get("confidence")) * clamp_unit(raw.get("relative_strength")),
        subscores=_subscores(raw, "confidence", "relative_strength"),
        narrative=tuple(coerce_str_list(raw.get("narrative"))),
        labels=_labels(raw, "rotation_signal", "sector"),
    )


def anomaly_signal(raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Anomaly explanation: score = catalyst_confidence x follow_through."""
    return AnalyticalSignal(
        source="anomaly",
        score=clamp_unit(raw.get("catalyst_confidence")) * clamp_unit(raw.get("follow_through")),
        subscores=_subscores(raw, "catalyst_confidence", "follow_through"),
        narrative=tuple(coerce_str_list(raw.get("narrative"))),
        labels=_labels(raw, "primary_catalyst"),
    )


def earnings_signal(raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Earnings drift: score = drift_probability x (1 - fade_risk)."""
    return AnalyticalSignal(
        source="earnings",
        score=clamp_unit(raw.get("drift_probability")) * (1 - clamp_unit(raw.get("fade_risk"))),
        subscores=_subscores(raw, "drift_probability", "fade_risk", "expected_move"),
        narrative=tuple(coerce_str_list(raw.get("narrative"))),
        labels=_labels(raw, "expected_direction", "next_earnings_date"),
    )


ADAPTERS: dict[str, Callable[[Mapping[str, Any]], AnalyticalSignal]] = {
    "technical": technical_signal,
    "sentiment": sentiment_signal,
    "risk": risk_signal,
    "sector": sector_signal,
    "anomaly": anomaly_signal,
    "earnings": earnings_signal,
}


def adapt_signal(source: str, raw: Mapping[str, Any]) -> AnalyticalSignal:
    """Adapt a raw collaborator payload for the named source."""
    key = source.lower().strip()
    if key not in ADAPTERS:
        raise ValueError(f"Unknown signal source '{source}'. Must be one of: {tuple(ADAPTERS)}")
    return ADAPTERS[key](raw)


async def collect_signals(
    symbol: str,
    context: MarketContext,
    analyzers: Mapping[str, Analyzer],
    timeout: float,
) -> tuple[dict[str, AnalyticalSignal | None], list[UpstreamSignalMissing]]:
    """
    Run analytical collaborators concurrently, each bounded by its own timeout.

    A collaborator that errors or times out leaves its source absent.

    Args:
        symbol: Asset symbol
        context: Market snapshot passed to every analyzer
        analyzers: Source name -> async analyze(symbol, context)
        timeout: Per-analyzer timeout in seconds

    Returns:
        Tuple of (signals map with None for failed sources, failure records)
    """

    async def run_with_timing(
        source: str, analyzer: Analyzer
    ) -> tuple[str, AnalyticalSignal | Exception, float]:
        start = perf_counter()
        try:
            result = await asyncio.wait_for(analyzer(symbol, context), timeout=timeout)
            return (source, result, (perf_counter() - start) * 1000)
        except TimeoutError:
            return (source, TimeoutError(f"exceeded {timeout}s"), (perf_counter() - start) * 1000)
        except Exception as e:
            return (source, e, (perf_counter() - start) * 1000)

    results = await asyncio.gather(
        *[run_with_timing(source, analyzer) for source, analyzer in analyzers.items()]
    )

    signals: dict[str, AnalyticalSignal | None] = {}
    missing: list[UpstreamSignalMissing] = []
    for source, result, duration_ms in results:
        if isinstance(result, AnalyticalSignal) and result.source == source:
            signals[source] = result
            logger.debug(f"{symbol}: {source} signal in {duration_ms:.0f}ms")
            continue
        if isinstance(result, Exception):
            reason = f"{type(result).__name__}: {result}"
        else:
            reason = f"unexpected result type {type(result).__name__}"
        signals[source] = None
        missing.append(UpstreamSignalMissing(source, reason))
        logger.warning(f"{symbol}: {source} signal unavailable ({reason})")

    return signals, missing
