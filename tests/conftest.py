"""Pytest configuration and fixtures."""

import copy
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from trade_fusion.config import DEFAULT_WEIGHTS, ZERO_FILL
from trade_fusion.data.completion_client import Prompt
from trade_fusion.fusion.composer import compose
from trade_fusion.fusion.synthesizer import build_recommendation
from trade_fusion.models import AnalyticalSignal, Candidate, MarketContext, Recommendation

AS_OF = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)


class ScriptedCompleter:
    """
    Deterministic stand-in for a completion collaborator.

    `responder(prompt, schema)` returns a payload or an exception instance;
    exceptions are raised. Calls are recorded.
    """

    def __init__(self, responder: Callable[[Prompt, dict[str, Any]], Any], model: str = "scripted-model"):
        self.responder = responder
        self.model = model
        self.calls: list[Prompt] = []

    async def complete(self, prompt: Prompt, output_schema: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(prompt)
        result = self.responder(prompt, output_schema)
        if isinstance(result, Exception):
            raise result
        return result


class FailingStore:
    """Cache store whose every call fails."""

    def get(self, key: str) -> str | None:
        raise OSError("disk unavailable")

    def set(self, key: str, value: str, ttl: int) -> None:
        raise OSError("disk unavailable")


def signal(source: str, score: float, subscores: dict[str, float] | None = None, **labels: str) -> AnalyticalSignal:
    return AnalyticalSignal(source=source, score=score, subscores=subscores or {}, labels=labels)


def make_candidate(
    symbol: str = "AAPL",
    scores: dict[str, float] | None = None,
    price: float = 100.0,
    support: tuple[float, ...] = (95.0, 90.0),
    resistance: tuple[float, ...] = (110.0, 120.0),
    trend: str = "neutral",
    atr: float | None = 0.02,
    historical_moves: dict[str, list[float]] | None = None,
    signals: dict[str, AnalyticalSignal | None] | None = None,
) -> Candidate:
    """Candidate with one plain signal per entry in `scores`, or explicit `signals`."""
    if signals is None:
        signals = {source: signal(source, value) for source, value in (scores or {}).items()}
    context = MarketContext(
        current_price=price,
        market_trend=trend,
        support_levels=support,
        resistance_levels=resistance,
        avg_true_range=atr,
        historical_moves=historical_moves or {},
    )
    return Candidate(symbol=symbol, market_context=context, signals=signals, as_of=AS_OF)


SYNTHESIS_PAYLOAD: dict[str, Any] = {
    "summary": "Breakout above resistance on expanding volume with supportive sector flows.",
    "trade_type": "Long",
    "setup": {
        "type": "Breakout",
        "strength": 0.8,
        "confluence_factors": ["Volume expansion", "Sector strength"],
        "key_levels": ["Support $95", "Resistance $110"],
    },
    "catalyst": {
        "primary": "Volume surge through resistance",
        "secondary": ["Sector rotation into tech"],
        "timing_sensitivity": "hours",
        "event_risk": False,
    },
    "timing": {
        "entry_window": "Market open",
        "optimal_entry": "Retest of breakout level",
        "time_horizon": "3-5 days",
        "urgency": "high",
    },
    "confirmation": {
        "signals_needed": ["Close above $101"],
        "invalidation_triggers": ["Close below $95"],
        "monitoring_points": ["Volume", "Sector ETF"],
    },
    "risk": {
        "primary_risks": ["Failed breakout"],
        "risk_grade": "B",
        "position_sizing": 0.06,
        "stop_loss_strategy": "Below support at $92",
    },
    "execution": {
        "entry_price": 100.0,
        "target_price": 114.0,
        "stop_loss": 92.0,
    },
}

REVIEW_PAYLOAD: dict[str, Any] = {
    "validation_score": 0.85,
    "confidence_score": 0.8,
    "recommendation": "approve",
    "signal_evidence_alignment": True,
    "risk_reward_rationality": True,
    "timing_logic_consistency": True,
    "price_target_realism": True,
    "technical_feasibility": True,
    "historical_precedent": True,
    "internal_contradiction_check": True,
    "catalyst_timing_alignment": True,
    "identified_issues": [],
    "contradictory_evidence": [],
    "missing_evidence": [],
    "overfitting_indicators": [],
}


def synthesis_payload(**overrides: Any) -> dict[str, Any]:
    """Deep copy of the sample synthesis payload with top-level or section overrides."""
    payload = copy.deepcopy(SYNTHESIS_PAYLOAD)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(payload.get(key), dict):
            payload[key].update(value)
        else:
            payload[key] = value
    return payload


def review_payload(**overrides: Any) -> dict[str, Any]:
    payload = copy.deepcopy(REVIEW_PAYLOAD)
    payload.update(overrides)
    return payload


def make_recommendation(candidate: Candidate | None = None, **overrides: Any) -> Recommendation:
    """Trade card built from the sample payload through the real post-validation path."""
    candidate = candidate or make_candidate(
        scores={"technical": 0.75, "sentiment": 0.68, "risk": 0.60, "sector": 0.56}
    )
    composite = compose(candidate, DEFAULT_WEIGHTS, ZERO_FILL)
    return build_recommendation(
        candidate,
        composite,
        synthesis_payload(**overrides),
        trade_id=f"{candidate.symbol}-2024-03-15-abcd1234",
        created_at=AS_OF,
        model_used="scripted-model",
    )


@pytest.fixture
def candidate() -> Candidate:
    """Candidate from the documented fusion example (composite 0.599)."""
    return make_candidate(scores={"technical": 0.75, "sentiment": 0.68, "risk": 0.60, "sector": 0.56})


@pytest.fixture
def recommendation(candidate: Candidate) -> Recommendation:
    return make_recommendation(candidate)


@pytest.fixture
def sample_bars() -> list[dict[str, Any]]:
    """Sixty daily bars rising from 100 with a fixed 2-point range."""
    bars = []
    for i in range(60):
        close = 100.0 + i * 0.5
        bars.append(
            {
                "open": close - 0.5,
                "high": close + 1.0,
                "low": close - 1.0,
                "close": close,
                "volume": 1_000_000,
            }
        )
    return bars
