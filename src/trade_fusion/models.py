"""Data model for candidates, composite scores, trade cards and verdicts.

All artifacts are frozen dataclasses. Recommendations are never mutated after
creation; a ValidationVerdict wraps one by id. `to_dict` / `from_dict` give a
JSON-safe round trip for caching and the tool surface.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from trade_fusion.config import SOURCES
from trade_fusion.utils.levels import derive_levels
from trade_fusion.utils.sanitize import sanitize_texts
from trade_fusion.utils.validators import clamp_unit, coerce_choice, coerce_float

TRADE_TYPES = ("Long", "Short", "Options Play", "Pairs Trade")
SETUP_TYPES = (
    "Breakout",
    "Reversal",
    "Momentum",
    "Earnings Play",
    "Sector Rotation",
    "Anomaly Exploitation",
    "Mean Reversion",
)
TIMING_SENSITIVITIES = ("immediate", "hours", "days", "weeks")
URGENCIES = ("high", "medium", "low")
RISK_GRADES = ("A", "B", "C", "D", "F")
MARKET_TRENDS = ("bullish", "bearish", "neutral")
COUNTER_SIGNAL_SEVERITIES = ("low", "medium", "high")

ISSUE_CATEGORIES = (
    "signal_mismatch",
    "logic_error",
    "unrealistic_target",
    "timing_inconsistency",
    "risk_miscalculation",
    "hallucination",
)
SEVERITIES = ("low", "medium", "high", "critical")
VERDICT_RECOMMENDATIONS = ("approve", "approve_with_caution", "revise", "reject")
PROMPT_CATEGORIES = (
    "technical_timing",
    "risk_assessment",
    "sector_analysis",
    "sentiment_analysis",
    "earnings_drift",
    "strategic_fusion",
)

MIN_RISK_REWARD = {"Long": 1.5, "Short": 1.5, "Options Play": 2.0, "Pairs Trade": 1.2}

# Allowed position size (fraction of portfolio) per risk grade
POSITION_RANGES = {
    "A": (0.08, 0.15),
    "B": (0.05, 0.10),
    "C": (0.03, 0.08),
    "D": (0.01, 0.05),
    "F": (0.005, 0.02),
}
MAX_POSITION_SIZE = 0.15


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO string or datetime into an aware datetime (naive = UTC)."""
    if isinstance(value, datetime):
        return _ensure_aware(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return _ensure_aware(datetime.fromisoformat(text))
    raise ValueError(f"Invalid timestamp: {value!r}")


def derive_risk_reward(entry: float, target: float, stop: float) -> float | None:
    """|target - entry| / |entry - stop|, or None when the stop equals the entry."""
    risk = abs(entry - stop)
    if risk <= 0:
        return None
    return abs(target - entry) / risk


def infer_direction(trade_type: str, entry: float, target: float) -> str:
    """Short for Short trades, long for Long, otherwise from target vs entry."""
    if trade_type == "Short":
        return "short"
    if trade_type == "Long":
        return "long"
    return "long" if target >= entry else "short"


def require_choice(value: Any, allowed: tuple[str, ...], name: str) -> str:
    """Canonical allowlist entry for value, or ValueError naming the field."""
    choice = coerce_choice(value, allowed)
    if choice is None:
        raise ValueError(f"Invalid {name} '{value}'. Must be one of: {allowed}")
    return choice


def require_number(value: Any, name: str, positive: bool = False) -> float:
    """Finite float for value; negative (or, when positive, zero) values are rejected."""
    number = coerce_float(value)
    if number is None or number < 0 or (positive and number == 0):
        kind = "positive" if positive else "non-negative"
        raise ValueError(f"{name} must be a {kind} number, got {value!r}")
    return number


# ---------------- dict conversion ----------------


def _convert(hint: Any, value: Any) -> Any:
    if value is None:
        return None
    if dataclasses.is_dataclass(hint) and isinstance(value, Mapping):
        return _from_mapping(hint, value)
    origin = typing.get_origin(hint)
    if origin is tuple:
        args = typing.get_args(hint)
        item_hint = args[0] if args else Any
        return tuple(_convert(item_hint, v) for v in value)
    if origin in (typing.Union, types.UnionType):
        for arg in typing.get_args(hint):
            if dataclasses.is_dataclass(arg) and isinstance(value, Mapping):
                return _from_mapping(arg, value)
        return value
    if origin is dict or hint is dict:
        return dict(value)
    return value


def _from_mapping(cls: type, data: Mapping[str, Any]) -> Any:
    hints = typing.get_type_hints(cls)
    kwargs = {}
    for f in dataclasses.fields(cls):
        if not f.init or f.name not in data:
            continue
        kwargs[f.name] = _convert(hints[f.name], data[f.name])
    return cls(**kwargs)


class _DictMixin:
    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        return _from_mapping(cls, data)


# ---------------- inputs ----------------


@dataclass(frozen=True)
class AnalyticalSignal(_DictMixin):
    """Output of one analytical source. Score is pre-adjusted by its producer."""

    source: str
    score: float
    subscores: dict[str, float] = field(default_factory=dict)
    narrative: tuple[str, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        source = str(self.source).lower().strip()
        if source not in SOURCES:
            raise ValueError(f"Unknown signal source '{self.source}'. Must be one of: {SOURCES}")
        object.__setattr__(self, "source", source)
        object.__setattr__(self, "score", clamp_unit(self.score))

        subscores = {}
        for key, value in dict(self.subscores).items():
            number = coerce_float(value)
            if number is not None:
                subscores[str(key)] = number
        object.__setattr__(self, "subscores", subscores)

        object.__setattr__(self, "narrative", sanitize_texts(self.narrative, limit=20))
        object.__setattr__(
            self,
            "labels",
            {str(k): str(v).strip().lower() for k, v in dict(self.labels).items() if v is not None},
        )

    def subscore(self, name: str) -> float | None:
        return self.subscores.get(name)

    def label(self, name: str) -> str | None:
        return self.labels.get(name)


@dataclass(frozen=True)
class MarketContext(_DictMixin):
    """Market snapshot for one candidate. Levels are derived from bars when absent."""

    current_price: float
    vix_level: float | None = None
    market_trend: str = "neutral"
    sector_performance: float | None = None
    time_of_day: str | None = None
    support_levels: tuple[float, ...] = ()
    resistance_levels: tuple[float, ...] = ()
    avg_true_range: float | None = None  # fraction of price
    avg_daily_volume: float | None = None
    historical_moves: dict[str, tuple[float, ...]] = field(default_factory=dict)
    bars: tuple[dict[str, Any], ...] = ()

    def __post_init__(self) -> None:
        price = coerce_float(self.current_price)
        if price is None or price <= 0:
            raise ValueError(f"current_price must be a positive number, got {self.current_price!r}")
        object.__setattr__(self, "current_price", price)

        trend = str(self.market_trend or "neutral").lower().strip()
        object.__setattr__(self, "market_trend", trend if trend in MARKET_TRENDS else "neutral")

        for name in ("vix_level", "sector_performance", "avg_true_range", "avg_daily_volume"):
            object.__setattr__(self, name, coerce_float(getattr(self, name)))

        support = tuple(sorted({p for p in map(coerce_float, self.support_levels) if p and p > 0}))
        resistance = tuple(
            sorted({p for p in map(coerce_float, self.resistance_levels) if p and p > 0})
        )
        bars = tuple(dict(b) for b in self.bars)
        atr = self.avg_true_range

        if bars and (not support or not resistance or atr is None):
            derived = derive_levels(bars, price)
            support = support or tuple(sorted(derived.support))
            resistance = resistance or tuple(sorted(derived.resistance))
            if atr is None:
                atr = derived.atr_fraction

        object.__setattr__(self, "support_levels", support)
        object.__setattr__(self, "resistance_levels", resistance)
        object.__setattr__(self, "avg_true_range", atr)
        object.__setattr__(self, "bars", bars)

        moves = {}
        for horizon, values in dict(self.historical_moves).items():
            cleaned = tuple(v for v in map(coerce_float, values or ()) if v is not None)
            moves[str(horizon)] = cleaned
        object.__setattr__(self, "historical_moves", moves)

    def nearest_support(self, below: float | None = None) -> float | None:
        """Highest support strictly below the reference price."""
        ref = self.current_price if below is None else below
        candidates = [lvl for lvl in self.support_levels if lvl < ref]
        return max(candidates) if candidates else None

    def nearest_resistance(self, above: float | None = None) -> float | None:
        """Lowest resistance strictly above the reference price."""
        ref = self.current_price if above is None else above
        candidates = [lvl for lvl in self.resistance_levels if lvl > ref]
        return min(candidates) if candidates else None


@dataclass(frozen=True)
class Candidate(_DictMixin):
    """An asset plus market snapshot awaiting fusion. Any signal may be absent."""

    symbol: str
    market_context: MarketContext
    signals: dict[str, AnalyticalSignal | None] = field(default_factory=dict)
    as_of: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        symbol = str(self.symbol).upper().strip()
        if not symbol:
            raise ValueError("Candidate symbol must be non-empty")
        object.__setattr__(self, "symbol", symbol)
        object.__setattr__(self, "as_of", parse_timestamp(self.as_of))

        signals: dict[str, AnalyticalSignal | None] = {}
        for key, signal in dict(self.signals).items():
            source = str(key).lower().strip()
            if source not in SOURCES:
                raise ValueError(f"Unknown signal source '{key}'. Must be one of: {SOURCES}")
            if signal is not None and signal.source != source:
                raise ValueError(f"Signal keyed '{source}' reports source '{signal.source}'")
            signals[source] = signal
        object.__setattr__(self, "signals", signals)

    def signal(self, source: str) -> AnalyticalSignal | None:
        return self.signals.get(source)

    def present_signals(self) -> dict[str, AnalyticalSignal]:
        return {k: v for k, v in self.signals.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["as_of"] = self.as_of.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Candidate:
        signals = {}
        for source, raw in (data.get("signals") or {}).items():
            if raw is None:
                signals[source] = None
            else:
                payload = {"source": source, **raw}
                signals[source] = AnalyticalSignal.from_dict(payload)
        return cls(
            symbol=data["symbol"],
            market_context=MarketContext.from_dict(data["market_context"]),
            signals=signals,
            as_of=data.get("as_of") or utc_now(),
        )


# ---------------- fusion output ----------------


@dataclass(frozen=True)
class CompositeScore(_DictMixin):
    """Weighted aggregate of per-source scores. Composite equals sum of contributions."""

    symbol: str
    scores: dict[str, float | None]
    weights: dict[str, float]
    contributions: dict[str, float]
    composite: float
    policy: str
    sources_present: tuple[str, ...]
    coverage: float


@dataclass(frozen=True)
class TradeHeader(_DictMixin):
    title: str
    subtitle: str
    confidence: float
    timeframe: str
    trade_type: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "trade_type", require_choice(self.trade_type, TRADE_TYPES, "trade_type"))
        object.__setattr__(self, "confidence", clamp_unit(self.confidence))


@dataclass(frozen=True)
class SetupSection(_DictMixin):
    type: str
    strength: float
    confluence_factors: tuple[str, ...] = ()
    key_levels: tuple[str, ...] = ()


@dataclass(frozen=True)
class CatalystSection(_DictMixin):
    primary: str
    timing_sensitivity: str
    event_risk: bool = False
    secondary: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "timing_sensitivity",
            require_choice(self.timing_sensitivity, TIMING_SENSITIVITIES, "timing_sensitivity"),
        )


@dataclass(frozen=True)
class TimingSection(_DictMixin):
    entry_window: str
    optimal_entry: str
    time_horizon: str
    urgency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "urgency", require_choice(self.urgency, URGENCIES, "urgency"))


@dataclass(frozen=True)
class ConfirmationSection(_DictMixin):
    signals_needed: tuple[str, ...] = ()
    invalidation_triggers: tuple[str, ...] = ()
    monitoring_points: tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskSection(_DictMixin):
    risk_grade: str
    position_sizing: float
    stop_loss_strategy: str
    primary_risks: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "risk_grade", require_choice(self.risk_grade, RISK_GRADES, "risk_grade"))
        object.__setattr__(self, "position_sizing", require_number(self.position_sizing, "position_sizing"))


@dataclass(frozen=True)
class TradeNarrative(_DictMixin):
    summary: str
    setup: SetupSection
    catalyst: CatalystSection
    timing: TimingSection
    confirmation: ConfirmationSection
    risk: RiskSection


@dataclass(frozen=True)
class Execution(_DictMixin):
    entry_price: float
    target_price: float
    stop_loss: float
    position_size: float
    risk_reward_ratio: float
    max_loss_percent: float

    def __post_init__(self) -> None:
        for name in ("entry_price", "target_price", "stop_loss"):
            object.__setattr__(self, name, require_number(getattr(self, name), name, positive=True))
        for name in ("position_size", "risk_reward_ratio", "max_loss_percent"):
            object.__setattr__(self, name, require_number(getattr(self, name), name))


@dataclass(frozen=True)
class CounterSignals(_DictMixin):
    identified: bool = False
    severity: str = "low"
    description: str | None = None
    mitigation: str | None = None
    items: tuple[str, ...] = ()


@dataclass(frozen=True)
class RecommendationMetadata(_DictMixin):
    model_used: str
    processing_time_ms: float = 0.0
    data_quality_score: float = 0.0
    module_contributions: dict[str, float] = field(default_factory=dict)
    fusion_confidence: float = 0.0
    warnings: tuple[str, ...] = ()
    engine_version: str = "dev"
    schema_version: str = "1"


@dataclass(frozen=True)
class Recommendation(_DictMixin):
    """Trade card. Created by synthesis or the fallback generator, never mutated."""

    id: str
    symbol: str
    created_at: str
    header: TradeHeader
    narrative: TradeNarrative
    execution: Execution
    signal_composition: CompositeScore
    counter_signals: CounterSignals
    metadata: RecommendationMetadata

    @property
    def direction(self) -> str:
        return infer_direction(
            self.header.trade_type, self.execution.entry_price, self.execution.target_price
        )

    @property
    def is_fallback(self) -> bool:
        return self.metadata.model_used == "fallback"


# ---------------- validation output ----------------


@dataclass(frozen=True)
class Issue(_DictMixin):
    category: str
    severity: str
    description: str
    evidence: str = ""
    suggestion: str = ""
    origin: str = "local"  # "local" cross-check or "review" collaborator


@dataclass(frozen=True)
class EvidenceAnalysis(_DictMixin):
    signal_support_strength: float = 0.0
    contradictory: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()
    overfitting: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImprovementSuggestions(_DictMixin):
    signal_integration: tuple[str, ...] = ()
    logic_refinement: tuple[str, ...] = ()
    prompt_optimization: tuple[str, ...] = ()


@dataclass(frozen=True)
class VerdictMetadata(_DictMixin):
    model_used: str
    strictness: str
    processing_time_ms: float = 0.0
    local_score: float | None = None
    review_score: float | None = None
    engine_version: str = "dev"


@dataclass(frozen=True)
class ValidationVerdict(_DictMixin):
    """Independent consistency verdict over one recommendation."""

    trade_id: str
    symbol: str
    passed: bool
    validation_score: float
    confidence_score: float
    recommendation: str
    issues: tuple[Issue, ...]
    metadata: VerdictMetadata
    criteria: dict[str, bool] = field(default_factory=dict)
    cross_checks: dict[str, bool] = field(default_factory=dict)
    evidence: EvidenceAnalysis = field(default_factory=EvidenceAnalysis)
    logic_consistency: dict[str, Any] = field(default_factory=dict)
    improvement_suggestions: ImprovementSuggestions = field(default_factory=ImprovementSuggestions)


# ---------------- cycle analytics ----------------


@dataclass(frozen=True)
class MarketOverview(_DictMixin):
    """Market environment across every candidate of one cycle."""

    environment: str
    dominant_themes: tuple[str, ...]
    opportunity_assessment: str
    avg_vix: float | None = None
    avg_sector_performance: float | None = None


@dataclass(frozen=True)
class PortfolioGuidance(_DictMixin):
    """Allocation view across the trade cards of one cycle."""

    overall_allocation: str
    total_allocation: float
    sector_tilts: tuple[str, ...]
    risk_management: str
    market_outlook: str
    avg_risk: float | None = None


@dataclass(frozen=True)
class PromptFeedback(_DictMixin):
    """Review findings that point at one prompt category."""

    prompt_category: str
    issues_detected: tuple[str, ...] = ()
    suggested_improvements: tuple[str, ...] = ()
    confidence_impact: float = 0.0
