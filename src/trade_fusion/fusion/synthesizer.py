"""Recommendation synthesis via an external generative collaborator.

The collaborator is asked for a payload matching SYNTHESIS_SCHEMA. Nothing it
returns is trusted: every field is coerced, clamped or defaulted here, and any
error, timeout or schema violation becomes a SynthesisError. A partially
filled Recommendation is never returned.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from time import perf_counter
from typing import Any

from trade_fusion import ENGINE_VERSION, SCHEMA_VERSION
from trade_fusion.config import DEFAULT_WEIGHTS
from trade_fusion.data.completion_client import StructuredCompleter
from trade_fusion.errors import SynthesisError
from trade_fusion.fusion.composer import data_quality_score, module_contributions
from trade_fusion.fusion.counter_signals import detect_counter_signals
from trade_fusion.models import (
    MAX_POSITION_SIZE,
    MIN_RISK_REWARD,
    RISK_GRADES,
    SETUP_TYPES,
    TIMING_SENSITIVITIES,
    TRADE_TYPES,
    URGENCIES,
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
from trade_fusion.prompts.templates import SYNTHESIS_SCHEMA, build_synthesis_prompt
from trade_fusion.utils.sanitize import sanitize_required, sanitize_text, sanitize_texts
from trade_fusion.utils.validators import clamp_unit, coerce_choice, coerce_float

logger = logging.getLogger(__name__)

# Conservative defaults for timing fields the collaborator leaves out
DEFAULT_ENTRY_WINDOW = "After confirmation"
DEFAULT_OPTIMAL_ENTRY = "On confirmation of the setup"
DEFAULT_TIME_HORIZON = "1-2 weeks"
DEFAULT_URGENCY = "low"
DEFAULT_TIMING_SENSITIVITY = "days"

# Offsets from current price when neither the payload nor the technical source gives prices
DEFAULT_TARGET_OFFSET = 0.05
DEFAULT_STOP_OFFSET = 0.03

RISK_REWARD_BELOW_MINIMUM = "risk_reward_below_minimum"


def new_trade_id(symbol: str, cycle_id: str) -> str:
    return f"{symbol}-{cycle_id}-{uuid.uuid4().hex[:8]}"


def _section(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = payload.get(name)
    if not isinstance(section, Mapping) or not section:
        raise ValueError(f"Missing required section: {name}")
    return section


def _positive_price(value: Any, name: str) -> float:
    price = coerce_float(value)
    if price is None or price <= 0:
        raise ValueError(f"{name} must be a positive number, got {value!r}")
    return price


def infer_trade_type(
    candidate: Candidate,
    setup_type: str,
    stated: Any,
    entry: float,
    target: float,
) -> str:
    """
    Options Play for earnings setups and for technical reversals under high risk.

    Otherwise the stated type when valid, else Long/Short from target vs entry.
    """
    technical = candidate.signal("technical")
    risk = candidate.signal("risk")
    if setup_type == "Earnings Play":
        return "Options Play"
    if (
        technical is not None
        and risk is not None
        and technical.label("setup_type") == "reversal"
        and (risk.subscore("overall_risk") or 0.0) > 0.7
    ):
        return "Options Play"
    trade_type = coerce_choice(stated, TRADE_TYPES)
    if trade_type is not None:
        return trade_type
    return "Long" if target >= entry else "Short"


def _execution_prices(
    candidate: Candidate, execution: Any, stated_type: Any
) -> tuple[float, float, float, float | None]:
    """Entry, target, stop and stated risk/reward from payload, technical source, or defaults."""
    if isinstance(execution, Mapping) and execution:
        return (
            _positive_price(execution.get("entry_price"), "entry_price"),
            _positive_price(execution.get("target_price"), "target_price"),
            _positive_price(execution.get("stop_loss"), "stop_loss"),
            coerce_float(execution.get("risk_reward_ratio")),
        )

    technical = candidate.signal("technical")
    if technical is not None:
        levels = [technical.subscore(k) for k in ("entry_price", "target_price", "stop_loss")]
        if all(v is not None and v > 0 for v in levels):
            return (levels[0], levels[1], levels[2], technical.subscore("risk_reward_ratio"))

    price = candidate.market_context.current_price
    if coerce_choice(stated_type, TRADE_TYPES) == "Short":
        return (price, price * (1 - DEFAULT_TARGET_OFFSET), price * (1 + DEFAULT_STOP_OFFSET), None)
    return (price, price * (1 + DEFAULT_TARGET_OFFSET), price * (1 - DEFAULT_STOP_OFFSET), None)


def build_recommendation(
    candidate: Candidate,
    composite: CompositeScore,
    payload: Any,
    *,
    trade_id: str,
    created_at: datetime,
    model_used: str,
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
    processing_time_ms: float = 0.0,
) -> Recommendation:
    """
    Post-validate a synthesis payload into a Recommendation.

    Raises:
        ValueError: If the payload violates the schema
    """
    if not isinstance(payload, Mapping):
        raise ValueError(f"Payload must be an object, got {type(payload).__name__}")

    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("Missing required field: summary")

    setup_raw = _section(payload, "setup")
    catalyst_raw = _section(payload, "catalyst")
    timing_raw = _section(payload, "timing")
    confirmation_raw = _section(payload, "confirmation")
    risk_raw = _section(payload, "risk")

    setup_type = coerce_choice(setup_raw.get("type"), SETUP_TYPES)
    if setup_type is None:
        raise ValueError(f"Invalid setup type: {setup_raw.get('type')!r}")

    primary = catalyst_raw.get("primary")
    if not isinstance(primary, str) or not primary.strip():
        raise ValueError("Missing required field: catalyst.primary")

    risk_grade = coerce_choice(risk_raw.get("risk_grade"), RISK_GRADES)
    if risk_grade is None:
        raise ValueError(f"Invalid risk grade: {risk_raw.get('risk_grade')!r}")

    setup = SetupSection(
        type=setup_type,
        strength=clamp_unit(setup_raw.get("strength")),
        confluence_factors=sanitize_texts(setup_raw.get("confluence_factors")),
        key_levels=sanitize_texts(setup_raw.get("key_levels")),
    )
    catalyst = CatalystSection(
        primary=sanitize_text(primary) or primary.strip(),
        secondary=sanitize_texts(catalyst_raw.get("secondary")),
        timing_sensitivity=coerce_choice(
            catalyst_raw.get("timing_sensitivity"), TIMING_SENSITIVITIES, DEFAULT_TIMING_SENSITIVITY
        ),
        event_risk=catalyst_raw.get("event_risk") is True,
    )
    timing = TimingSection(
        entry_window=sanitize_required(timing_raw.get("entry_window"), DEFAULT_ENTRY_WINDOW),
        optimal_entry=sanitize_required(timing_raw.get("optimal_entry"), DEFAULT_OPTIMAL_ENTRY),
        time_horizon=sanitize_required(timing_raw.get("time_horizon"), DEFAULT_TIME_HORIZON),
        urgency=coerce_choice(timing_raw.get("urgency"), URGENCIES, DEFAULT_URGENCY),
    )
    confirmation = ConfirmationSection(
        signals_needed=sanitize_texts(confirmation_raw.get("signals_needed")),
        invalidation_triggers=sanitize_texts(confirmation_raw.get("invalidation_triggers")),
        monitoring_points=sanitize_texts(confirmation_raw.get("monitoring_points")),
    )
    position_size = min(clamp_unit(risk_raw.get("position_sizing")), MAX_POSITION_SIZE)
    risk = RiskSection(
        risk_grade=risk_grade,
        position_sizing=position_size,
        stop_loss_strategy=sanitize_required(
            risk_raw.get("stop_loss_strategy"), "Fixed stop at invalidation level"
        ),
        primary_risks=sanitize_texts(risk_raw.get("primary_risks")),
    )

    entry, target, stop, stated_rr = _execution_prices(
        candidate, payload.get("execution"), payload.get("trade_type")
    )
    derived_rr = derive_risk_reward(entry, target, stop)
    if derived_rr is None:
        raise ValueError("stop_loss equals entry_price")
    risk_reward = stated_rr if stated_rr is not None and stated_rr > 0 else derived_rr

    trade_type = infer_trade_type(candidate, setup_type, payload.get("trade_type"), entry, target)

    warnings: list[str] = []
    minimum = MIN_RISK_REWARD[trade_type]
    if derived_rr < minimum:
        warnings.append(RISK_REWARD_BELOW_MINIMUM)
        logger.info(
            f"{candidate.symbol}: risk/reward {derived_rr:.2f} below {minimum} for {trade_type} "
            f"(recorded for validation)"
        )

    execution = Execution(
        entry_price=entry,
        target_price=target,
        stop_loss=stop,
        position_size=position_size,
        risk_reward_ratio=risk_reward,
        max_loss_percent=abs(entry - stop) / entry,
    )
    header = TradeHeader(
        title=f"{setup_type} - {candidate.symbol}",
        subtitle=catalyst.primary,
        confidence=clamp_unit(composite.composite),
        timeframe=timing.time_horizon,
        trade_type=trade_type,
    )
    narrative = TradeNarrative(
        summary=sanitize_text(summary) or summary.strip(),
        setup=setup,
        catalyst=catalyst,
        timing=timing,
        confirmation=confirmation,
        risk=risk,
    )
    metadata = RecommendationMetadata(
        model_used=model_used,
        processing_time_ms=round(processing_time_ms, 1),
        data_quality_score=data_quality_score(candidate),
        module_contributions=module_contributions(candidate, weights),
        fusion_confidence=clamp_unit(composite.composite),
        warnings=tuple(warnings),
        engine_version=ENGINE_VERSION,
        schema_version=SCHEMA_VERSION,
    )
    return Recommendation(
        id=trade_id,
        symbol=candidate.symbol,
        created_at=created_at.isoformat(),
        header=header,
        narrative=narrative,
        execution=execution,
        signal_composition=composite,
        counter_signals=detect_counter_signals(candidate),
        metadata=metadata,
    )


class RecommendationSynthesizer:
    """
    Wraps the generative collaborator behind `synthesize(candidate, composite)`.

    Raises SynthesisError for every failure mode; callers substitute a
    fallback card.
    """

    def __init__(
        self,
        client: StructuredCompleter,
        weights: Mapping[str, float] = DEFAULT_WEIGHTS,
        timeout: float = 45.0,
        model_name: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.weights = weights
        self.timeout = timeout
        self.model_name = model_name or getattr(client, "model", "external")
        self.clock = clock

    async def synthesize(
        self,
        candidate: Candidate,
        composite: CompositeScore,
        cycle_id: str | None = None,
    ) -> Recommendation:
        """
        Produce a validated Recommendation for one gated candidate.

        Args:
            candidate: Candidate that cleared the gate
            composite: Its composite score (snapshotted into the card)
            cycle_id: Evaluation cycle, part of the recommendation id

        Returns:
            Recommendation tagged with the synthesis model

        Raises:
            SynthesisError: On collaborator error, timeout, or schema violation
        """
        symbol = candidate.symbol
        counter = detect_counter_signals(candidate)
        prompt = build_synthesis_prompt(candidate, composite, list(counter.items))
        start = perf_counter()

        try:
            payload = await asyncio.wait_for(
                self.client.complete(prompt, SYNTHESIS_SCHEMA), timeout=self.timeout
            )
        except TimeoutError as e:
            error = SynthesisError(symbol, f"timed out after {self.timeout}s", cause=e)
            logger.warning(f"{error}")
            raise error from e
        except Exception as e:
            error = SynthesisError(symbol, f"{type(e).__name__}: {e}", cause=e)
            logger.warning(f"{error}")
            raise error from e

        now = self.clock()
        cycle = cycle_id or now.strftime("%Y-%m-%d")
        try:
            return build_recommendation(
                candidate,
                composite,
                payload,
                trade_id=new_trade_id(symbol, cycle),
                created_at=now,
                model_used=self.model_name,
                weights=self.weights,
                processing_time_ms=(perf_counter() - start) * 1000,
            )
        except (KeyError, TypeError, ValueError) as e:
            error = SynthesisError(symbol, f"schema violation: {e}", cause=e)
            logger.warning(f"{error}")
            raise error from e
