"""Prompt templates and function-calling schemas for synthesis and review."""

import json
from typing import Any

from trade_fusion.data.completion_client import Prompt
from trade_fusion.models import (
    ISSUE_CATEGORIES,
    RISK_GRADES,
    SETUP_TYPES,
    SEVERITIES,
    TIMING_SENSITIVITIES,
    TRADE_TYPES,
    URGENCIES,
    VERDICT_RECOMMENDATIONS,
    Candidate,
    CompositeScore,
    Recommendation,
)
from trade_fusion.utils.market_clock import market_session


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


def _unit(description: str) -> dict[str, Any]:
    return {"type": "number", "minimum": 0, "maximum": 1, "description": description}


SYNTHESIS_SCHEMA: dict[str, Any] = {
    "name": "synthesize_trade_narrative",
    "description": "Synthesize multiple analytical source outputs into a coherent trade card",
    "parameters": {
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "Concise 2-3 sentence trade thesis"},
            "trade_type": {
                "type": "string",
                "enum": list(TRADE_TYPES),
                "description": "Trade structure",
            },
            "setup": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": list(SETUP_TYPES)},
                    "strength": _unit("Setup strength based on signal confluence"),
                    "confluence_factors": _string_list("Key factors supporting the setup"),
                    "key_levels": _string_list("Important price levels"),
                },
                "required": ["type", "strength", "confluence_factors", "key_levels"],
            },
            "catalyst": {
                "type": "object",
                "properties": {
                    "primary": {"type": "string", "description": "Primary catalyst"},
                    "secondary": _string_list("Secondary supporting catalysts"),
                    "timing_sensitivity": {"type": "string", "enum": list(TIMING_SENSITIVITIES)},
                    "event_risk": {
                        "type": "boolean",
                        "description": "Whether the catalyst involves binary event risk",
                    },
                },
                "required": ["primary", "timing_sensitivity", "event_risk"],
            },
            "timing": {
                "type": "object",
                "properties": {
                    "entry_window": {"type": "string"},
                    "optimal_entry": {"type": "string"},
                    "time_horizon": {"type": "string"},
                    "urgency": {"type": "string", "enum": list(URGENCIES)},
                },
                "required": ["entry_window", "optimal_entry", "time_horizon", "urgency"],
            },
            "confirmation": {
                "type": "object",
                "properties": {
                    "signals_needed": _string_list("Signals needed to confirm the trade"),
                    "invalidation_triggers": _string_list("Conditions that invalidate the thesis"),
                    "monitoring_points": _string_list("Key metrics and levels to monitor"),
                },
                "required": ["signals_needed", "invalidation_triggers", "monitoring_points"],
            },
            "risk": {
                "type": "object",
                "properties": {
                    "primary_risks": _string_list("Main risk factors"),
                    "risk_grade": {"type": "string", "enum": list(RISK_GRADES)},
                    "position_sizing": _unit("Position size as fraction of portfolio"),
                    "stop_loss_strategy": {"type": "string"},
                },
                "required": ["primary_risks", "risk_grade", "position_sizing", "stop_loss_strategy"],
            },
            "execution": {
                "type": "object",
                "properties": {
                    "entry_price": {"type": "number"},
                    "target_price": {"type": "number"},
                    "stop_loss": {"type": "number"},
                    "risk_reward_ratio": {"type": "number"},
                },
                "required": ["entry_price", "target_price", "stop_loss"],
            },
        },
        "required": ["summary", "setup", "catalyst", "timing", "confirmation", "risk"],
    },
}

_REVIEW_CRITERIA = {
    "signal_evidence_alignment": "Whether the rationale aligns with the input signal evidence",
    "risk_reward_rationality": "Whether the risk/reward assessment is rational",
    "timing_logic_consistency": "Whether timing elements are internally consistent",
    "price_target_realism": "Whether price targets are realistic given historical moves",
    "technical_feasibility": "Whether the trade is feasible given market conditions",
    "historical_precedent": "Whether similar setups have historical precedent",
    "internal_contradiction_check": "Whether the card is free of internal contradictions",
    "catalyst_timing_alignment": "Whether catalysts align with the stated timing",
}

REVIEW_SCHEMA: dict[str, Any] = {
    "name": "validate_trade_recommendation",
    "description": "Independent consistency review of a trade card",
    "parameters": {
        "type": "object",
        "properties": {
            "validation_score": _unit("Overall coherence and evidence-support score"),
            "confidence_score": _unit("Confidence in this review itself"),
            "recommendation": {"type": "string", "enum": list(VERDICT_RECOMMENDATIONS)},
            **{name: {"type": "boolean", "description": desc} for name, desc in _REVIEW_CRITERIA.items()},
            "identified_issues": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "category": {"type": "string", "enum": list(ISSUE_CATEGORIES)},
                        "severity": {"type": "string", "enum": list(SEVERITIES)},
                        "description": {"type": "string"},
                        "evidence": {"type": "string"},
                        "suggestion": {"type": "string"},
                    },
                    "required": ["category", "severity", "description", "evidence", "suggestion"],
                },
            },
            "contradictory_evidence": _string_list("Evidence that contradicts the thesis"),
            "missing_evidence": _string_list("Critical evidence missing from the analysis"),
            "overfitting_indicators": _string_list("Signs of overfitting to recent data"),
            "signal_integration_improvements": _string_list("Suggestions for better signal integration"),
            "logic_refinement_suggestions": _string_list("Suggestions for improving logical consistency"),
            "prompt_optimization_feedback": _string_list("Feedback for improving the synthesis prompts"),
        },
        "required": [
            "validation_score",
            "confidence_score",
            "recommendation",
            *_REVIEW_CRITERIA,
            "identified_issues",
        ],
    },
}

REVIEW_CRITERIA = tuple(_REVIEW_CRITERIA)

SYNTHESIS_SYSTEM_PROMPT = """You are a trading strategist that synthesizes independent analytical \
signals into one coherent, executable trade card.

SETUP TYPES:
- Breakout: price breaking key resistance/support with volume
- Reversal: oversold/overbought conditions with divergence
- Momentum: strong directional movement with confirming indicators
- Earnings Play: post-earnings drift and surprise reactions
- Sector Rotation: capital flow shifts between sectors
- Anomaly Exploitation: unusual price/volume behavior with an identifiable catalyst
- Mean Reversion: extended moves likely to retrace

RULES:
1. Only cite evidence present in the signals below. Missing sources are unavailable, not neutral.
2. Price ordering must match direction: target > entry > stop for longs, reversed for shorts.
3. Aim for at least 2:1 reward to risk.
4. Align urgency, entry window and time horizon with the catalyst's timing sensitivity.
5. Size positions by risk grade (A 8-15%, B 5-10%, C 3-8%, D 1-5%, F 0.5-2%).
6. Name counter-signals explicitly in primary_risks."""

REVIEW_SYSTEM_PROMPT = """You are an independent trade reviewer. You did not write the trade card \
below. Check it for internal consistency and evidence support.

Flag as issues:
- signal_mismatch: rationale not supported by the input signals
- logic_error: contradictory prices, direction or reasoning
- unrealistic_target: target beyond typical historical moves for the timeframe
- timing_inconsistency: urgency, entry window and horizon that disagree
- risk_miscalculation: position size, stop or risk grade inconsistent with the risk evidence
- hallucination: claims, levels or events that appear nowhere in the inputs

Score conservatively. A card with any critical issue must not be approved.
Where you can, suggest how signal integration, the card's logic or the synthesis prompts could improve."""


def _format_signals(candidate: Candidate) -> str:
    lines = []
    for source, signal in candidate.signals.items():
        if signal is None:
            lines.append(f"- {source.upper()}: unavailable")
            continue
        subs = ", ".join(f"{k}={v:.2f}" for k, v in sorted(signal.subscores.items()))
        labels = ", ".join(f"{k}={v}" for k, v in sorted(signal.labels.items()))
        line = f"- {source.upper()}: score {signal.score:.2f}"
        if subs:
            line += f" ({subs})"
        if labels:
            line += f" [{labels}]"
        lines.append(line)
        for fragment in signal.narrative[:3]:
            lines.append(f"    * {fragment}")
    return "\n".join(lines) if lines else "- no signals available"


def _format_levels(levels: tuple[float, ...]) -> str:
    return ", ".join(f"${lvl:.2f}" for lvl in levels[:4]) or "none"


def build_synthesis_prompt(
    candidate: Candidate,
    composite: CompositeScore,
    counter_signals: list[str] | None = None,
) -> Prompt:
    """Build the synthesis request for one gated candidate."""
    ctx = candidate.market_context
    atr = f"{ctx.avg_true_range * 100:.1f}%" if ctx.avg_true_range is not None else "unknown"
    vix = f"{ctx.vix_level:.1f}" if ctx.vix_level is not None else "unknown"
    session = ctx.time_of_day or market_session(candidate.as_of)
    conflicts = "\n".join(f"- {c}" for c in counter_signals or []) or "- none detected"

    user = f"""Synthesize a trade card for {candidate.symbol} at ${ctx.current_price:.2f}.

MARKET CONTEXT:
- Market trend: {ctx.market_trend}
- Session: {session}
- VIX: {vix}
- ATR: {atr} of price
- Support: {_format_levels(ctx.support_levels[::-1])}
- Resistance: {_format_levels(ctx.resistance_levels)}

SIGNALS:
{_format_signals(candidate)}

COMPOSITE: {composite.composite:.3f} (coverage {composite.coverage:.2f}, policy {composite.policy})

COUNTER-SIGNALS:
{conflicts}"""
    return Prompt(system=SYNTHESIS_SYSTEM_PROMPT, user=user)


def build_review_prompt(
    recommendation: Recommendation,
    candidate: Candidate | None,
    local_findings: dict[str, Any],
) -> Prompt:
    """Build the consistency-review request for one trade card."""
    card = json.dumps(recommendation.to_dict(), indent=2, default=str)
    signals = _format_signals(candidate) if candidate is not None else "- not provided"
    findings = json.dumps(local_findings, indent=2, default=str)
    user = f"""Review trade card {recommendation.id} for {recommendation.symbol}.

TRADE CARD:
{card}

INPUT SIGNALS:
{signals}

LOCAL CROSS-CHECK FINDINGS:
{findings}"""
    return Prompt(system=REVIEW_SYSTEM_PROMPT, user=user)


# MCP prompt definitions
PROMPTS = {
    "fusion_cycle": {
        "description": "Run a fusion cycle over candidates and summarize approved trade cards",
        "arguments": [{"name": "symbols", "required": True}],
    },
    "trade_card_review": {
        "description": "Walk through a validation verdict for a single trade card",
        "arguments": [{"name": "trade_id", "required": True}],
    },
}


def list_prompts() -> list[dict[str, Any]]:
    """List available prompts."""
    return [
        {
            "name": name,
            "description": info["description"],
            "arguments": info["arguments"],
        }
        for name, info in PROMPTS.items()
    ]


def get_prompt(name: str, arguments: dict[str, str]) -> dict[str, Any] | None:
    """
    Get a prompt by name with arguments filled in.

    Returns dict with 'messages' key for MCP GetPromptResult.
    """
    if name not in PROMPTS:
        return None

    if name == "fusion_cycle":
        symbols = arguments.get("symbols", "")
        content = f"""Evaluate these candidates: {symbols}.

1. Call compose_candidate for each to inspect its composite and coverage.
2. Call fuse_candidates with all of them.
3. Report approved cards first, then cards needing revision, then rejections.
4. Mark any card whose metadata.model_used is "fallback" as degraded output.
5. List gate rejections with their composite and threshold."""
    else:
        trade_id = arguments.get("trade_id", "")
        content = f"""Explain the validation verdict for trade card {trade_id}.

Cover, in order: recommendation and score, critical and high issues with their
suggestions, failed criteria, and whether the card came from the fallback generator."""

    return {"messages": [{"role": "user", "content": content}]}
