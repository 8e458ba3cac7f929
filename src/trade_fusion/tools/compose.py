"""Composite score tool."""

from time import perf_counter
from typing import Any

from trade_fusion.fusion.composer import data_quality_score
from trade_fusion.fusion.counter_signals import detect_counter_signals
from trade_fusion.models import Candidate
from trade_fusion.tools.runtime import Runtime, get_runtime
from trade_fusion.utils.provenance import build_error_response, build_meta, build_provenance


async def candidate_composite(candidate: dict[str, Any], runtime: Runtime | None = None) -> dict[str, Any]:
    """
    Score one candidate and report whether it clears the confidence gate.

    Args:
        candidate: Candidate payload (symbol, market_context, signals, as_of)
        runtime: Collaborators (default: process runtime)

    Returns:
        Dict with composite score, gate outcome, data quality and counter-signals
    """
    start_time = perf_counter()
    runtime = runtime or get_runtime()

    try:
        parsed = Candidate.from_dict(candidate)
    except (KeyError, TypeError, ValueError) as e:
        return build_error_response("invalid_input", f"Invalid candidate: {e}", candidate.get("symbol"))

    composite = await runtime.engine.compose(parsed)
    threshold = runtime.config.gate_threshold

    return {
        "meta": build_meta("candidate_composite", (perf_counter() - start_time) * 1000),
        "symbol": parsed.symbol,
        "composite": composite.to_dict(),
        "gate": {
            "threshold": threshold,
            "passes": composite.composite >= threshold,
        },
        "data_quality_score": data_quality_score(parsed),
        "counter_signals": detect_counter_signals(parsed).to_dict(),
        "data_provenance": build_provenance(parsed),
    }
