"""Rule-based fallback card tool."""

from time import perf_counter
from typing import Any

from trade_fusion.models import Candidate
from trade_fusion.tools.runtime import Runtime, get_runtime
from trade_fusion.utils.market_clock import trading_date
from trade_fusion.utils.provenance import build_error_response, build_meta, build_provenance


async def fallback_trade_card(
    candidate: dict[str, Any],
    cycle_id: str | None = None,
    runtime: Runtime | None = None,
) -> dict[str, Any]:
    """
    Build the deterministic fallback trade card for a candidate.

    Args:
        candidate: Candidate payload
        cycle_id: Evaluation cycle id (default: today's trading date)
        runtime: Collaborators (default: process runtime)

    Returns:
        Dict with a trade card tagged model_used="fallback"
    """
    start_time = perf_counter()
    runtime = runtime or get_runtime()

    try:
        parsed = Candidate.from_dict(candidate)
    except (KeyError, TypeError, ValueError) as e:
        return build_error_response("invalid_input", f"Invalid candidate: {e}", candidate.get("symbol"))

    engine = runtime.engine
    composite = await engine.compose(parsed)
    cycle = cycle_id or trading_date(engine.clock(), runtime.config.market_tz)
    card = engine.fallback_for(parsed, composite, cycle)

    return {
        "meta": build_meta("fallback_trade_card", (perf_counter() - start_time) * 1000, cycle_id=cycle),
        "recommendation": card.to_dict(),
        "data_provenance": build_provenance(parsed),
    }
