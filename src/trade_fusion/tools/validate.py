"""Trade card validation tool."""

from time import perf_counter
from typing import Any

from trade_fusion.config import STRICTNESS_PROFILES
from trade_fusion.models import Candidate, MarketContext, Recommendation
from trade_fusion.tools.runtime import Runtime, get_runtime
from trade_fusion.utils.provenance import build_error_response, build_meta


async def trade_card_verdict(
    recommendation: dict[str, Any],
    candidate: dict[str, Any] | None = None,
    market_context: dict[str, Any] | None = None,
    strictness: str | None = None,
    runtime: Runtime | None = None,
) -> dict[str, Any]:
    """
    Validate a trade card for internal consistency.

    Args:
        recommendation: Trade card payload
        candidate: Originating candidate payload (optional, enables signal checks)
        market_context: Market snapshot (optional, defaults to the candidate's)
        strictness: permissive, standard or strict
        runtime: Collaborators (default: process runtime)

    Returns:
        Dict with the validation verdict
    """
    start_time = perf_counter()
    runtime = runtime or get_runtime()

    if strictness is not None and strictness.lower().strip() not in STRICTNESS_PROFILES:
        return build_error_response(
            "invalid_input",
            f"Invalid strictness '{strictness}'. Must be one of: {sorted(STRICTNESS_PROFILES)}",
        )

    try:
        card = Recommendation.from_dict(recommendation)
        origin = Candidate.from_dict(candidate) if candidate else None
        context = MarketContext.from_dict(market_context) if market_context else None
    except (KeyError, TypeError, ValueError) as e:
        return build_error_response("invalid_input", f"Invalid input: {e}", recommendation.get("symbol"))

    verdict = await runtime.validator.validate(card, origin, context, strictness)

    return {
        "meta": build_meta(
            "trade_card_verdict",
            (perf_counter() - start_time) * 1000,
            strictness=verdict.metadata.strictness,
        ),
        "verdict": verdict.to_dict(),
    }
