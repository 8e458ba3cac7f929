"""Full fusion cycle tool."""

import logging
from time import perf_counter
from typing import Any

from trade_fusion.models import Candidate
from trade_fusion.tools.runtime import Runtime, get_runtime
from trade_fusion.utils.provenance import build_error_response, build_meta

logger = logging.getLogger(__name__)


async def fusion_report(
    candidates: list[dict[str, Any]],
    cycle_id: str | None = None,
    validate: bool = True,
    runtime: Runtime | None = None,
) -> dict[str, Any]:
    """
    Run compose, gate, synthesis and validation over a list of candidates.

    Malformed candidates are reported and skipped; the rest still run.

    Args:
        candidates: Candidate payloads
        cycle_id: Evaluation cycle id (default: today's trading date)
        validate: Validate every produced trade card
        runtime: Collaborators (default: process runtime)

    Returns:
        Dict with the engine report plus any input errors
    """
    start_time = perf_counter()
    runtime = runtime or get_runtime()

    if not candidates:
        return build_error_response("invalid_input", "No candidates provided")

    parsed: list[Candidate] = []
    input_errors: list[dict[str, Any]] = []
    for index, raw in enumerate(candidates):
        try:
            parsed.append(Candidate.from_dict(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping candidate #{index}: {e}")
            input_errors.append({"index": index, "symbol": raw.get("symbol"), "message": str(e)})

    if not parsed:
        return build_error_response("invalid_input", "No valid candidates", details=input_errors)

    symbols = [c.symbol for c in parsed]
    if len(set(symbols)) != len(symbols):
        return build_error_response("invalid_input", f"Duplicate symbols in candidates: {symbols}")

    report = await runtime.engine.run(parsed, cycle_id=cycle_id, validate=validate)

    return {
        "meta": build_meta("fusion_report", (perf_counter() - start_time) * 1000, cycle_id=report.cycle_id),
        **report.to_dict(),
        "input_errors": input_errors,
    }
