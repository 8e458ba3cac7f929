"""Response metadata, input provenance and error-response utilities."""

from typing import TYPE_CHECKING, Any

from trade_fusion import ENGINE_VERSION, SCHEMA_VERSION
from trade_fusion.config import SOURCES

if TYPE_CHECKING:
    from trade_fusion.models import Candidate


def build_meta(tool: str, duration_ms: float | None = None, **context: Any) -> dict[str, Any]:
    """
    Build standard metadata block for tool responses.

    Args:
        tool: Name of the tool producing this response
        duration_ms: Execution time in milliseconds (optional)
        **context: Run context such as cycle_id or strictness; None values are skipped

    Returns:
        Metadata dict with version info
    """
    meta: dict[str, Any] = {
        "engine_version": ENGINE_VERSION,
        "schema_version": SCHEMA_VERSION,
        "tool": tool,
    }
    if duration_ms is not None:
        meta["duration_ms"] = round(duration_ms, 1)
    meta.update({k: v for k, v in context.items() if v is not None})
    return meta


def build_provenance(candidate: "Candidate") -> dict[str, Any]:
    """Which signal sources and market inputs a candidate's scores were built from."""
    ctx = candidate.market_context
    present = [s for s in SOURCES if candidate.signal(s) is not None]
    warnings = []
    if not present:
        warnings.append("No analytical signals present; composite is 0")
    if not ctx.support_levels and not ctx.resistance_levels:
        warnings.append("No support/resistance levels; fallback uses fixed offsets")

    return {
        "as_of": candidate.as_of.isoformat(),
        "sources_present": present,
        "sources_missing": [s for s in SOURCES if s not in present],
        "bars": len(ctx.bars),
        "support_levels": len(ctx.support_levels),
        "resistance_levels": len(ctx.resistance_levels),
        "warnings": warnings,
    }


def build_error_response(
    error_type: str,
    message: str,
    symbol: str | None = None,
    details: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Build standardized error response.

    Args:
        error_type: Type of error (invalid_input)
        message: Human-readable error message
        symbol: Symbol that caused the error (if applicable)
        details: Per-item errors (e.g. one entry per rejected candidate)

    Returns:
        Error response dict
    """
    response: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
        "meta": build_meta("error"),
    }
    if symbol is not None:
        response["symbol"] = symbol
    if details:
        response["details"] = details
    return response
