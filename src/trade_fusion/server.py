"""Trade Fusion MCP Server using FastMCP."""

import json
import logging
import os
from typing import Any

from fastmcp import FastMCP

from trade_fusion import ENGINE_VERSION, SCHEMA_VERSION
from trade_fusion.prompts.templates import get_prompt
from trade_fusion.tools import (
    candidate_composite,
    fusion_report,
    fallback_trade_card,
    trade_card_verdict,
)
from trade_fusion.tools.runtime import close_runtime

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="trade-fusion",
)


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def compose_candidate(candidate: dict[str, Any]) -> str:
    """
    Compute the weighted composite score for one candidate.

    Absent signal sources contribute zero unless the renormalize policy is
    configured.

    Args:
        candidate: {"symbol": ..., "market_context": {"current_price": ...},
                    "signals": {"technical": {"score": 0.75, ...}, ...}}

    Returns:
        JSON with per-source contributions, composite, gate outcome and counter-signals
    """
    result = await candidate_composite(candidate=candidate)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def fuse_candidates(
    candidates: list[dict[str, Any]],
    cycle_id: str | None = None,
    validate: bool = True,
) -> str:
    """
    Run a full fusion cycle: compose, gate, synthesize (or fall back), validate.

    Args:
        candidates: List of candidate payloads
        cycle_id: Evaluation cycle id (default: today's trading date)
        validate: Validate every produced trade card (default: true)

    Returns:
        JSON with composites, gate rejections, trade cards and verdicts
    """
    result = await fusion_report(candidates=candidates, cycle_id=cycle_id, validate=validate)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def validate_trade_card(
    recommendation: dict[str, Any],
    candidate: dict[str, Any] | None = None,
    market_context: dict[str, Any] | None = None,
    strictness: str | None = None,
) -> str:
    """
    Validate a trade card's internal consistency.

    Args:
        recommendation: Trade card as returned by fuse_candidates
        candidate: Originating candidate (optional)
        market_context: Market snapshot (optional)
        strictness: permissive, standard or strict (default: configured)

    Returns:
        JSON verdict with score, recommendation and itemized issues
    """
    result = await trade_card_verdict(
        recommendation=recommendation,
        candidate=candidate,
        market_context=market_context,
        strictness=strictness,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def generate_fallback_card(candidate: dict[str, Any], cycle_id: str | None = None) -> str:
    """
    Build the rule-based fallback trade card for a candidate.

    Args:
        candidate: Candidate payload
        cycle_id: Evaluation cycle id (optional)

    Returns:
        JSON trade card tagged model_used="fallback"
    """
    result = await fallback_trade_card(candidate=candidate, cycle_id=cycle_id)
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# PROMPTS
# ============================================================================


@mcp.prompt
def fusion_cycle(symbols: str) -> str:
    """Run a fusion cycle and summarize the resulting trade cards."""
    result = get_prompt("fusion_cycle", {"symbols": symbols})
    if result:
        return result["messages"][0]["content"]
    return f"Run fuse_candidates for {symbols}."


@mcp.prompt
def trade_card_review(trade_id: str) -> str:
    """Explain the validation verdict for one trade card."""
    result = get_prompt("trade_card_review", {"trade_id": trade_id})
    if result:
        return result["messages"][0]["content"]
    return f"Explain the verdict for trade card {trade_id}."


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Trade Fusion MCP Server v{ENGINE_VERSION} (schema v{SCHEMA_VERSION})")
    try:
        mcp.run()
    finally:
        close_runtime()


if __name__ == "__main__":
    main()
