"""Trade fusion tools."""

from trade_fusion.tools.compose import candidate_composite
from trade_fusion.tools.fallback_card import fallback_trade_card
from trade_fusion.tools.fuse import fusion_report
from trade_fusion.tools.validate import trade_card_verdict

__all__ = [
    "candidate_composite",
    "fusion_report",
    "fallback_trade_card",
    "trade_card_verdict",
]
