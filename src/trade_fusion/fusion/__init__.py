"""Fusion pipeline components."""

from trade_fusion.fusion.composer import compose
from trade_fusion.fusion.engine import EngineReport, FusionEngine, TradeResult
from trade_fusion.fusion.fallback import fallback
from trade_fusion.fusion.gate import GateDecision, gate
from trade_fusion.fusion.scheduler import BatchResult, BatchScheduler
from trade_fusion.fusion.signals import adapt_signal, collect_signals
from trade_fusion.fusion.synthesizer import RecommendationSynthesizer
from trade_fusion.fusion.validator import ConsistencyReviewer, TradeValidator, conservative_verdict

__all__ = [
    "compose",
    "EngineReport",
    "FusionEngine",
    "TradeResult",
    "fallback",
    "GateDecision",
    "gate",
    "BatchResult",
    "BatchScheduler",
    "adapt_signal",
    "collect_signals",
    "RecommendationSynthesizer",
    "ConsistencyReviewer",
    "TradeValidator",
    "conservative_verdict",
]
