"""Fusion engine: compose, gate, synthesize (or fall back), validate."""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from trade_fusion.config import EngineConfig
from trade_fusion.data.cache import FusionCache, composite_key, recommendation_key
from trade_fusion.errors import ThresholdRejected, UpstreamSignalMissing
from trade_fusion.fusion import analytics
from trade_fusion.fusion.composer import compose
from trade_fusion.fusion.fallback import fallback
from trade_fusion.fusion.gate import gate
from trade_fusion.fusion.scheduler import BatchScheduler
from trade_fusion.fusion.signals import Analyzer, collect_signals
from trade_fusion.fusion.validator import TradeValidator, conservative_verdict
from trade_fusion.models import (
    Candidate,
    CompositeScore,
    MarketContext,
    MarketOverview,
    PortfolioGuidance,
    PromptFeedback,
    Recommendation,
    ValidationVerdict,
    utc_now,
)
from trade_fusion.utils.market_clock import trading_date

logger = logging.getLogger(__name__)


class Synthesizer(Protocol):
    async def synthesize(
        self, candidate: Candidate, composite: CompositeScore, cycle_id: str | None = None
    ) -> Recommendation: ...


@dataclass(frozen=True)
class TradeResult:
    """One gated candidate's trade card and, when validation ran, its verdict."""

    symbol: str
    recommendation: Recommendation
    verdict: ValidationVerdict | None = None
    degraded: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "degraded": self.degraded,
            "error": self.error,
            "recommendation": self.recommendation.to_dict(),
            "verdict": self.verdict.to_dict() if self.verdict is not None else None,
        }


@dataclass(frozen=True)
class EngineReport:
    cycle_id: str
    composites: list[CompositeScore] = field(default_factory=list)
    rejected: list[ThresholdRejected] = field(default_factory=list)
    results: list[TradeResult] = field(default_factory=list)
    missing_signals: dict[str, list[UpstreamSignalMissing]] = field(default_factory=dict)
    market_overview: MarketOverview | None = None
    portfolio_guidance: PortfolioGuidance | None = None

    @property
    def approved(self) -> list[TradeResult]:
        return [r for r in self.results if r.verdict is not None and r.verdict.passed]

    @property
    def fusion_quality(self) -> float:
        return analytics.fusion_quality([r.recommendation for r in self.results])

    @property
    def prompt_feedback(self) -> list[PromptFeedback]:
        return analytics.prompt_feedback(r.verdict for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "summary": {
                "candidates": len(self.composites),
                "rejected": len(self.rejected),
                "cards": len(self.results),
                "degraded": sum(1 for r in self.results if r.degraded),
                "approved": len(self.approved),
            },
            "composites": [c.to_dict() for c in self.composites],
            "rejected": [r.to_dict() for r in self.rejected],
            "results": [r.to_dict() for r in self.results],
            "missing_signals": {
                symbol: [m.to_dict() for m in records]
                for symbol, records in self.missing_signals.items()
            },
            "market_overview": self.market_overview.to_dict() if self.market_overview else None,
            "portfolio_guidance": self.portfolio_guidance.to_dict() if self.portfolio_guidance else None,
            "fusion_quality": round(self.fusion_quality, 4),
            "prompt_feedback": [f.to_dict() for f in self.prompt_feedback],
        }


class FusionEngine:
    """
    Drives candidates through composition, gating, synthesis and validation.

    Collaborators (synthesizer, validator, cache) are borrowed, not owned; the
    caller manages their lifecycle. `run` never raises for collaborator
    failures: synthesis failures become fallback cards and review failures
    become conservative verdicts.
    """

    def __init__(
        self,
        config: EngineConfig,
        synthesizer: Synthesizer,
        validator: TradeValidator | None = None,
        cache: FusionCache | None = None,
        scheduler: BatchScheduler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.synthesizer = synthesizer
        self.validator = validator
        self.cache = cache
        self.scheduler = scheduler or BatchScheduler.from_config(config)
        self.clock = clock

    async def assemble(
        self,
        symbol: str,
        context: MarketContext,
        analyzers: Mapping[str, Analyzer],
        as_of: datetime | None = None,
    ) -> tuple[Candidate, list[UpstreamSignalMissing]]:
        """Collect signals from the analytical collaborators into a Candidate."""
        signals, missing = await collect_signals(symbol, context, analyzers, self.config.signal_timeout)
        candidate = Candidate(
            symbol=symbol,
            market_context=context,
            signals=signals,
            as_of=as_of or self.clock(),
        )
        return candidate, missing

    async def compose(self, candidate: Candidate) -> CompositeScore:
        """Composite score for one candidate, cache-aside by (symbol, hour bucket)."""
        weights = self.config.weights
        policy = self.config.missing_source_policy
        if self.cache is None:
            return compose(candidate, weights, policy)

        return await self.cache.get_or_compute(
            composite_key(candidate.symbol, candidate.as_of),
            self.config.composite_ttl,
            lambda: compose(candidate, weights, policy),
            decode=CompositeScore.from_dict,
            encode=lambda score: score.to_dict(),
        )

    async def synthesize(self, candidate: Candidate, composite: CompositeScore, cycle_id: str) -> Recommendation:
        """
        Genuine trade card for one gated candidate, cache-aside by (symbol, cycle).

        Raises whatever the synthesizer raises; callers substitute a fallback.
        """
        key = recommendation_key(candidate.symbol, cycle_id)
        if self.cache is not None:
            cached = await self.cache.get_json(key)
            if cached is not None:
                try:
                    return Recommendation.from_dict(cached)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Discarding undecodable cached recommendation {key}: {e}")

        recommendation = await self.synthesizer.synthesize(candidate, composite, cycle_id=cycle_id)
        # Fallback cards are never cached so a later run retries synthesis
        if self.cache is not None and not recommendation.is_fallback:
            await self.cache.set_json(key, recommendation.to_dict(), self.config.recommendation_ttl)
        return recommendation

    def fallback_for(
        self, candidate: Candidate, composite: CompositeScore, cycle_id: str, error: Exception | None = None
    ) -> Recommendation:
        reason = f"{type(error).__name__}: {error}" if error is not None else None
        return fallback(
            candidate,
            composite,
            cycle_id=cycle_id,
            reason=reason,
            weights=self.config.weights,
            policy=self.config.missing_source_policy,
            clock=self.clock,
        )

    async def run(
        self,
        candidates: Sequence[Candidate],
        cycle_id: str | None = None,
        validate: bool = True,
        missing_signals: Mapping[str, list[UpstreamSignalMissing]] | None = None,
    ) -> EngineReport:
        """
        Run one evaluation cycle.

        Args:
            candidates: Candidates to evaluate
            cycle_id: Evaluation cycle id (default: market-timezone trading date)
            validate: Run the validator over every produced card
            missing_signals: Signal collection failures to carry into the report

        Returns:
            EngineReport with composites, gate rejections and per-card results
            in rank order

        Raises:
            ValueError: If two candidates share a symbol
        """
        symbols = [c.symbol for c in candidates]
        duplicates = sorted({s for s in symbols if symbols.count(s) > 1})
        if duplicates:
            raise ValueError(f"Duplicate symbols in candidates: {duplicates}")

        cycle = cycle_id or trading_date(self.clock(), self.config.market_tz)
        logger.info(f"Fusion cycle {cycle}: {len(candidates)} candidates")

        composites = list(await asyncio.gather(*[self.compose(c) for c in candidates]))
        decision = gate(
            candidates,
            composites,
            self.config.gate_threshold,
            self.config.max_candidates,
        )

        synthesized = await self.scheduler.run(
            decision.survivors,
            lambda pair: self.synthesize(pair[0], pair[1], cycle),
            lambda pair, error: self.fallback_for(pair[0], pair[1], cycle, error),
            label=lambda pair: pair[0].symbol,
        )

        verdicts: list[ValidationVerdict | None] = [None] * len(synthesized)
        if validate and self.validator is not None:
            validator = self.validator
            profile = self.config.strictness_profile
            pairs = [(outcome.item[0], outcome.value) for outcome in synthesized]
            checked = await self.scheduler.run(
                pairs,
                lambda pair: validator.validate(pair[1], pair[0], strictness=profile.name),
                lambda pair, error: conservative_verdict(pair[1], profile, f"{type(error).__name__}: {error}"),
                label=lambda pair: pair[0].symbol,
            )
            verdicts = [outcome.value for outcome in checked]

        results = [
            TradeResult(
                symbol=outcome.item[0].symbol,
                recommendation=outcome.value,
                verdict=verdict,
                degraded=outcome.degraded,
                error=f"{type(outcome.error).__name__}: {outcome.error}" if outcome.error else None,
            )
            for outcome, verdict in zip(synthesized, verdicts)
        ]

        report = EngineReport(
            cycle_id=cycle,
            composites=composites,
            rejected=decision.rejected,
            results=results,
            missing_signals=dict(missing_signals or {}),
            market_overview=analytics.market_overview(candidates),
            portfolio_guidance=analytics.portfolio_guidance([r.recommendation for r in results], candidates),
        )
        logger.info(
            f"Fusion cycle {cycle} complete: {len(results)} cards "
            f"({sum(1 for r in results if r.degraded)} degraded), "
            f"{len(report.approved)} approved, {len(decision.rejected)} gated out"
        )
        return report
