"""Tests for the end-to-end fusion engine."""

import pytest

from conftest import AS_OF, ScriptedCompleter, make_candidate, review_payload, synthesis_payload
from trade_fusion.config import EngineConfig
from trade_fusion.data.cache import FusionCache, MemoryStore, composite_key
from trade_fusion.fusion.engine import FusionEngine
from trade_fusion.fusion.scheduler import BatchScheduler
from trade_fusion.fusion.synthesizer import RecommendationSynthesizer
from trade_fusion.fusion.validator import ConsistencyReviewer, TradeValidator
from trade_fusion.models import AnalyticalSignal

STRONG = {"technical": 0.9, "sentiment": 0.9, "risk": 0.9}


async def _no_sleep(delay: float) -> None:
    return None


def _engine(synth_responder=None, review_responder=None, cache=None, **config):
    synth_client = ScriptedCompleter(synth_responder or (lambda p, s: synthesis_payload()))
    review_client = ScriptedCompleter(review_responder or (lambda p, s: review_payload()), model="review-model")
    engine = FusionEngine(
        EngineConfig(**config),
        RecommendationSynthesizer(synth_client, clock=lambda: AS_OF),
        TradeValidator(ConsistencyReviewer(review_client), cache=cache),
        cache=cache,
        scheduler=BatchScheduler(batch_size=3, sleep=_no_sleep),
        clock=lambda: AS_OF,
    )
    return engine, synth_client, review_client


def _fail_for(symbol):
    def responder(prompt, schema):
        if f" {symbol}" in prompt.user:
            return RuntimeError(f"synthesis for {symbol} failed")
        return synthesis_payload()

    return responder


class TestFusionEngine:
    """Tests for FusionEngine class."""

    @pytest.mark.asyncio
    async def test_one_synthesis_failure_yields_fallback(self) -> None:
        """Three survivors with one failed synthesis give two genuine cards and one fallback."""
        engine, synth_client, _ = _engine(_fail_for("BBB"))
        candidates = [make_candidate(symbol=s, scores=STRONG) for s in ("AAA", "BBB", "CCC")]

        report = await engine.run(candidates)

        assert report.cycle_id == "2024-03-15"
        assert [r.symbol for r in report.results] == ["AAA", "BBB", "CCC"]
        models = {r.symbol: r.recommendation.metadata.model_used for r in report.results}
        assert models == {"AAA": "scripted-model", "BBB": "fallback", "CCC": "scripted-model"}
        degraded = [r for r in report.results if r.degraded]
        assert [r.symbol for r in degraded] == ["BBB"]
        assert "SynthesisError" in degraded[0].error
        assert len(synth_client.calls) == 3

    @pytest.mark.asyncio
    async def test_gate_rejects_low_composite(self) -> None:
        """A single strong technical signal (0.27) never reaches synthesis."""
        engine, synth_client, _ = _engine()
        strong = make_candidate(symbol="AAPL", scores={"technical": 0.75, "sentiment": 0.68, "risk": 0.60, "sector": 0.56})
        thin = make_candidate(symbol="THIN", scores={"technical": 0.9})

        report = await engine.run([thin, strong])

        assert [r.symbol for r in report.results] == ["AAPL"]
        assert [(r.symbol, r.reason) for r in report.rejected] == [("THIN", "below_threshold")]
        assert report.rejected[0].composite == pytest.approx(0.27)
        assert len(synth_client.calls) == 1
        assert "THIN" not in synth_client.calls[0].user

    @pytest.mark.asyncio
    async def test_results_ranked_by_composite(self) -> None:
        """Cards come back best composite first, not input order."""
        engine, _, _ = _engine()
        weaker = make_candidate(symbol="AAA", scores={"technical": 0.7, "sentiment": 0.7, "risk": 0.7})
        stronger = make_candidate(symbol="ZZZ", scores=STRONG)

        report = await engine.run([weaker, stronger])
        assert [r.symbol for r in report.results] == ["ZZZ", "AAA"]

    @pytest.mark.asyncio
    async def test_max_candidates_cutoff(self) -> None:
        """Survivors beyond max_candidates are rejected with rank_cutoff."""
        engine, _, _ = _engine(max_candidates=1)
        candidates = [make_candidate(symbol=s, scores=STRONG) for s in ("AAA", "BBB")]

        report = await engine.run(candidates)

        assert [r.symbol for r in report.results] == ["AAA"]
        assert [(r.symbol, r.reason) for r in report.rejected] == [("BBB", "rank_cutoff")]

    @pytest.mark.asyncio
    async def test_verdicts_attached(self) -> None:
        """Every card carries a verdict; approvals are listed."""
        engine, _, review_client = _engine()
        report = await engine.run([make_candidate(symbol="AAA", scores=STRONG)])

        verdict = report.results[0].verdict
        assert verdict is not None
        assert verdict.recommendation == "approve"
        assert verdict.metadata.model_used == "review-model"
        assert [r.symbol for r in report.approved] == ["AAA"]
        assert len(review_client.calls) == 1

    @pytest.mark.asyncio
    async def test_review_failure_never_approves(self) -> None:
        """Reviewer failures give conservative revise verdicts."""
        engine, _, _ = _engine(review_responder=lambda p, s: ConnectionError("down"))
        report = await engine.run([make_candidate(symbol="AAA", scores=STRONG)])

        verdict = report.results[0].verdict
        assert verdict.recommendation == "revise"
        assert verdict.passed is False
        assert report.approved == []

    @pytest.mark.asyncio
    async def test_validation_optional(self) -> None:
        """validate=False skips the reviewer entirely."""
        engine, _, review_client = _engine()
        report = await engine.run([make_candidate(symbol="AAA", scores=STRONG)], validate=False)

        assert report.results[0].verdict is None
        assert review_client.calls == []

    @pytest.mark.asyncio
    async def test_fallbacks_not_cached(self) -> None:
        """A second run reuses genuine cards and retries failed synthesis."""
        cache = FusionCache(MemoryStore())
        engine, synth_client, _ = _engine(_fail_for("BBB"), cache=cache)
        candidates = [make_candidate(symbol=s, scores=STRONG) for s in ("AAA", "BBB", "CCC")]

        first = await engine.run(candidates, cycle_id="cycle-1")
        second = await engine.run(candidates, cycle_id="cycle-1")

        assert len(synth_client.calls) == 4
        assert first.results[0].recommendation == second.results[0].recommendation
        assert second.results[1].recommendation.metadata.model_used == "fallback"

    @pytest.mark.asyncio
    async def test_composite_cached(self) -> None:
        """Composites are stored under the symbol and hour bucket."""
        cache = FusionCache(MemoryStore())
        engine, _, _ = _engine(cache=cache)
        candidate = make_candidate(symbol="AAA", scores=STRONG)

        composite = await engine.compose(candidate)
        cached = await cache.get_json(composite_key("AAA", AS_OF))

        assert cached["composite"] == pytest.approx(composite.composite)
        assert await engine.compose(candidate) == composite

    @pytest.mark.asyncio
    async def test_report_dict(self) -> None:
        """Report serialization carries summary counts."""
        engine, _, _ = _engine(_fail_for("BBB"))
        candidates = [make_candidate(symbol=s, scores=STRONG) for s in ("AAA", "BBB")]
        candidates.append(make_candidate(symbol="LOW", scores={"technical": 0.1}))

        data = (await engine.run(candidates)).to_dict()

        assert data["summary"] == {"candidates": 3, "rejected": 1, "cards": 2, "degraded": 1, "approved": 2}
        assert data["rejected"][0]["symbol"] == "LOW"

    @pytest.mark.asyncio
    async def test_cycle_analytics(self) -> None:
        """Report carries market overview, portfolio guidance, fusion quality and prompt feedback."""
        issue = {
            "category": "hallucination",
            "severity": "high",
            "description": "Sector rotation not present in the signals",
            "evidence": "",
            "suggestion": "Drop the rotation claim",
        }
        engine, _, _ = _engine(
            review_responder=lambda p, s: review_payload(
                identified_issues=[issue], prompt_optimization_feedback=["Require sector ETF evidence"]
            )
        )
        candidates = [make_candidate(symbol=s, scores=STRONG) for s in ("AAA", "BBB")]
        candidates.append(make_candidate(symbol="LOW", scores={"technical": 0.1}))

        report = await engine.run(candidates)
        data = report.to_dict()

        assert data["market_overview"]["environment"] == "Neutral"
        assert data["market_overview"]["dominant_themes"] == ("Mixed market signals",)
        guidance = data["portfolio_guidance"]
        assert guidance["overall_allocation"] == "12.0% of portfolio across 2 positions"
        assert guidance["risk_management"].startswith("Moderate risk")
        assert 0.0 < data["fusion_quality"] <= 1.0
        assert data["fusion_quality"] == pytest.approx(report.fusion_quality, abs=1e-4)
        assert data["prompt_feedback"] == [
            {
                "prompt_category": "sector_analysis",
                "issues_detected": ("Sector rotation not present in the signals",) * 2,
                "suggested_improvements": ("Require sector ETF evidence",) * 2,
                "confidence_impact": pytest.approx(0.4),
            }
        ]
        verdict = report.results[0].verdict
        assert "Drop the rotation claim" in verdict.improvement_suggestions.logic_refinement

    @pytest.mark.asyncio
    async def test_duplicate_symbols_rejected(self) -> None:
        """Duplicates would share one cached card per cycle, so the run refuses them."""
        engine, synth_client, _ = _engine()
        candidates = [make_candidate(symbol="AAA", scores=STRONG), make_candidate(symbol="aaa", scores=STRONG)]

        with pytest.raises(ValueError, match="Duplicate symbols"):
            await engine.run(candidates)
        assert synth_client.calls == []

    @pytest.mark.asyncio
    async def test_assemble(self) -> None:
        """Assembled candidates carry collected signals and missing records."""
        engine, _, _ = _engine()

        async def technical(symbol, ctx):
            return AnalyticalSignal(source="technical", score=0.8)

        async def sentiment(symbol, ctx):
            raise ValueError("bad feed")

        context = make_candidate().market_context
        candidate, missing = await engine.assemble("msft", context, {"technical": technical, "sentiment": sentiment})

        assert candidate.symbol == "MSFT"
        assert candidate.as_of == AS_OF
        assert candidate.signal("technical").score == 0.8
        assert candidate.signal("sentiment") is None
        assert [m.source for m in missing] == ["sentiment"]
