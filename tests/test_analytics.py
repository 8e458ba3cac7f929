"""Tests for cycle-level analytics."""

from dataclasses import replace

import pytest

from conftest import make_candidate, make_recommendation, signal
from trade_fusion.fusion.analytics import (
    fusion_quality,
    market_environment,
    market_overview,
    portfolio_guidance,
    prompt_category,
    prompt_feedback,
)
from trade_fusion.fusion.fallback import fallback
from trade_fusion.models import (
    ImprovementSuggestions,
    Issue,
    MarketContext,
    ValidationVerdict,
    VerdictMetadata,
)

SCORES = {"technical": 0.75, "sentiment": 0.68, "risk": 0.60, "sector": 0.56}


def _with_market(candidate, vix=None, sector_performance=None):
    ctx = MarketContext(current_price=100.0, vix_level=vix, sector_performance=sector_performance)
    return replace(candidate, market_context=ctx)


def _verdict(issues=(), prompt_optimization=(), model_used="review-model") -> ValidationVerdict:
    return ValidationVerdict(
        trade_id="AAPL-2024-03-15-abcd1234",
        symbol="AAPL",
        passed=True,
        validation_score=0.8,
        confidence_score=0.8,
        recommendation="approve",
        issues=tuple(issues),
        metadata=VerdictMetadata(model_used=model_used, strictness="standard"),
        improvement_suggestions=ImprovementSuggestions(prompt_optimization=tuple(prompt_optimization)),
    )


class TestMarketOverview:
    """Tests for market_overview function."""

    @pytest.mark.parametrize(
        "vix,sector,expected",
        [
            (30.0, 0.05, "High Volatility"),
            (12.0, -0.05, "Low Volatility"),
            (20.0, 0.03, "Risk-On"),
            (20.0, -0.03, "Risk-Off"),
            (20.0, 0.0, "Neutral"),
            (None, None, "Neutral"),
        ],
    )
    def test_environment(self, vix, sector, expected) -> None:
        assert market_environment(vix, sector) == expected

    def test_averages_skip_missing(self) -> None:
        """Candidates without a VIX reading do not drag the average."""
        candidates = [
            _with_market(make_candidate("AAA", SCORES), vix=28.0, sector_performance=0.01),
            _with_market(make_candidate("BBB", SCORES), vix=24.0),
            _with_market(make_candidate("CCC", SCORES)),
        ]
        overview = market_overview(candidates)

        assert overview.avg_vix == pytest.approx(26.0)
        assert overview.avg_sector_performance == pytest.approx(0.01)
        assert overview.environment == "High Volatility"

    def test_rotation_and_earnings_themes(self) -> None:
        rotating = {"sector": signal("sector", 0.7, rotation_signal="bullish")}
        drifting = {"earnings": signal("earnings", 0.6, {"drift_probability": 0.8})}
        candidates = [make_candidate(f"R{i}", signals=rotating) for i in range(2)]
        candidates += [make_candidate(f"E{i}", signals=drifting) for i in range(3)]

        overview = market_overview(candidates)

        assert overview.dominant_themes == ("Sector rotation activity", "Earnings season opportunities")
        assert overview.opportunity_assessment == "2 key themes identified with 2 positive sector signals"

    def test_mixed_signals(self) -> None:
        """One rotation among four candidates is not a theme; two drift plays are too few."""
        drifting = {"earnings": signal("earnings", 0.6, {"drift_probability": 0.9})}
        candidates = [
            make_candidate("AAA", signals={"sector": signal("sector", 0.7, rotation_signal="bullish")}),
            make_candidate("BBB", signals=drifting),
            make_candidate("CCC", signals=drifting),
            make_candidate("DDD", SCORES),
        ]
        assert market_overview(candidates).dominant_themes == ("Mixed market signals",)

    def test_empty_cycle(self) -> None:
        overview = market_overview([])
        assert overview.environment == "Neutral"
        assert overview.avg_vix is None


class TestPortfolioGuidance:
    """Tests for portfolio_guidance function."""

    def test_allocation_and_tilts(self) -> None:
        tech = make_candidate("AAPL", signals={"sector": signal("sector", 0.6, sector="Technology")})
        energy = make_candidate("XOM", signals={"sector": signal("sector", 0.6, sector="energy")})
        cards = [
            make_recommendation(tech, risk={"risk_grade": "B", "position_sizing": 0.06}),
            make_recommendation(energy, risk={"risk_grade": "B", "position_sizing": 0.04}),
        ]

        guidance = portfolio_guidance(cards, [tech, energy])

        assert guidance.total_allocation == pytest.approx(0.10)
        assert guidance.overall_allocation == "10.0% of portfolio across 2 positions"
        assert guidance.sector_tilts == ("Overweight Technology", "Overweight Energy")
        assert guidance.avg_risk == pytest.approx(0.4)
        assert guidance.risk_management.startswith("Moderate risk")
        assert guidance.market_outlook == "Selective opportunity environment"

    def test_high_average_risk(self) -> None:
        card = make_recommendation(risk={"risk_grade": "D", "position_sizing": 0.02})
        guidance = portfolio_guidance([card], [])

        assert guidance.avg_risk == pytest.approx(0.8)
        assert guidance.risk_management.startswith("High risk environment")
        assert guidance.sector_tilts == ()

    def test_multiple_opportunities(self) -> None:
        cards = [make_recommendation(make_candidate(s, SCORES)) for s in ("A", "B", "C", "D")]
        assert portfolio_guidance(cards, []).market_outlook == "Multiple opportunities identified"

    def test_no_cards(self) -> None:
        guidance = portfolio_guidance([], [])
        assert guidance.overall_allocation == "0.0% of portfolio across 0 positions"
        assert guidance.risk_management == "No positions proposed"
        assert guidance.avg_risk is None


class TestFusionQuality:
    """Tests for fusion_quality function."""

    def test_empty(self) -> None:
        assert fusion_quality([]) == 0.0

    def test_weighted_blend(self) -> None:
        """0.5 x confidence + 0.3 x data quality + 0.2 x (distinct setups / 6)."""
        candidate = make_candidate("AAPL", SCORES)
        breakout = make_recommendation(candidate)
        momentum = make_recommendation(candidate, setup={"type": "Momentum"})
        cards = [breakout, momentum]

        confidence = breakout.header.confidence
        data_quality = breakout.metadata.data_quality_score
        expected = 0.5 * confidence + 0.3 * data_quality + 0.2 * (2 / 6)
        assert fusion_quality(cards) == pytest.approx(expected)

    def test_fallback_card_counts(self) -> None:
        card = fallback(make_candidate("AAPL", SCORES), cycle_id="2024-03-15")
        expected = 0.5 * card.header.confidence + 0.3 * card.metadata.data_quality_score + 0.2 / 6
        assert fusion_quality([card]) == pytest.approx(expected)


class TestPromptFeedback:
    """Tests for prompt_category and prompt_feedback functions."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Cite the technical indicator values", "technical_timing"),
            ("Stop placed inside noise", "risk_assessment"),
            ("Sector rotation claim unsupported", "sector_analysis"),
            ("Reddit sentiment overstated", "sentiment_analysis"),
            ("Earnings drift ignored", "earnings_drift"),
            ("Summary contradicts itself", "strategic_fusion"),
        ],
    )
    def test_category(self, text, expected) -> None:
        assert prompt_category(text) == expected

    def test_grouped_by_category(self) -> None:
        """Prompt issues add severity impact; other categories are ignored."""
        verdicts = [
            _verdict(
                issues=[
                    Issue(category="hallucination", severity="critical", description="Invented sector rotation"),
                    Issue(category="logic_error", severity="high", description="Stop above entry for a long"),
                    Issue(category="unrealistic_target", severity="high", description="Target beyond sector range"),
                ],
                prompt_optimization=["Ask for the sector ETF flows explicitly"],
            ),
            _verdict(
                issues=[Issue(category="hallucination", severity="low", description="Sector news not in inputs")],
            ),
            None,
        ]

        feedback = {f.prompt_category: f for f in prompt_feedback(verdicts)}

        assert list(feedback) == ["sector_analysis", "risk_assessment"]
        sector = feedback["sector_analysis"]
        assert sector.issues_detected == ("Invented sector rotation", "Sector news not in inputs")
        assert sector.suggested_improvements == ("Ask for the sector ETF flows explicitly",)
        assert sector.confidence_impact == pytest.approx(0.4)
        assert feedback["risk_assessment"].confidence_impact == pytest.approx(0.2)

    def test_conservative_verdicts_skipped(self) -> None:
        unavailable = _verdict(
            issues=[Issue(category="logic_error", severity="critical", description="Validation system unavailable")],
            model_used="fallback",
        )
        assert prompt_feedback([unavailable]) == []
