"""Tests for the data model."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import AS_OF, make_recommendation, signal
from trade_fusion.models import (
    AnalyticalSignal,
    Candidate,
    MarketContext,
    Recommendation,
    derive_risk_reward,
    infer_direction,
    parse_timestamp,
)


class TestAnalyticalSignal:
    """Tests for AnalyticalSignal class."""

    def test_normalized(self) -> None:
        """Score clamped, source and labels lowercased, junk subscores dropped."""
        result = AnalyticalSignal(
            source="Technical",
            score=1.4,
            subscores={"entry_price": "101.5", "bad": "n/a"},
            narrative=["  Breakout\x00 ", ""],
            labels={"setup_type": " Breakout "},
        )

        assert result.source == "technical"
        assert result.score == 1.0
        assert result.subscores == {"entry_price": 101.5}
        assert result.narrative == ("Breakout",)
        assert result.label("setup_type") == "breakout"

    def test_unknown_source(self) -> None:
        with pytest.raises(ValueError, match="Unknown signal source"):
            AnalyticalSignal(source="weather", score=0.5)


class TestMarketContext:
    """Tests for MarketContext class."""

    @pytest.mark.parametrize("price", [0, -5, None, "abc"])
    def test_invalid_price(self, price) -> None:
        with pytest.raises(ValueError, match="current_price"):
            MarketContext(current_price=price)

    def test_unknown_trend_is_neutral(self) -> None:
        assert MarketContext(current_price=10, market_trend="Sideways").market_trend == "neutral"
        assert MarketContext(current_price=10, market_trend="BEARISH").market_trend == "bearish"

    def test_levels_cleaned(self) -> None:
        """Non-positive and unparseable levels are dropped; duplicates merged."""
        ctx = MarketContext(current_price=100, support_levels=(95, "95", 0, "x", 90))
        assert ctx.support_levels == (90.0, 95.0)


class TestCandidate:
    """Tests for Candidate class."""

    def test_symbol_normalized(self) -> None:
        candidate = Candidate(symbol=" msft ", market_context=MarketContext(current_price=10))
        assert candidate.symbol == "MSFT"

    def test_mismatched_signal_key(self) -> None:
        with pytest.raises(ValueError, match="reports source"):
            Candidate(
                symbol="MSFT",
                market_context=MarketContext(current_price=10),
                signals={"risk": signal("technical", 0.5)},
            )

    def test_from_dict(self) -> None:
        """Signals are keyed by source; absent sources stay None."""
        candidate = Candidate.from_dict(
            {
                "symbol": "nvda",
                "as_of": "2024-03-15T14:30:00Z",
                "market_context": {"current_price": 880.0, "support_levels": [850, 820]},
                "signals": {"technical": {"score": 0.7, "labels": {"setup_type": "Momentum"}}, "sentiment": None},
            }
        )

        assert candidate.symbol == "NVDA"
        assert candidate.as_of == AS_OF
        assert candidate.signal("technical").label("setup_type") == "momentum"
        assert candidate.signal("sentiment") is None
        assert list(candidate.present_signals()) == ["technical"]
        assert candidate.market_context.nearest_support() == 850.0

    def test_round_trip(self, candidate) -> None:
        assert Candidate.from_dict(candidate.to_dict()) == candidate


class TestHelpers:
    """Tests for module-level helpers."""

    def test_parse_timestamp(self) -> None:
        assert parse_timestamp("2024-03-15T14:30:00Z") == AS_OF
        assert parse_timestamp(datetime(2024, 3, 15, 14, 30)) == AS_OF
        offset = parse_timestamp("2024-03-15T10:30:00-04:00")
        assert offset == AS_OF
        assert offset.utcoffset() == timedelta(hours=-4)

    def test_parse_timestamp_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("")
        with pytest.raises(ValueError):
            parse_timestamp(12345)

    def test_derive_risk_reward(self) -> None:
        assert derive_risk_reward(100, 114, 92) == pytest.approx(1.75)
        assert derive_risk_reward(100, 88, 106) == pytest.approx(2.0)
        assert derive_risk_reward(100, 110, 100) is None

    def test_infer_direction(self) -> None:
        assert infer_direction("Short", 100, 120) == "short"
        assert infer_direction("Long", 100, 80) == "long"
        assert infer_direction("Options Play", 100, 90) == "short"
        assert infer_direction("Pairs Trade", 100, 110) == "long"


class TestRecommendation:
    """Tests for Recommendation class."""

    def test_round_trip(self) -> None:
        """A card decodes back to an equal value."""
        card = make_recommendation()
        assert Recommendation.from_dict(card.to_dict()) == card

    def test_frozen(self) -> None:
        card = make_recommendation()
        with pytest.raises(AttributeError):
            card.symbol = "MSFT"

    def test_is_fallback(self) -> None:
        assert make_recommendation().is_fallback is False

    def test_created_at_is_iso(self) -> None:
        card = make_recommendation()
        assert datetime.fromisoformat(card.created_at) == AS_OF.astimezone(timezone.utc)

    def test_string_prices_coerced(self) -> None:
        data = make_recommendation().to_dict()
        data["execution"]["entry_price"] = "100"

        card = Recommendation.from_dict(data)
        assert card.execution.entry_price == 100.0

    @pytest.mark.parametrize(
        "section,name,value",
        [
            ("execution", "entry_price", "abc"),
            ("execution", "stop_loss", 0),
            ("execution", "target_price", -12.0),
            ("execution", "position_size", None),
            ("header", "trade_type", "Straddle"),
        ],
    )
    def test_invalid_execution_or_header(self, section, name, value) -> None:
        data = make_recommendation().to_dict()
        data[section][name] = value

        with pytest.raises(ValueError, match=name):
            Recommendation.from_dict(data)

    @pytest.mark.parametrize(
        "section,name,value",
        [
            ("risk", "risk_grade", "Z"),
            ("timing", "urgency", "asap"),
            ("catalyst", "timing_sensitivity", "months"),
        ],
    )
    def test_invalid_narrative_choice(self, section, name, value) -> None:
        data = make_recommendation().to_dict()
        data["narrative"][section][name] = value

        with pytest.raises(ValueError, match=name):
            Recommendation.from_dict(data)

    def test_choices_canonicalized(self) -> None:
        data = make_recommendation().to_dict()
        data["narrative"]["risk"]["risk_grade"] = "b"
        data["header"]["trade_type"] = "long"

        card = Recommendation.from_dict(data)
        assert card.narrative.risk.risk_grade == "B"
        assert card.header.trade_type == "Long"
