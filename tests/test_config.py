"""Tests for engine and completion configuration."""

import pytest

from trade_fusion.config import (
    DEFAULT_WEIGHTS,
    RENORMALIZE,
    CompletionSettings,
    EngineConfig,
    get_strictness_profile,
    parse_weights,
)


class TestEngineConfig:
    """Tests for EngineConfig class."""

    def test_defaults(self) -> None:
        """Default weights, policy and thresholds."""
        config = EngineConfig()
        assert dict(config.weights) == dict(DEFAULT_WEIGHTS)
        assert config.missing_source_policy == "zero_fill"
        assert config.gate_threshold == 0.45
        assert config.strictness_profile.pass_threshold == 0.70

    def test_weights_normalized(self) -> None:
        """Unlisted sources get weight 0 and names are lowercased."""
        config = EngineConfig(weights={"Technical": 0.5, "risk": 0.5})
        assert config.weights["technical"] == 0.5
        assert config.weights["anomaly"] == 0.0

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"weights": {"technical": 0.8, "sentiment": 0.4}}, "sum to at most"),
            ({"weights": {"technical": -0.1}}, "non-negative"),
            ({"weights": {"astrology": 0.1}}, "Unknown signal sources"),
            ({"missing_source_policy": "ignore"}, "missing_source_policy"),
            ({"gate_threshold": 1.5}, "gate_threshold"),
            ({"max_candidates": 0}, "max_candidates"),
            ({"batch_size": 0}, "batch_size"),
            ({"inter_batch_delay": -1.0}, "inter_batch_delay"),
            ({"strictness": "lenient"}, "Invalid strictness"),
        ],
    )
    def test_invalid(self, kwargs, match) -> None:
        """Invalid settings are rejected at construction."""
        with pytest.raises(ValueError, match=match):
            EngineConfig(**kwargs)

    def test_from_env(self) -> None:
        """FUSION_* variables populate the config; overrides win."""
        env = {
            "FUSION_WEIGHTS": "technical=0.5,sentiment=0.3",
            "FUSION_MISSING_SOURCE_POLICY": "renormalize",
            "FUSION_GATE_THRESHOLD": "0.6",
            "FUSION_MAX_CANDIDATES": "none",
            "FUSION_BATCH_SIZE": "5",
            "FUSION_INTER_BATCH_DELAY": "0.25",
            "FUSION_STRICTNESS": "STRICT",
            "CACHE_DIR": "/tmp/fusion-cache",
        }
        config = EngineConfig.from_env(env, batch_size=2)

        assert config.weights["technical"] == 0.5
        assert config.weights["risk"] == 0.0
        assert config.missing_source_policy == RENORMALIZE
        assert config.gate_threshold == 0.6
        assert config.max_candidates is None
        assert config.batch_size == 2
        assert config.inter_batch_delay == 0.25
        assert config.strictness == "strict"
        assert config.cache_dir == "/tmp/fusion-cache"

    def test_from_empty_env(self) -> None:
        assert EngineConfig.from_env({}) == EngineConfig()


class TestParseWeights:
    """Tests for parse_weights function."""

    def test_parse(self) -> None:
        weights = parse_weights(" technical=0.4, risk=0.2 ,")
        assert weights["technical"] == 0.4
        assert weights["risk"] == 0.2
        assert weights["sector"] == 0.0

    def test_malformed(self) -> None:
        with pytest.raises(ValueError, match="Expected source=weight"):
            parse_weights("technical:0.4")


class TestStrictness:
    """Tests for strictness profiles."""

    def test_profiles_ordered(self) -> None:
        """Stricter profiles raise both thresholds and tighten target moves."""
        permissive, standard, strict = (
            get_strictness_profile(name) for name in ("permissive", "standard", "strict")
        )
        assert permissive.pass_threshold < standard.pass_threshold < strict.pass_threshold
        assert permissive.reject_threshold < standard.reject_threshold < strict.reject_threshold
        assert permissive.max_target_move > standard.max_target_move > strict.max_target_move

    def test_case_insensitive(self) -> None:
        assert get_strictness_profile(" Standard ").name == "standard"


class TestCompletionSettings:
    """Tests for CompletionSettings class."""

    def test_from_env(self) -> None:
        """Endpoint settings and API key come from the environment."""
        settings = CompletionSettings.from_env(
            {
                "FUSION_LLM_BASE_URL": "http://localhost:8000/v1/",
                "OPENAI_API_KEY": "sk-test",
                "FUSION_REVIEW_MODEL": "reviewer",
                "FUSION_LLM_MAX_RETRIES": "1",
            }
        )
        assert settings.base_url == "http://localhost:8000/v1"
        assert settings.api_key == "sk-test"
        assert settings.review_model == "reviewer"
        assert settings.max_retries == 1

    def test_defaults_without_key(self) -> None:
        settings = CompletionSettings.from_env({})
        assert settings.api_key is None
        assert settings.base_url == "https://api.openai.com/v1"
