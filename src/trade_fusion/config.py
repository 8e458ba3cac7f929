"""Engine configuration loaded from keyword arguments or the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

SOURCES = ("technical", "sentiment", "risk", "sector", "anomaly", "earnings")

# Fixed weight table (technical > sentiment > risk > sector > anomaly).
# Earnings timing feeds counter-signals and data quality but not the composite.
DEFAULT_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "technical": 0.30,
        "sentiment": 0.25,
        "risk": 0.20,
        "sector": 0.15,
        "anomaly": 0.10,
        "earnings": 0.0,
    }
)

ZERO_FILL = "zero_fill"
RENORMALIZE = "renormalize"
MISSING_SOURCE_POLICIES = {ZERO_FILL, RENORMALIZE}

STRICTNESS_LEVELS = ("permissive", "standard", "strict")


@dataclass(frozen=True)
class StrictnessProfile:
    """Decision thresholds for one validation strictness level."""

    name: str
    pass_threshold: float  # at or above: approve band
    reject_threshold: float  # below: reject
    max_target_move: float  # largest |target - current| / current before flagging

    def __post_init__(self) -> None:
        if not 0.0 <= self.reject_threshold <= self.pass_threshold <= 1.0:
            raise ValueError(
                f"Invalid thresholds for '{self.name}': "
                f"need 0 <= reject ({self.reject_threshold}) <= pass ({self.pass_threshold}) <= 1"
            )


STRICTNESS_PROFILES: Mapping[str, StrictnessProfile] = MappingProxyType(
    {
        "permissive": StrictnessProfile("permissive", 0.45, 0.20, 0.25),
        "standard": StrictnessProfile("standard", 0.70, 0.30, 0.15),
        "strict": StrictnessProfile("strict", 0.80, 0.40, 0.10),
    }
)


def get_strictness_profile(name: str) -> StrictnessProfile:
    """Look up a strictness profile by name (case-insensitive)."""
    key = name.lower().strip()
    if key not in STRICTNESS_PROFILES:
        raise ValueError(f"Invalid strictness '{name}'. Must be one of: {STRICTNESS_LEVELS}")
    return STRICTNESS_PROFILES[key]


def parse_weights(raw: str) -> dict[str, float]:
    """
    Parse a weight table from "technical=0.3,sentiment=0.25,..." form.

    Sources not listed get weight 0.
    """
    weights = {source: 0.0 for source in SOURCES}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError(f"Invalid weight entry '{part}'. Expected source=weight")
        name, value = part.split("=", 1)
        weights[name.strip().lower()] = float(value)
    return weights


@dataclass(frozen=True)
class EngineConfig:
    """Immutable engine configuration. Validated on construction."""

    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    missing_source_policy: str = ZERO_FILL
    gate_threshold: float = 0.45
    max_candidates: int | None = 8
    batch_size: int = 3
    max_concurrency: int = 3
    inter_batch_delay: float = 0.8
    signal_timeout: float = 10.0
    synthesis_timeout: float = 45.0
    review_timeout: float = 45.0
    composite_ttl: int = 3600
    recommendation_ttl: int = 1800
    verdict_ttl: int = 900
    strictness: str = "standard"
    cache_dir: str = ".cache/fusion"
    market_tz: str = "America/New_York"

    def __post_init__(self) -> None:
        weights = {str(k).lower().strip(): float(v) for k, v in self.weights.items()}
        unknown = set(weights) - set(SOURCES)
        if unknown:
            raise ValueError(f"Unknown signal sources in weights: {sorted(unknown)}")
        if any(w < 0 for w in weights.values()):
            raise ValueError("Signal weights must be non-negative")
        if sum(weights.values()) > 1.0 + 1e-9:
            raise ValueError(f"Signal weights must sum to at most 1.0, got {sum(weights.values())}")
        for source in SOURCES:
            weights.setdefault(source, 0.0)
        object.__setattr__(self, "weights", MappingProxyType(weights))

        policy = self.missing_source_policy.lower().strip()
        if policy not in MISSING_SOURCE_POLICIES:
            raise ValueError(
                f"Invalid missing_source_policy '{self.missing_source_policy}'. "
                f"Must be one of: {sorted(MISSING_SOURCE_POLICIES)}"
            )
        object.__setattr__(self, "missing_source_policy", policy)

        if not 0.0 <= self.gate_threshold <= 1.0:
            raise ValueError(f"gate_threshold must be in [0, 1], got {self.gate_threshold}")
        if self.max_candidates is not None and self.max_candidates < 1:
            raise ValueError("max_candidates must be >= 1 or None")
        if self.batch_size < 1 or self.max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be >= 1")
        if self.inter_batch_delay < 0:
            raise ValueError("inter_batch_delay must be >= 0")

        object.__setattr__(self, "strictness", get_strictness_profile(self.strictness).name)

    @property
    def strictness_profile(self) -> StrictnessProfile:
        return STRICTNESS_PROFILES[self.strictness]

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "EngineConfig":
        """Build config from FUSION_* environment variables. Keyword overrides win."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        if raw := env.get("FUSION_WEIGHTS"):
            kwargs["weights"] = parse_weights(raw)
        if raw := env.get("FUSION_MISSING_SOURCE_POLICY"):
            kwargs["missing_source_policy"] = raw
        if raw := env.get("FUSION_GATE_THRESHOLD"):
            kwargs["gate_threshold"] = float(raw)
        if raw := env.get("FUSION_MAX_CANDIDATES"):
            kwargs["max_candidates"] = None if raw.lower() in ("none", "0") else int(raw)
        if raw := env.get("FUSION_STRICTNESS"):
            kwargs["strictness"] = raw
        if raw := env.get("CACHE_DIR"):
            kwargs["cache_dir"] = raw
        if raw := env.get("FUSION_MARKET_TZ"):
            kwargs["market_tz"] = raw

        int_fields = {
            "FUSION_BATCH_SIZE": "batch_size",
            "FUSION_MAX_CONCURRENCY": "max_concurrency",
            "FUSION_COMPOSITE_TTL": "composite_ttl",
            "FUSION_RECOMMENDATION_TTL": "recommendation_ttl",
            "FUSION_VERDICT_TTL": "verdict_ttl",
        }
        float_fields = {
            "FUSION_INTER_BATCH_DELAY": "inter_batch_delay",
            "FUSION_SIGNAL_TIMEOUT": "signal_timeout",
            "FUSION_SYNTHESIS_TIMEOUT": "synthesis_timeout",
            "FUSION_REVIEW_TIMEOUT": "review_timeout",
        }
        for var, name in int_fields.items():
            if raw := env.get(var):
                kwargs[name] = int(raw)
        for var, name in float_fields.items():
            if raw := env.get(var):
                kwargs[name] = float(raw)

        kwargs.update(overrides)
        return cls(**kwargs)


@dataclass(frozen=True)
class CompletionSettings:
    """Settings for the chat-completions endpoint used by synthesis and review."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    synthesis_model: str = "gpt-4o"
    synthesis_temperature: float = 0.15
    review_model: str = "gpt-4-turbo"
    review_temperature: float = 0.05
    max_tokens: int = 2000
    request_timeout: float = 60.0
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    max_workers: int = 4

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CompletionSettings":
        env = os.environ if environ is None else environ
        return cls(
            base_url=env.get("FUSION_LLM_BASE_URL", cls.base_url).rstrip("/"),
            api_key=env.get("FUSION_LLM_API_KEY") or env.get("OPENAI_API_KEY"),
            synthesis_model=env.get("FUSION_SYNTHESIS_MODEL", cls.synthesis_model),
            review_model=env.get("FUSION_REVIEW_MODEL", cls.review_model),
            max_tokens=int(env.get("FUSION_LLM_MAX_TOKENS", str(cls.max_tokens))),
            request_timeout=float(env.get("FUSION_LLM_TIMEOUT", str(cls.request_timeout))),
            max_retries=int(env.get("FUSION_LLM_MAX_RETRIES", str(cls.max_retries))),
            base_delay=float(env.get("FUSION_LLM_BASE_DELAY", str(cls.base_delay))),
            max_delay=float(env.get("FUSION_LLM_MAX_DELAY", str(cls.max_delay))),
            max_workers=int(env.get("FUSION_LLM_MAX_WORKERS", str(cls.max_workers))),
        )
