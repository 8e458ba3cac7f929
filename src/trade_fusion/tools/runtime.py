"""Process-wide collaborators for the MCP tools, built lazily from the environment."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

from trade_fusion.config import CompletionSettings, EngineConfig
from trade_fusion.data.cache import DiskCacheStore, FusionCache
from trade_fusion.data.completion_client import CompletionClient
from trade_fusion.fusion.engine import FusionEngine
from trade_fusion.fusion.synthesizer import RecommendationSynthesizer
from trade_fusion.fusion.validator import ConsistencyReviewer, TradeValidator

logger = logging.getLogger(__name__)


class Closeable(Protocol):
    def close(self) -> None: ...


@dataclass(frozen=True)
class Runtime:
    config: EngineConfig
    cache: FusionCache
    engine: FusionEngine
    validator: TradeValidator
    clients: tuple[Closeable, ...] = ()

    def close(self) -> None:
        """Shut down the completion clients' worker pools, then the cache store."""
        for client in self.clients:
            client.close()
        self.cache.close()
        logger.info(f"Runtime closed ({len(self.clients)} completion clients)")


def build_runtime(
    config: EngineConfig,
    settings: CompletionSettings,
    cache: FusionCache | None = None,
) -> Runtime:
    """Wire cache, completion clients, synthesizer, validator and engine."""
    cache = cache or FusionCache(DiskCacheStore(config.cache_dir))
    synthesis_client = CompletionClient.for_synthesis(settings)
    review_client = CompletionClient.for_review(settings)
    synthesizer = RecommendationSynthesizer(
        synthesis_client,
        weights=config.weights,
        timeout=config.synthesis_timeout,
    )
    validator = TradeValidator(
        ConsistencyReviewer(review_client, timeout=config.review_timeout),
        cache=cache,
        strictness=config.strictness,
        verdict_ttl=config.verdict_ttl,
    )
    engine = FusionEngine(config, synthesizer, validator=validator, cache=cache)
    return Runtime(
        config=config,
        cache=cache,
        engine=engine,
        validator=validator,
        clients=(synthesis_client, review_client),
    )


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    """Runtime for the server process, configured from FUSION_* variables."""
    config = EngineConfig.from_env()
    settings = CompletionSettings.from_env()
    if not settings.api_key:
        logger.warning("No completion API key configured; synthesis will fall back and reviews will be conservative")
    logger.info(
        f"Engine config: gate={config.gate_threshold} policy={config.missing_source_policy} "
        f"strictness={config.strictness} cache_dir={config.cache_dir}"
    )
    return build_runtime(config, settings)


def close_runtime() -> None:
    """Close the server runtime if one was built, so a later call builds a fresh one."""
    if get_runtime.cache_info().currsize:
        get_runtime().close()
        get_runtime.cache_clear()
