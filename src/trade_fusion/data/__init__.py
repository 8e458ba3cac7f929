"""Cache store and completion client."""

from trade_fusion.data.cache import DiskCacheStore, FusionCache, MemoryStore
from trade_fusion.data.completion_client import CompletionClient, Prompt

__all__ = ["CompletionClient", "DiskCacheStore", "FusionCache", "MemoryStore", "Prompt"]
