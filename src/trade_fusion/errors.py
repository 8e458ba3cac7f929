"""Error taxonomy for the fusion engine.

Every external failure is caught at its component boundary and turned into a
typed substitute (absent signal, fallback card, conservative verdict, cache
miss). These exceptions never reach the batch scheduler.
"""

from dataclasses import dataclass


class FusionError(Exception):
    """Base class for engine errors."""

    pass


class UpstreamSignalMissing(FusionError):
    """An analytical source errored or timed out. Contributes zero weight."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source} signal unavailable: {reason}")
        self.source = source
        self.reason = reason

    def to_dict(self) -> dict[str, str]:
        return {"source": self.source, "reason": self.reason}


class SynthesisError(FusionError):
    """Synthesis call failed, timed out, or returned a schema-violating payload."""

    def __init__(self, symbol: str, reason: str, cause: Exception | None = None):
        super().__init__(f"Synthesis failed for {symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason
        self.cause = cause


class ValidationUnavailableError(FusionError):
    """Consistency-review call failed, timed out, or returned an unusable payload."""

    def __init__(self, trade_id: str, reason: str, cause: Exception | None = None):
        super().__init__(f"Review failed for {trade_id}: {reason}")
        self.trade_id = trade_id
        self.reason = reason
        self.cause = cause


class CacheError(FusionError):
    """Cache store failure. Logged and treated as a miss."""

    pass


class CompletionError(FusionError):
    """Completion endpoint returned an error or an unparseable response."""

    pass


class CompletionRetryError(CompletionError):
    """Raised when the completion endpoint fails after all retries."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


@dataclass(frozen=True)
class ThresholdRejected:
    """Business decision excluding a candidate before synthesis. Not an error."""

    symbol: str
    composite: float
    threshold: float
    reason: str  # "below_threshold" | "rank_cutoff"

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "composite": self.composite,
            "threshold": self.threshold,
            "reason": self.reason,
        }
