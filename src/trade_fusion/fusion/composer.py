"""Weighted composition of per-source signals into one bounded score."""

import logging
from collections.abc import Mapping

from trade_fusion.config import DEFAULT_WEIGHTS, RENORMALIZE, SOURCES, ZERO_FILL
from trade_fusion.models import Candidate, CompositeScore
from trade_fusion.utils.validators import clamp

logger = logging.getLogger(__name__)


def compose(
    candidate: Candidate,
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
    policy: str = ZERO_FILL,
) -> CompositeScore:
    """
    Compute the composite score for a candidate.

    Under zero_fill an absent source contributes 0 and its weight is not
    redistributed. Under renormalize, contributions are rescaled by
    1 / coverage (the total weight of present sources).

    Pure and deterministic: sources are visited in fixed order, so the same
    candidate always yields bit-identical output.

    Args:
        candidate: Candidate with a possibly partial signals map
        weights: Per-source weights summing to at most 1
        policy: "zero_fill" or "renormalize"

    Returns:
        CompositeScore whose composite equals the sum of its contributions
    """
    if policy not in (ZERO_FILL, RENORMALIZE):
        raise ValueError(f"Invalid missing-source policy '{policy}'")

    scores: dict[str, float | None] = {}
    raw: dict[str, float] = {}
    present: list[str] = []
    coverage = 0.0

    for source in SOURCES:
        weight = float(weights.get(source, 0.0))
        signal = candidate.signal(source)
        if signal is None:
            scores[source] = None
            raw[source] = 0.0
            continue
        scores[source] = signal.score
        raw[source] = weight * signal.score
        present.append(source)
        coverage += weight

    if policy == RENORMALIZE:
        if coverage > 0:
            contributions = {s: raw[s] / coverage for s in SOURCES}
        else:
            contributions = {s: 0.0 for s in SOURCES}
    else:
        contributions = raw

    composite = clamp(sum(contributions[s] for s in SOURCES))

    result = CompositeScore(
        symbol=candidate.symbol,
        scores=scores,
        weights={s: float(weights.get(s, 0.0)) for s in SOURCES},
        contributions=contributions,
        composite=composite,
        policy=policy,
        sources_present=tuple(present),
        coverage=coverage,
    )
    logger.debug(
        f"{candidate.symbol}: composite={composite:.4f} coverage={coverage:.2f} "
        f"policy={policy} present={present}"
    )
    return result


def data_quality_score(candidate: Candidate) -> float:
    """0.2 per present source, capped at 1.0."""
    return min(1.0, 0.2 * len(candidate.present_signals()))


def module_contributions(candidate: Candidate, weights: Mapping[str, float]) -> dict[str, float]:
    """Weights of the sources that are present."""
    return {
        source: float(weights.get(source, 0.0))
        for source in SOURCES
        if candidate.signal(source) is not None
    }
