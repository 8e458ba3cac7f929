"""Confidence gate: filter and rank candidates before synthesis."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from trade_fusion.errors import ThresholdRejected
from trade_fusion.models import Candidate, CompositeScore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    """Ranked survivors (best first) and explicit rejection records."""

    survivors: list[tuple[Candidate, CompositeScore]] = field(default_factory=list)
    rejected: list[ThresholdRejected] = field(default_factory=list)


def gate(
    candidates: Sequence[Candidate],
    composites: Sequence[CompositeScore],
    threshold: float,
    max_n: int | None = None,
) -> GateDecision:
    """
    Rank candidates by composite and drop those below threshold.

    Ties are broken by symbol so the ranking is deterministic. Survivors past
    max_n are rejected with reason "rank_cutoff".

    Raises:
        ValueError: If candidates and composites are misaligned
    """
    if len(candidates) != len(composites):
        raise ValueError(
            f"Got {len(candidates)} candidates but {len(composites)} composites"
        )
    for candidate, composite in zip(candidates, composites):
        if candidate.symbol != composite.symbol:
            raise ValueError(
                f"Composite for {composite.symbol} paired with candidate {candidate.symbol}"
            )

    ranked = sorted(
        zip(candidates, composites),
        key=lambda pair: (-pair[1].composite, pair[0].symbol),
    )

    survivors: list[tuple[Candidate, CompositeScore]] = []
    rejected: list[ThresholdRejected] = []
    for candidate, composite in ranked:
        if composite.composite < threshold:
            rejected.append(
                ThresholdRejected(candidate.symbol, composite.composite, threshold, "below_threshold")
            )
        elif max_n is not None and len(survivors) >= max_n:
            rejected.append(
                ThresholdRejected(candidate.symbol, composite.composite, threshold, "rank_cutoff")
            )
        else:
            survivors.append((candidate, composite))

    logger.info(
        f"Gate: {len(survivors)} survivors, {len(rejected)} rejected "
        f"(threshold={threshold}, max_n={max_n})"
    )
    return GateDecision(survivors=survivors, rejected=rejected)
