"""Independent consistency validation of trade cards.

Local deterministic cross-checks (price ordering, risk/reward minimum,
position size vs risk grade, timing consistency, catalyst relevance, price
target realism, stop placement) are combined with an external consistency
review. If the review is unavailable the verdict is a conservative "revise",
never a silent approval.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from time import perf_counter
from typing import Any, Protocol

import numpy as np

from trade_fusion import ENGINE_VERSION
from trade_fusion.config import StrictnessProfile, get_strictness_profile
from trade_fusion.data.cache import FusionCache, validation_key
from trade_fusion.data.completion_client import StructuredCompleter
from trade_fusion.errors import ValidationUnavailableError
from trade_fusion.models import (
    ISSUE_CATEGORIES,
    MAX_POSITION_SIZE,
    MIN_RISK_REWARD,
    POSITION_RANGES,
    RISK_GRADES,
    SEVERITIES,
    VERDICT_RECOMMENDATIONS,
    Candidate,
    EvidenceAnalysis,
    ImprovementSuggestions,
    Issue,
    MarketContext,
    Recommendation,
    ValidationVerdict,
    VerdictMetadata,
    derive_risk_reward,
)
from trade_fusion.prompts.templates import REVIEW_CRITERIA, REVIEW_SCHEMA, build_review_prompt
from trade_fusion.utils.sanitize import sanitize_required, sanitize_text, sanitize_texts
from trade_fusion.utils.validators import clamp, clamp_unit, coerce_choice, coerce_float

logger = logging.getLogger(__name__)

SEVERITY_PENALTIES = {"critical": 0.5, "high": 0.25, "medium": 0.1, "low": 0.03}
REVIEW_WEIGHT = 0.6
LOCAL_WEIGHT = 0.4
# Below this, an approve* outcome is lowered to revise
APPROVAL_FLOOR = 0.5
# Stated vs derived risk/reward tolerance (relative)
RISK_REWARD_TOLERANCE = 0.10

URGENCY_SENSITIVITIES = {
    "high": ("immediate", "hours"),
    "medium": ("hours", "days"),
    "low": ("days", "weeks"),
}

SENSITIVITY_TIMELINES = {
    "immediate": ("high", "intraday", "1-2 hours"),
    "hours": ("high", "medium", "1-2 days"),
    "days": ("medium", "low", "3-5 days", "1-2 weeks"),
    "weeks": ("low", "1-2 weeks", "1-3 months"),
}

URGENCY_ENTRY_WINDOWS = {
    "high": ("market open", "immediate", "next session", "current levels"),
    "medium": ("within 1-2 days", "next week", "after confirmation"),
    "low": ("patient entry", "when setup completes", "no rush"),
}

SETUP_HORIZONS = {
    "Breakout": ("1-2 days", "3-5 days"),
    "Reversal": ("intraday", "1-2 days", "3-5 days"),
    "Momentum": ("1-2 days", "3-5 days"),
    "Earnings Play": ("intraday", "1-2 days", "3-5 days"),
    "Sector Rotation": ("1-2 weeks", "1-3 months"),
    "Anomaly Exploitation": ("intraday", "1-2 days"),
    "Mean Reversion": ("3-5 days", "1-2 weeks"),
}

CATALYST_KEYWORDS = {
    "Breakout": ("volume", "resistance", "pattern completion", "news catalyst"),
    "Reversal": ("oversold", "support", "divergence", "sentiment extreme"),
    "Earnings Play": ("earnings", "guidance", "surprise", "analyst"),
    "Sector Rotation": ("sector", "rotation", "economic", "policy"),
    "Anomaly Exploitation": ("unusual", "spike", "deviation", "flow"),
}

# Timeframe -> historical move bucket
HORIZON_MOVES = {
    "intraday": "day1",
    "1-2 days": "day1",
    "3-5 days": "day3",
    "1-2 weeks": "week1",
}

_RANK = {name: i for i, name in enumerate(VERDICT_RECOMMENDATIONS)}


def _issue(category: str, severity: str, description: str, evidence: str = "", suggestion: str = "") -> Issue:
    return Issue(
        category=category,
        severity=severity,
        description=description,
        evidence=evidence,
        suggestion=suggestion,
        origin="local",
    )


# ---------------- local cross-checks ----------------


def check_price_ordering(rec: Recommendation) -> list[Issue]:
    """target > entry > stop for longs, reversed for shorts."""
    ex = rec.execution
    direction = rec.direction
    problems = []
    if direction == "long":
        if ex.target_price <= ex.entry_price:
            problems.append(f"target {ex.target_price:.2f} is not above entry {ex.entry_price:.2f}")
        if ex.stop_loss >= ex.entry_price:
            problems.append(f"stop {ex.stop_loss:.2f} is not below entry {ex.entry_price:.2f}")
    else:
        if ex.target_price >= ex.entry_price:
            problems.append(f"target {ex.target_price:.2f} is not below entry {ex.entry_price:.2f}")
        if ex.stop_loss <= ex.entry_price:
            problems.append(f"stop {ex.stop_loss:.2f} is not above entry {ex.entry_price:.2f}")

    if not problems:
        return []
    return [
        _issue(
            "logic_error",
            "critical",
            f"Price ordering inconsistent with {direction} {rec.header.trade_type} trade",
            "; ".join(problems),
            "Place the target beyond entry and the stop on the opposite side for the trade direction",
        )
    ]


def check_risk_reward(rec: Recommendation) -> list[Issue]:
    """Minimum reward/risk per trade type, and stated vs derived ratio."""
    ex = rec.execution
    issues = []
    derived = derive_risk_reward(ex.entry_price, ex.target_price, ex.stop_loss)
    minimum = MIN_RISK_REWARD.get(rec.header.trade_type, 1.5)

    if derived is None:
        return [
            _issue(
                "risk_miscalculation",
                "critical",
                "Stop loss equals entry price",
                f"entry={ex.entry_price:.2f} stop={ex.stop_loss:.2f}",
                "Set a stop at the invalidation level",
            )
        ]

    if derived < minimum:
        issues.append(
            _issue(
                "risk_miscalculation",
                "high",
                f"Risk/reward {derived:.2f} below {minimum} minimum for {rec.header.trade_type}",
                f"|target-entry|={abs(ex.target_price - ex.entry_price):.2f}, "
                f"|entry-stop|={abs(ex.entry_price - ex.stop_loss):.2f}",
                "Widen the target or tighten the stop",
            )
        )

    if abs(ex.risk_reward_ratio - derived) > RISK_REWARD_TOLERANCE * derived:
        issues.append(
            _issue(
                "risk_miscalculation",
                "medium",
                "Stated risk/reward does not match execution prices",
                f"stated={ex.risk_reward_ratio:.2f} derived={derived:.2f}",
                "Recompute risk/reward from entry, target and stop",
            )
        )
    return issues


def check_position_size(rec: Recommendation) -> list[Issue]:
    """Position size must sit inside the risk grade's range."""
    grade = rec.narrative.risk.risk_grade
    size = rec.execution.position_size
    low, high = POSITION_RANGES.get(grade, (0.0, MAX_POSITION_SIZE))
    if size > high:
        return [
            _issue(
                "risk_miscalculation",
                "high",
                f"Position size {size:.1%} exceeds {high:.1%} maximum for grade {grade}",
                f"allowed range {low:.1%}-{high:.1%}",
                f"Reduce position to at most {high:.1%}",
            )
        ]
    if size < low:
        return [
            _issue(
                "risk_miscalculation",
                "medium",
                f"Position size {size:.1%} below {low:.1%} minimum for grade {grade}",
                f"allowed range {low:.1%}-{high:.1%}",
                "Size up to the grade range or downgrade the risk grade",
            )
        ]
    return []


def check_timing_consistency(rec: Recommendation) -> list[Issue]:
    """Urgency must be compatible with the catalyst's timing sensitivity."""
    urgency = rec.narrative.timing.urgency
    sensitivity = rec.narrative.catalyst.timing_sensitivity
    allowed = URGENCY_SENSITIVITIES.get(urgency, ())
    if sensitivity in allowed:
        return []
    return [
        _issue(
            "timing_inconsistency",
            "medium",
            f"Urgency '{urgency}' inconsistent with '{sensitivity}' catalyst sensitivity",
            f"'{urgency}' urgency expects sensitivity in {list(allowed)}",
            "Align urgency with how quickly the catalyst plays out",
        )
    ]


def check_catalyst_relevance(rec: Recommendation) -> list[Issue]:
    """The stated catalyst should mention something relevant to the setup type."""
    setup_type = rec.narrative.setup.type
    keywords = CATALYST_KEYWORDS.get(setup_type)
    if not keywords:
        return []
    catalyst = rec.narrative.catalyst
    text = " ".join((catalyst.primary, *catalyst.secondary)).lower()
    if any(keyword in text for keyword in keywords):
        return []
    return [
        _issue(
            "signal_mismatch",
            "low",
            f"Catalyst does not reference typical {setup_type} drivers",
            f"catalyst='{catalyst.primary}', expected one of {list(keywords)}",
            "Tie the catalyst to the setup or reconsider the setup type",
        )
    ]


def analyze_price_target(
    rec: Recommendation, ctx: MarketContext, profile: StrictnessProfile
) -> tuple[dict[str, Any], list[Issue]]:
    """Target distance vs current price and vs historical moves for the timeframe."""
    current = ctx.current_price
    target_vs_current = (rec.execution.target_price - current) / current

    bucket = HORIZON_MOVES.get(rec.header.timeframe.lower().strip(), "day3")
    moves = np.asarray(ctx.historical_moves.get(bucket, ()), dtype=float)

    avg_move: float | None = None
    target_vs_avg: float | None = None
    reachability: float | None = None
    if moves.size:
        avg_move = float(abs(np.mean(moves)))
        if avg_move > 0:
            target_vs_avg = abs(target_vs_current) / avg_move
        in_direction = moves[moves > 0] if target_vs_current > 0 else moves[moves < 0]
        if in_direction.size:
            reachability = float(np.mean(np.abs(in_direction) >= abs(target_vs_current)))
        else:
            reachability = 0.0

    analysis = {
        "target_vs_current": target_vs_current,
        "moves_bucket": bucket,
        "avg_historical_move": avg_move,
        "target_vs_avg_move": target_vs_avg,
        "reachability_score": reachability,
    }

    issues = []
    if abs(target_vs_current) > profile.max_target_move:
        issues.append(
            _issue(
                "unrealistic_target",
                "medium",
                f"Target implies a {abs(target_vs_current):.1%} move",
                f"limit for '{profile.name}' strictness is {profile.max_target_move:.0%}",
                "Use a nearer target or a longer timeframe",
            )
        )
    elif reachability is not None and reachability < 0.1:
        issues.append(
            _issue(
                "unrealistic_target",
                "low",
                "Historical moves rarely reached this target",
                f"reachability {reachability:.0%} over {moves.size} {bucket} moves",
                "Scale the target to typical moves for the timeframe",
            )
        )
    return analysis, issues


def analyze_timing(rec: Recommendation) -> tuple[dict[str, Any], list[Issue]]:
    """Catalyst timeline match, urgency vs entry window, horizon realism for the setup."""
    timing = rec.narrative.timing
    sensitivity = rec.narrative.catalyst.timing_sensitivity
    horizon = timing.time_horizon.lower().strip()

    expected = SENSITIVITY_TIMELINES.get(sensitivity, ())
    catalyst_timeline_match = timing.urgency in expected or horizon in expected

    windows = URGENCY_ENTRY_WINDOWS.get(timing.urgency, ())
    entry_window = timing.entry_window.lower()
    urgency_consistency = any(window in entry_window for window in windows)

    realistic = SETUP_HORIZONS.get(rec.narrative.setup.type, ())
    time_horizon_realism = horizon in realistic

    analysis = {
        "catalyst_timeline_match": catalyst_timeline_match,
        "urgency_consistency": urgency_consistency,
        "time_horizon_realism": time_horizon_realism,
    }

    issues = []
    if not time_horizon_realism:
        issues.append(
            _issue(
                "timing_inconsistency",
                "low",
                f"Time horizon '{timing.time_horizon}' unusual for {rec.narrative.setup.type}",
                f"typical horizons: {list(realistic)}",
                "Match the horizon to how this setup usually resolves",
            )
        )
    return analysis, issues


def expected_risk_grade(overall_risk: float) -> str:
    if overall_risk <= 0.2:
        return "A"
    if overall_risk <= 0.4:
        return "B"
    if overall_risk <= 0.6:
        return "C"
    if overall_risk <= 0.8:
        return "D"
    return "F"


def analyze_stop_loss(rec: Recommendation, ctx: MarketContext) -> tuple[str, list[Issue]]:
    """Stop placement vs nearest support/resistance, then vs ATR."""
    stop = rec.execution.stop_loss
    current = ctx.current_price

    if rec.direction == "long":
        support = ctx.nearest_support()
        if support is not None and stop > support * 0.98:
            text = (
                f"Stop loss at ${stop:.2f} is above nearest support at ${support:.2f}"
                " - may be stopped out prematurely"
            )
            return text, [_issue("risk_miscalculation", "medium", text, "", "Move the stop below support")]
        if support is not None:
            return f"Stop loss appropriately placed below support at ${support:.2f}", []
    else:
        resistance = ctx.nearest_resistance()
        if resistance is not None and stop < resistance * 1.02:
            text = (
                f"Stop loss at ${stop:.2f} is below nearest resistance at ${resistance:.2f}"
                " - may be stopped out prematurely"
            )
            return text, [_issue("risk_miscalculation", "medium", text, "", "Move the stop above resistance")]
        if resistance is not None:
            return f"Stop loss appropriately placed above resistance at ${resistance:.2f}", []

    atr = ctx.avg_true_range
    if not atr:
        return "No levels or ATR available to assess stop placement", []

    distance = abs(stop - current) / current
    if distance < atr * 0.5:
        text = f"Stop loss may be too tight at {distance:.1%} vs {atr:.1%} ATR"
        return text, [_issue("risk_miscalculation", "low", text, "", "Allow at least half an ATR")]
    if distance > atr * 3:
        text = f"Stop loss may be too wide at {distance:.1%} vs {atr:.1%} ATR"
        return text, [_issue("risk_miscalculation", "low", text, "", "Keep the stop within 3 ATR")]
    return f"Stop loss appropriately sized at {distance:.1%} ({distance / atr:.1f}x ATR)", []


def analyze_risk(
    rec: Recommendation, ctx: MarketContext, candidate: Candidate | None
) -> tuple[dict[str, Any], list[Issue]]:
    """Risk grade justification, position size appropriateness and stop placement."""
    grade = rec.narrative.risk.risk_grade
    size = rec.execution.position_size
    low, high = POSITION_RANGES.get(grade, (0.0, MAX_POSITION_SIZE))
    if low <= size <= high:
        appropriateness = 1.0
    else:
        appropriateness = max(0.0, 1 - abs(size - low) / 0.05)

    issues: list[Issue] = []
    justification = "Standard risk assessment"
    risk_signal = candidate.signal("risk") if candidate is not None else None
    overall = risk_signal.subscore("overall_risk") if risk_signal is not None else None
    if overall is not None:
        expected = expected_risk_grade(overall)
        if expected == grade:
            justification = f"Risk grade {grade} matches {overall:.0%} risk score"
        else:
            justification = (
                f"Risk grade {grade} may not match {overall:.0%} risk score (expected {expected})"
            )
            if RISK_GRADES.index(grade) < RISK_GRADES.index(expected):
                issues.append(
                    _issue(
                        "risk_miscalculation",
                        "medium",
                        f"Risk grade {grade} understates assessed risk",
                        justification,
                        f"Use grade {expected} and size accordingly",
                    )
                )

    stop_text, stop_issues = analyze_stop_loss(rec, ctx)
    issues.extend(stop_issues)

    analysis = {
        "risk_grade_justification": justification,
        "position_size_appropriateness": appropriateness,
        "stop_loss_logic": stop_text,
    }
    return analysis, issues


@dataclass(frozen=True)
class LocalReport:
    """Outcome of the deterministic cross-checks."""

    issues: tuple[Issue, ...]
    cross_checks: dict[str, bool]
    logic_consistency: dict[str, Any]

    @property
    def score(self) -> float:
        penalty = sum(SEVERITY_PENALTIES[i.severity] for i in self.issues)
        return clamp(1.0 - penalty)

    def findings(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "cross_checks": self.cross_checks,
            "logic_consistency": self.logic_consistency,
        }


def run_local_checks(
    rec: Recommendation,
    ctx: MarketContext,
    candidate: Candidate | None,
    profile: StrictnessProfile,
) -> LocalReport:
    """Run every deterministic cross-check over one trade card."""
    ordering = check_price_ordering(rec)
    risk_reward = check_risk_reward(rec)
    position = check_position_size(rec)
    timing_issues = check_timing_consistency(rec)
    catalyst = check_catalyst_relevance(rec)
    price_target, target_issues = analyze_price_target(rec, ctx, profile)
    timing, horizon_issues = analyze_timing(rec)
    risk, risk_issues = analyze_risk(rec, ctx, candidate)

    cross_checks = {
        "price_order_check": not ordering,
        "risk_reward_minimum": not any(i.severity in ("high", "critical") for i in risk_reward),
        "position_size_reasonable": not position,
        "timeframe_consistency": not timing_issues,
        "catalyst_relevance": not catalyst,
    }
    issues = (
        ordering + risk_reward + position + timing_issues + catalyst
        + target_issues + horizon_issues + risk_issues
    )
    return LocalReport(
        issues=tuple(issues),
        cross_checks=cross_checks,
        logic_consistency={"price_target": price_target, "timing": timing, "risk": risk},
    )


# ---------------- external review ----------------


@dataclass(frozen=True)
class ReviewResult:
    """Consistency-review payload after parsing and clamping."""

    validation_score: float
    confidence_score: float
    recommendation: str
    criteria: dict[str, bool] = field(default_factory=dict)
    issues: tuple[Issue, ...] = ()
    contradictory: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()
    overfitting: tuple[str, ...] = ()
    suggestions: ImprovementSuggestions = field(default_factory=ImprovementSuggestions)
    model_used: str = "external"


class Reviewer(Protocol):
    async def review(
        self, recommendation: Recommendation, candidate: Candidate | None, findings: dict[str, Any]
    ) -> ReviewResult: ...


def parse_review(payload: Any, model_used: str = "external") -> ReviewResult:
    """
    Coerce a review payload. A missing or non-numeric validation_score is a
    schema violation; everything else falls back to conservative defaults.

    Raises:
        ValueError: If the payload is unusable
    """
    if not isinstance(payload, Mapping):
        raise ValueError(f"Review payload must be an object, got {type(payload).__name__}")
    score = coerce_float(payload.get("validation_score"))
    if score is None:
        raise ValueError("Review payload missing numeric validation_score")

    issues = []
    for raw in payload.get("identified_issues") or []:
        if not isinstance(raw, Mapping):
            continue
        description = sanitize_text(raw.get("description")) if isinstance(raw.get("description"), str) else None
        if not description:
            continue
        issues.append(
            Issue(
                category=coerce_choice(raw.get("category"), ISSUE_CATEGORIES, "logic_error"),
                severity=coerce_choice(raw.get("severity"), SEVERITIES, "medium"),
                description=description,
                evidence=sanitize_required(raw.get("evidence"), ""),
                suggestion=sanitize_required(raw.get("suggestion"), ""),
                origin="review",
            )
        )

    return ReviewResult(
        validation_score=clamp(score),
        confidence_score=clamp_unit(payload.get("confidence_score"), default=0.5),
        recommendation=coerce_choice(payload.get("recommendation"), VERDICT_RECOMMENDATIONS, "revise"),
        criteria={name: payload.get(name) is True for name in REVIEW_CRITERIA},
        issues=tuple(issues),
        contradictory=sanitize_texts(payload.get("contradictory_evidence")),
        missing=sanitize_texts(payload.get("missing_evidence")),
        overfitting=sanitize_texts(payload.get("overfitting_indicators")),
        suggestions=ImprovementSuggestions(
            signal_integration=sanitize_texts(payload.get("signal_integration_improvements")),
            logic_refinement=sanitize_texts(payload.get("logic_refinement_suggestions")),
            prompt_optimization=sanitize_texts(payload.get("prompt_optimization_feedback")),
        ),
        model_used=model_used,
    )


class ConsistencyReviewer:
    """Consistency-review collaborator. Every failure becomes ValidationUnavailableError."""

    def __init__(self, client: StructuredCompleter, timeout: float = 45.0, model_name: str | None = None):
        self.client = client
        self.timeout = timeout
        self.model_name = model_name or getattr(client, "model", "external")

    async def review(
        self, recommendation: Recommendation, candidate: Candidate | None, findings: dict[str, Any]
    ) -> ReviewResult:
        prompt = build_review_prompt(recommendation, candidate, findings)
        try:
            payload = await asyncio.wait_for(
                self.client.complete(prompt, REVIEW_SCHEMA), timeout=self.timeout
            )
        except TimeoutError as e:
            raise ValidationUnavailableError(
                recommendation.id, f"timed out after {self.timeout}s", cause=e
            ) from e
        except Exception as e:
            raise ValidationUnavailableError(
                recommendation.id, f"{type(e).__name__}: {e}", cause=e
            ) from e

        try:
            return parse_review(payload, self.model_name)
        except ValueError as e:
            raise ValidationUnavailableError(recommendation.id, f"schema violation: {e}", cause=e) from e


# ---------------- decision ----------------


def improvement_suggestions(review: ReviewResult, issues: Sequence[Issue]) -> ImprovementSuggestions:
    """Reviewer suggestions, with every issue's own fix folded into logic refinement."""
    refinement = list(review.suggestions.logic_refinement)
    for issue in issues:
        if issue.suggestion and issue.suggestion not in refinement:
            refinement.append(issue.suggestion)
    return replace(review.suggestions, logic_refinement=tuple(refinement))


def combine_scores(review_score: float, local_score: float) -> float:
    return clamp(REVIEW_WEIGHT * review_score + LOCAL_WEIGHT * local_score)


def decide(
    score: float,
    issues: Sequence[Issue],
    proposed: str | None,
    profile: StrictnessProfile,
) -> str:
    """
    Apply the decision rule, then keep the more conservative of the rule
    outcome and the reviewer's proposal. Scores below 0.5 never approve.
    """
    if any(i.severity == "critical" for i in issues):
        outcome = "reject"
    elif score < profile.reject_threshold:
        outcome = "reject"
    elif score < profile.pass_threshold:
        outcome = "revise"
    elif any(i.severity == "high" for i in issues):
        outcome = "approve_with_caution"
    else:
        outcome = "approve"

    if proposed in _RANK and _RANK[proposed] > _RANK[outcome]:
        outcome = proposed

    if score < APPROVAL_FLOOR and outcome in ("approve", "approve_with_caution"):
        outcome = "revise"
    return outcome


def conservative_verdict(
    rec: Recommendation,
    profile: StrictnessProfile,
    reason: str,
    local: LocalReport | None = None,
    processing_time_ms: float = 0.0,
) -> ValidationVerdict:
    """
    Verdict used when the consistency review is unavailable.

    Always "revise" with exactly one critical issue, so an unvetted card is
    never approved. Not cached.
    """
    issue = Issue(
        category="logic_error",
        severity="critical",
        description="Validation system unavailable",
        evidence=f"Consistency review failed: {reason}",
        suggestion="Manual review required",
        origin="local",
    )
    return ValidationVerdict(
        trade_id=rec.id,
        symbol=rec.symbol,
        passed=False,
        # Bottom of the revise band, so the reject-threshold invariant holds
        validation_score=profile.reject_threshold,
        confidence_score=0.0,
        recommendation="revise",
        issues=(issue,),
        metadata=VerdictMetadata(
            model_used="fallback",
            strictness=profile.name,
            processing_time_ms=round(processing_time_ms, 1),
            local_score=local.score if local is not None else None,
            review_score=None,
            engine_version=ENGINE_VERSION,
        ),
        criteria={name: False for name in REVIEW_CRITERIA},
        cross_checks=local.cross_checks if local is not None else {},
        evidence=EvidenceAnalysis(
            signal_support_strength=clamp(rec.signal_composition.composite),
            missing=("Independent consistency review",),
        ),
        logic_consistency=local.logic_consistency if local is not None else {},
        improvement_suggestions=ImprovementSuggestions(logic_refinement=("Manual review required",)),
    )


class TradeValidator:
    """
    Validates trade cards against local cross-checks and an external review.

    Verdicts are cached by (trade id, strictness). Conservative verdicts
    produced while the reviewer is unavailable are not cached.
    """

    def __init__(
        self,
        reviewer: Reviewer,
        cache: FusionCache | None = None,
        strictness: str = "standard",
        verdict_ttl: int = 900,
    ):
        self.reviewer = reviewer
        self.cache = cache
        self.strictness = get_strictness_profile(strictness).name
        self.verdict_ttl = verdict_ttl

    async def validate(
        self,
        recommendation: Recommendation,
        candidate: Candidate | None = None,
        market_data: MarketContext | None = None,
        strictness: str | None = None,
    ) -> ValidationVerdict:
        """
        Produce a verdict for one trade card. Never raises for reviewer failures.

        Args:
            recommendation: Trade card to validate
            candidate: Originating candidate (signals used for risk-grade checks)
            market_data: Market snapshot; defaults to the candidate's
            strictness: permissive, standard or strict (default: validator's)

        Returns:
            ValidationVerdict
        """
        profile = get_strictness_profile(strictness or self.strictness)
        key = validation_key(recommendation.id, profile.name)

        if self.cache is not None:
            cached = await self.cache.get_json(key)
            if cached is not None:
                try:
                    verdict = ValidationVerdict.from_dict(cached)
                    logger.info(f"{recommendation.symbol}: verdict cache hit for {recommendation.id}")
                    return verdict
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Discarding undecodable cached verdict {key}: {e}")

        start = perf_counter()
        ctx = market_data or (candidate.market_context if candidate is not None else None)
        if ctx is None:
            ctx = MarketContext(current_price=recommendation.execution.entry_price)

        local = run_local_checks(recommendation, ctx, candidate, profile)

        try:
            review = await self.reviewer.review(recommendation, candidate, local.findings())
        except Exception as e:
            reason = e.reason if isinstance(e, ValidationUnavailableError) else f"{type(e).__name__}: {e}"
            logger.error(
                f"{recommendation.symbol}: review unavailable for {recommendation.id} ({reason}); "
                f"returning conservative verdict"
            )
            return conservative_verdict(
                recommendation, profile, reason, local, (perf_counter() - start) * 1000
            )

        issues = local.issues + review.issues
        score = combine_scores(review.validation_score, local.score)
        outcome = decide(score, issues, review.recommendation, profile)

        verdict = ValidationVerdict(
            trade_id=recommendation.id,
            symbol=recommendation.symbol,
            passed=outcome in ("approve", "approve_with_caution"),
            validation_score=score,
            confidence_score=review.confidence_score,
            recommendation=outcome,
            issues=issues,
            metadata=VerdictMetadata(
                model_used=review.model_used,
                strictness=profile.name,
                processing_time_ms=round((perf_counter() - start) * 1000, 1),
                local_score=local.score,
                review_score=review.validation_score,
                engine_version=ENGINE_VERSION,
            ),
            criteria=review.criteria,
            cross_checks=local.cross_checks,
            evidence=EvidenceAnalysis(
                signal_support_strength=clamp(recommendation.signal_composition.composite),
                contradictory=review.contradictory,
                missing=review.missing,
                overfitting=review.overfitting,
            ),
            logic_consistency=local.logic_consistency,
            improvement_suggestions=improvement_suggestions(review, issues),
        )
        self._log_verdict(verdict)

        if self.cache is not None:
            await self.cache.set_json(key, verdict.to_dict(), self.verdict_ttl)
        return verdict

    def _log_verdict(self, verdict: ValidationVerdict) -> None:
        logger.info(
            f"{verdict.symbol}: {verdict.recommendation} "
            f"(score={verdict.validation_score:.2f}, issues={len(verdict.issues)}, "
            f"strictness={verdict.metadata.strictness})"
        )
        for issue in verdict.issues:
            if issue.severity in ("critical", "high"):
                logger.warning(
                    f"{verdict.symbol}: {issue.severity} {issue.category} - {issue.description}"
                )
