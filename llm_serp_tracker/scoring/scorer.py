"""
Composite scoring of evaluated answers.

Four components, each bounded to [0, 100]:

    position  rank_component(llm_rank)
    link      rank_component(link_rank)
    sov       sov * 100, or 0 without citations
    accuracy  decision table over quality flags

combined with fixed weights:

    score = 0.45 * position + 0.25 * link + 0.20 * sov + 0.10 * accuracy

The weights, the rank window of 10 and the accuracy precedence are policy
constants. Historical scores are only comparable while they stay unchanged,
so they are not configurable per call.

Example:
    >>> scored = score_answer(answer, ctx)
    >>> scored.breakdown
    ScoreBreakdown(position=100.0, link=100.0, sov=50.0, accuracy=100.0)
    >>> round(scored.score, 6)
    95.0
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any

from llm_serp_tracker.scoring.answer_block import AnswerBlock
from llm_serp_tracker.scoring.evaluator import (
    EvaluatedAnswer,
    EvaluationContext,
    evaluate_answer,
)

logger = logging.getLogger(__name__)

SCORE_WEIGHTS: dict[str, float] = {
    "position": 0.45,
    "link": 0.25,
    "sov": 0.20,
    "accuracy": 0.10,
}

RANK_WINDOW = 10

# Accuracy decision table, first match wins
ACCURACY_NO_FLAGS = 100.0
ACCURACY_HALLUCINATION = 0.0
ACCURACY_NO_SOURCES = 25.0
ACCURACY_OTHER_FLAGS = 60.0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-component scores, each in [0, 100]."""

    position: float
    link: float
    sov: float
    accuracy: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class ScoredAnswer(EvaluatedAnswer):
    """
    EvaluatedAnswer plus its composite score.

    This is the unit persisted per (run, query) pair.
    """

    score: float
    breakdown: ScoreBreakdown

    def to_dict(self) -> dict[str, Any]:
        return {
            "presence": self.presence,
            "llm_rank": self.llm_rank,
            "link_rank": self.link_rank,
            "sov": self.sov,
            "flags": list(self.flags),
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
        }


@dataclass(frozen=True)
class AggregateScore:
    """
    Run-level summary.

    Attributes:
        overall_score: Mean per-query score
        visibility_pct: Percentage of queries where the brand was present
    """

    overall_score: float
    visibility_pct: float


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def rank_component(rank: int | None) -> float:
    """
    Score a rank within a window of 10: rank 1 is 100, rank 10 or worse is 10.

    Missing or non-positive ranks score 0.

    Examples:
        >>> rank_component(1)
        100.0
        >>> rank_component(3)
        80.0
        >>> rank_component(25)
        10.0
        >>> rank_component(None)
        0.0
    """
    if rank is None or rank <= 0:
        return 0.0
    return _clamp((RANK_WINDOW - min(rank, RANK_WINDOW) + 1) / RANK_WINDOW * 100)


def sov_component(sov: float | None) -> float:
    """Scale share of voice to [0, 100]; no citations scores 0."""
    if sov is None:
        return 0.0
    return _clamp(sov * 100)


def accuracy_component(flags: list[str]) -> float:
    """
    Map quality flags to an accuracy score.

    Precedence: no flags (100), possible_hallucination (0), no_sources (25),
    any other flag (60).

    Example:
        >>> accuracy_component(["possible_hallucination", "no_sources"])
        0.0
    """
    if not flags:
        return ACCURACY_NO_FLAGS
    if "possible_hallucination" in flags:
        return ACCURACY_HALLUCINATION
    if "no_sources" in flags:
        return ACCURACY_NO_SOURCES
    return ACCURACY_OTHER_FLAGS


def composite_score(breakdown: ScoreBreakdown) -> float:
    """Weighted sum of the four components."""
    return (
        breakdown.position * SCORE_WEIGHTS["position"]
        + breakdown.link * SCORE_WEIGHTS["link"]
        + breakdown.sov * SCORE_WEIGHTS["sov"]
        + breakdown.accuracy * SCORE_WEIGHTS["accuracy"]
    )


def score_evaluated(evaluated: EvaluatedAnswer) -> ScoredAnswer:
    """Score already-computed signals."""
    breakdown = ScoreBreakdown(
        position=rank_component(evaluated.llm_rank),
        link=rank_component(evaluated.link_rank),
        sov=sov_component(evaluated.sov),
        accuracy=accuracy_component(evaluated.flags),
    )

    return ScoredAnswer(
        presence=evaluated.presence,
        llm_rank=evaluated.llm_rank,
        link_rank=evaluated.link_rank,
        sov=evaluated.sov,
        flags=list(evaluated.flags),
        score=composite_score(breakdown),
        breakdown=breakdown,
    )


def score_answer(answer: AnswerBlock, ctx: EvaluationContext) -> ScoredAnswer:
    """
    Evaluate and score one AnswerBlock.

    Pure and deterministic: the same (answer, ctx) always gives the same
    ScoredAnswer.
    """
    return score_evaluated(evaluate_answer(answer, ctx))


def aggregate_scores(results: list[ScoredAnswer]) -> AggregateScore:
    """
    Summarize a run's scored answers.

    An empty run aggregates to (0, 0) rather than raising or producing NaN.

    Example:
        >>> aggregate_scores([])
        AggregateScore(overall_score=0.0, visibility_pct=0.0)
    """
    if not results:
        return AggregateScore(overall_score=0.0, visibility_pct=0.0)

    total = len(results)
    overall = sum(result.score for result in results) / total
    present = sum(1 for result in results if result.presence)

    return AggregateScore(overall_score=overall, visibility_pct=present / total * 100)
