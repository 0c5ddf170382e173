"""
Answer evaluation and scoring for LLM SERP Tracker.

Public API:
    normalize_domain, is_brand_domain: Hostname canonicalization
    AnswerBlock, fallback_answer_block: Structured answer contract
    parse_json_permissive: Lenient JSON decoding of model text
    coerce_to_answer_block: Repair arbitrary output into an AnswerBlock
    evaluate_answer, EvaluationContext: Raw brand signals
    score_answer, aggregate_scores: Composite and run-level scores
    attach_deltas, QueryRow: Run-over-run comparison
    score_connector_output: The whole chain for one connector payload
"""

from llm_serp_tracker.scoring.answer_block import (
    ALLOWED_FLAGS,
    AnswerBlock,
    AnswerCitation,
    AnswerEntity,
    AnswerNotes,
    fallback_answer_block,
)
from llm_serp_tracker.scoring.coercer import coerce_to_answer_block
from llm_serp_tracker.scoring.deltas import QueryDelta, QueryRow, attach_deltas
from llm_serp_tracker.scoring.domain import is_brand_domain, normalize_domain
from llm_serp_tracker.scoring.evaluator import (
    EvaluatedAnswer,
    EvaluationContext,
    evaluate_answer,
)
from llm_serp_tracker.scoring.json_parser import parse_json_permissive
from llm_serp_tracker.scoring.pipeline import (
    PipelineResult,
    score_connector_failure,
    score_connector_output,
)
from llm_serp_tracker.scoring.scorer import (
    SCORE_WEIGHTS,
    AggregateScore,
    ScoreBreakdown,
    ScoredAnswer,
    aggregate_scores,
    score_answer,
)

__all__ = [
    "ALLOWED_FLAGS",
    "SCORE_WEIGHTS",
    "AggregateScore",
    "AnswerBlock",
    "AnswerCitation",
    "AnswerEntity",
    "AnswerNotes",
    "EvaluatedAnswer",
    "EvaluationContext",
    "PipelineResult",
    "QueryDelta",
    "QueryRow",
    "ScoreBreakdown",
    "ScoredAnswer",
    "aggregate_scores",
    "attach_deltas",
    "coerce_to_answer_block",
    "evaluate_answer",
    "fallback_answer_block",
    "is_brand_domain",
    "normalize_domain",
    "parse_json_permissive",
    "score_answer",
    "score_connector_failure",
    "score_connector_output",
]
