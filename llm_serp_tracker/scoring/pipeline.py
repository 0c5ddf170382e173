"""
From connector output to a ScoredAnswer.

Connectors hand back either decoded JSON or raw answer text. This module
chains the permissive parser, the coercer and the scorer, and applies the
fallback rule: when nothing structured can be recovered the query is still
scored, from fallback_answer_block().

When that happens the scored flags also carry the internal marker
"parse_failed". The AnswerBlock and the score are the same as for a surface
that genuinely reported no sources; the marker only lets stored rows tell
the two cases apart.
"""

import logging
from dataclasses import dataclass
from typing import Any

from llm_serp_tracker.scoring.answer_block import AnswerBlock, fallback_answer_block
from llm_serp_tracker.scoring.coercer import coerce_to_answer_block
from llm_serp_tracker.scoring.evaluator import EvaluationContext
from llm_serp_tracker.scoring.json_parser import parse_json_permissive
from llm_serp_tracker.scoring.scorer import ScoredAnswer, score_answer

logger = logging.getLogger(__name__)

PARSE_FAILED_FLAG = "parse_failed"
CONNECTOR_ERROR_FLAG = "connector_error"


@dataclass
class PipelineResult:
    """
    Outcome of scoring one connector payload.

    Attributes:
        answer: The AnswerBlock that was scored (coerced or fallback)
        scored: Evaluation signals, score and breakdown
        parse_failed: True when the fallback block was substituted
    """

    answer: AnswerBlock
    scored: ScoredAnswer
    parse_failed: bool = False


def add_internal_flag(scored: ScoredAnswer, flag: str) -> ScoredAnswer:
    """Append an internal (non-AnswerBlock) flag once, after scoring."""
    if flag not in scored.flags:
        scored.flags = [*scored.flags, flag]
    return scored


def resolve_answer_block(payload: Any) -> AnswerBlock | None:
    """
    Turn a connector payload into an AnswerBlock, or None.

    Strings go through parse_json_permissive() first; everything else is
    handed to the coercer as is.
    """
    candidate = payload
    if isinstance(payload, str):
        candidate = parse_json_permissive(payload)
        if candidate is None:
            return None

    return coerce_to_answer_block(candidate)


def score_connector_output(payload: Any, ctx: EvaluationContext) -> PipelineResult:
    """
    Parse, coerce and score a connector payload. Never skips scoring.

    Args:
        payload: ConnectorResult.answer (dict, str, or AnswerBlock)
        ctx: Brand context for the query

    Returns:
        PipelineResult with the scored answer

    Example:
        >>> result = score_connector_output("I can't help with that.", ctx)
        >>> result.answer.notes.flags
        ['no_sources']
        >>> result.scored.flags
        ['no_sources', 'parse_failed']
    """
    block = resolve_answer_block(payload)
    if block is not None:
        return PipelineResult(answer=block, scored=score_answer(block, ctx))

    logger.warning(
        f"No structured answer recovered for brand {ctx.brand_name!r}; "
        "scoring fallback answer"
    )
    fallback = fallback_answer_block()
    scored = add_internal_flag(score_answer(fallback, ctx), PARSE_FAILED_FLAG)
    return PipelineResult(answer=fallback, scored=scored, parse_failed=True)


def score_connector_failure(ctx: EvaluationContext) -> PipelineResult:
    """Score the "Connector error" fallback for a query whose connector raised."""
    fallback = fallback_answer_block("Connector error")
    scored = add_internal_flag(score_answer(fallback, ctx), CONNECTOR_ERROR_FLAG)
    return PipelineResult(answer=fallback, scored=scored, parse_failed=False)
