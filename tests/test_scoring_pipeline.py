"""
Tests for scoring.pipeline module.

Tests cover:
- Decoded dict payloads and raw text payloads
- Fallback scoring when nothing structured can be recovered
- Internal parse_failed / connector_error markers on scored flags
"""

import json
import logging

import pytest

from llm_serp_tracker.scoring.answer_block import NO_SOURCES_SUMMARY, AnswerBlock
from llm_serp_tracker.scoring.evaluator import EvaluationContext
from llm_serp_tracker.scoring.pipeline import (
    CONNECTOR_ERROR_FLAG,
    PARSE_FAILED_FLAG,
    resolve_answer_block,
    score_connector_failure,
    score_connector_output,
)


@pytest.fixture
def ctx():
    return EvaluationContext(brand_name="Acme Dental", brand_domains=["acmedental.com"])


@pytest.fixture
def answer_dict():
    return {
        "ordered_entities": [
            {"name": "Acme Dental", "domain": "acmedental.com", "rationale": "r", "position": 1}
        ],
        "citations": [
            {"url": "https://acmedental.com", "domain": "acmedental.com"},
            {"url": "https://smileco.com", "domain": "smileco.com"},
        ],
        "answer_summary": "Acme Dental leads.",
        "notes": {"flags": []},
    }


def test_dict_payload(ctx, answer_dict):
    result = score_connector_output(answer_dict, ctx)

    assert result.parse_failed is False
    assert result.scored.score == pytest.approx(95.0)
    assert result.scored.flags == []


def test_fenced_text_payload(ctx, answer_dict):
    text = f"Here is the JSON:\n```json\n{json.dumps(answer_dict)}\n```"
    result = score_connector_output(text, ctx)

    assert result.parse_failed is False
    assert result.answer.ordered_entities[0].name == "Acme Dental"


def test_answer_block_payload(ctx, answer_dict):
    block = AnswerBlock.model_validate(answer_dict)
    assert score_connector_output(block, ctx).answer is block


def test_unparseable_text_scores_fallback(ctx, caplog):
    caplog.set_level(logging.WARNING)

    result = score_connector_output("I can't help with that.", ctx)

    assert result.parse_failed is True
    assert result.answer.answer_summary == NO_SOURCES_SUMMARY
    assert result.answer.notes.flags == ["no_sources"]
    assert result.scored.flags == ["no_sources", PARSE_FAILED_FLAG]
    assert result.scored.score == pytest.approx(2.5)
    assert "fallback" in caplog.text


def test_uncoercible_dict_scores_fallback(ctx):
    result = score_connector_output({"answer_summary": "Acme Dental is great"}, ctx)

    assert result.parse_failed is True
    # Summary of the rejected payload is not used for presence
    assert result.scored.presence is False


def test_empty_alternate_entity_list_scores_fallback(ctx):
    result = score_connector_output({"results": [], "summary": "Nothing found"}, ctx)

    assert result.parse_failed is True
    assert result.answer.notes.flags == ["no_sources"]
    assert result.scored.breakdown.accuracy == pytest.approx(25.0)
    assert result.scored.score == pytest.approx(2.5)


def test_brand_in_alternate_summary_counts_as_presence(ctx):
    result = score_connector_output(
        {
            "results": [{"name": "SmileCo", "domain": "smileco.com"}],
            "answer_summary": "   ",
            "summary": "Acme Dental leads",
        },
        ctx,
    )

    assert result.answer.answer_summary == "Acme Dental leads"
    assert result.scored.presence is True
    assert result.scored.llm_rank is None

def test_parse_failure_scores_like_no_sources(ctx):
    """Same score as a surface that genuinely reported no sources."""
    failed = score_connector_output("garbage", ctx)
    no_sources = score_connector_output(
        {
            "ordered_entities": [],
            "citations": [],
            "answer_summary": NO_SOURCES_SUMMARY,
            "notes": {"flags": ["no_sources"]},
        },
        ctx,
    )

    assert failed.scored.score == no_sources.scored.score
    assert no_sources.scored.flags == ["no_sources"]


def test_connector_failure(ctx):
    result = score_connector_failure(ctx)

    assert result.answer.answer_summary == "Connector error"
    assert result.scored.flags == ["no_sources", CONNECTOR_ERROR_FLAG]
    assert result.parse_failed is False


def test_resolve_answer_block_returns_none_for_json_array():
    assert resolve_answer_block("[1, 2, 3]") is None
