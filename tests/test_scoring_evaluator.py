"""
Tests for scoring.evaluator module.

Tests cover:
- EvaluationContext validation
- LLM rank: domain or name match, first match in list order, recorded position
- Link rank: 1-based citation index
- Share of voice, including None for answers without citations
- Presence via ranked entity or summary mention
"""

import pytest

from llm_serp_tracker.scoring.answer_block import AnswerBlock, fallback_answer_block
from llm_serp_tracker.scoring.evaluator import (
    EvaluationContext,
    compute_sov,
    evaluate_answer,
    find_link_rank,
    find_llm_rank,
)


def make_block(entities=(), citations=(), summary="", flags=()):
    return AnswerBlock.model_validate(
        {
            "ordered_entities": [
                {"name": name, "domain": domain, "rationale": "r", "position": position}
                for name, domain, position in entities
            ],
            "citations": [{"url": f"https://{domain}/", "domain": domain} for domain in citations],
            "answer_summary": summary,
            "notes": {"flags": list(flags)},
        }
    )


@pytest.fixture
def ctx():
    return EvaluationContext(
        brand_name="Acme Dental",
        brand_domains=["acmedental.com"],
        competitors=["smileco.com"],
    )


class TestEvaluationContext:
    def test_lists_are_frozen_to_tuples(self, ctx):
        assert ctx.brand_domains == ("acmedental.com",)
        assert ctx.competitors == ("smileco.com",)

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_brand_name_rejected(self, name):
        with pytest.raises(ValueError, match="brand_name cannot be empty"):
            EvaluationContext(brand_name=name)


class TestLlmRank:
    def test_matches_by_domain(self, ctx):
        block = make_block(entities=[("Smile Co", "smileco.com", 1), ("Clinic", "www.acmedental.com", 2)])
        assert find_llm_rank(block, ctx) == 2

    def test_matches_by_name_substring_case_insensitive(self, ctx):
        block = make_block(entities=[("ACME DENTAL Austin", "other.com", 4)])
        assert find_llm_rank(block, ctx) == 4

    def test_uses_recorded_position_not_index(self, ctx):
        block = make_block(entities=[("Acme Dental", "acmedental.com", 7)])
        assert find_llm_rank(block, ctx) == 7

    def test_first_match_in_list_order_wins(self, ctx):
        block = make_block(
            entities=[("Acme Dental North", "acmedental.com", 5), ("Acme Dental", "acmedental.com", 1)]
        )
        assert find_llm_rank(block, ctx) == 5

    def test_no_match(self, ctx):
        block = make_block(entities=[("Smile Co", "smileco.com", 1)])
        assert find_llm_rank(block, ctx) is None

    def test_no_domains_still_matches_by_name(self):
        ctx = EvaluationContext(brand_name="Acme")
        block = make_block(entities=[("Acme", "acme.com", 1)])
        assert find_llm_rank(block, ctx) == 1


class TestLinkRankAndSov:
    def test_link_rank_is_citation_index(self, ctx):
        block = make_block(citations=["yelp.com", "smileco.com", "acmedental.com"])
        assert find_link_rank(block, ctx) == 3

    def test_link_rank_none_without_brand_citation(self, ctx):
        assert find_link_rank(make_block(citations=["yelp.com"]), ctx) is None

    def test_sov_fraction(self, ctx):
        block = make_block(citations=["acmedental.com", "smileco.com", "acmedental.com", "yelp.com"])
        assert compute_sov(block, ctx) == pytest.approx(0.5)

    def test_sov_zero_with_only_competitor_citations(self, ctx):
        assert compute_sov(make_block(citations=["smileco.com"]), ctx) == 0.0

    def test_sov_none_without_citations(self, ctx):
        assert compute_sov(make_block(), ctx) is None


class TestEvaluateAnswer:
    def test_end_to_end_signals(self, ctx):
        block = make_block(
            entities=[("Acme Dental", "acmedental.com", 1)],
            citations=["acmedental.com", "smileco.com"],
        )
        evaluated = evaluate_answer(block, ctx)

        assert evaluated.presence is True
        assert evaluated.llm_rank == 1
        assert evaluated.link_rank == 1
        assert evaluated.sov == pytest.approx(0.5)
        assert evaluated.flags == []

    def test_presence_from_summary_only(self, ctx):
        block = make_block(entities=[("Smile Co", "smileco.com", 1)], summary="Acme dental is also an option.")
        evaluated = evaluate_answer(block, ctx)

        assert evaluated.presence is True
        assert evaluated.llm_rank is None

    def test_brand_citation_alone_is_not_presence(self, ctx):
        block = make_block(citations=["acmedental.com"], summary="See the links.")
        evaluated = evaluate_answer(block, ctx)

        assert evaluated.presence is False
        assert evaluated.link_rank == 1

    def test_fallback_block(self, ctx):
        evaluated = evaluate_answer(fallback_answer_block(), ctx)

        assert evaluated.presence is False
        assert evaluated.llm_rank is None
        assert evaluated.link_rank is None
        assert evaluated.sov is None
        assert evaluated.flags == ["no_sources"]
