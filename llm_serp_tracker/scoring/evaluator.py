"""
Brand presence signals for a coerced AnswerBlock.

evaluate_answer() turns an AnswerBlock plus the brand context into four raw
signals: presence, LLM rank, link rank and share of voice (SOV). It is a
pure function with no I/O, safe to call concurrently.
"""

import logging
from dataclasses import dataclass, field

from llm_serp_tracker.scoring.answer_block import AnswerBlock
from llm_serp_tracker.scoring.domain import is_brand_domain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """
    Brand identity a single answer is evaluated against.

    Attributes:
        brand_name: Brand display name, matched case-insensitively as a
            substring of entity names and the answer summary
        brand_domains: Domains owned by the brand
        competitors: Competitor domains or names (carried for connectors and
            reporting; not used in the score)

    Raises:
        ValueError: If brand_name is blank. An empty brand name would match
            every entity by substring.
    """

    brand_name: str
    brand_domains: tuple[str, ...] = field(default_factory=tuple)
    competitors: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.brand_name or not self.brand_name.strip():
            raise ValueError("brand_name cannot be empty")

        # Freeze list inputs so the context cannot change mid-evaluation
        object.__setattr__(self, "brand_domains", tuple(self.brand_domains))
        object.__setattr__(self, "competitors", tuple(self.competitors))


@dataclass
class EvaluatedAnswer:
    """
    Raw brand signals derived from one AnswerBlock.

    Attributes:
        presence: Brand is ranked, or named in the summary
        llm_rank: Recorded position of the first brand entity, or None
        link_rank: 1-based index of the first brand citation, or None
        sov: Fraction of citations on brand domains in [0, 1]; None when
            there are no citations at all ("no evidence" is not "zero share")
        flags: Quality flags copied from the answer notes
    """

    presence: bool
    llm_rank: int | None
    link_rank: int | None
    sov: float | None
    flags: list[str]


def find_llm_rank(answer: AnswerBlock, ctx: EvaluationContext) -> int | None:
    """
    Return the position of the first entity that is the brand.

    Entities are scanned in list order, not sorted by position. An entity
    matches when its normalized domain is a brand domain or its name
    contains the brand name (case-insensitive). The first match wins.
    """
    brand = ctx.brand_name.lower()
    brand_domains = list(ctx.brand_domains)

    for entity in answer.ordered_entities:
        if is_brand_domain(entity.domain, brand_domains) or brand in entity.name.lower():
            return entity.position

    return None


def find_link_rank(answer: AnswerBlock, ctx: EvaluationContext) -> int | None:
    """Return the 1-based list index of the first brand-domain citation."""
    brand_domains = list(ctx.brand_domains)

    for index, citation in enumerate(answer.citations, start=1):
        if is_brand_domain(citation.domain, brand_domains):
            return index

    return None


def compute_sov(answer: AnswerBlock, ctx: EvaluationContext) -> float | None:
    """
    Share of citations pointing at brand domains.

    Returns None (not 0.0) when the answer has no citations.
    """
    if not answer.citations:
        return None

    brand_domains = list(ctx.brand_domains)
    brand_count = sum(
        1 for citation in answer.citations if is_brand_domain(citation.domain, brand_domains)
    )
    return brand_count / len(answer.citations)


def evaluate_answer(answer: AnswerBlock, ctx: EvaluationContext) -> EvaluatedAnswer:
    """
    Compute presence, ranks and SOV for one answer.

    Presence is deliberately more permissive than rank: a brand named only
    in the prose summary is present but unranked.

    Example:
        >>> ctx = EvaluationContext("Acme Dental", ("acmedental.com",))
        >>> evaluated = evaluate_answer(answer, ctx)
        >>> evaluated.llm_rank, evaluated.link_rank, evaluated.sov
        (1, 1, 0.5)
    """
    llm_rank = find_llm_rank(answer, ctx)
    link_rank = find_link_rank(answer, ctx)
    sov = compute_sov(answer, ctx)

    presence = llm_rank is not None or ctx.brand_name.lower() in answer.answer_summary.lower()

    logger.debug(
        f"Evaluated answer for {ctx.brand_name!r}: presence={presence}, "
        f"llm_rank={llm_rank}, link_rank={link_rank}, sov={sov}"
    )

    return EvaluatedAnswer(
        presence=presence,
        llm_rank=llm_rank,
        link_rank=link_rank,
        sov=sov,
        flags=list(answer.notes.flags),
    )
