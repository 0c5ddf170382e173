"""
AnswerBlock: the structured claim extracted from one surface response.

Every AnswerBlock that reaches the evaluator has passed these models'
validation, whether it came straight from a surface, from the coercer's
repair ladder, or from fallback_answer_block(). Unknown keys are rejected
(extra="forbid") so a block is never partially coerced.

Models:
    AnswerEntity: Ranked provider/brand named by the surface
    AnswerCitation: Evidentiary link, order = perceived prominence
    AnswerNotes: Quality flags
    AnswerBlock: Root model
"""

from typing import Any, Literal, get_args
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

AnswerFlag = Literal[
    "no_sources",
    "possible_hallucination",
    "outdated_info",
    "nap_mismatch",
    "conflicting_prices",
]

ALLOWED_FLAGS: frozenset[str] = frozenset(get_args(AnswerFlag))

NO_SOURCES_SUMMARY = "No structured sources returned"


class AnswerEntity(BaseModel):
    """
    One entity in the surface's ordered recommendation list.

    Attributes:
        name: Display name, e.g. "Acme Dental"
        domain: Domain or URL the surface associated with the entity
        rationale: Why the surface listed it
        position: 1-based rank as reported by the surface. May disagree with
            the list index; the evaluator trusts this value.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    domain: str = Field(min_length=1)
    rationale: str = Field(min_length=1)
    position: int = Field(ge=1)

    @field_validator("position", mode="before")
    @classmethod
    def validate_position_is_integer(cls, v: Any) -> Any:
        """Reject bools, floats and numeric strings instead of casting them."""
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError(f"position must be an integer, got {type(v).__name__}")
        return v


class AnswerCitation(BaseModel):
    """
    A link the surface offered as evidence.

    Attributes:
        url: Absolute URL (scheme and host required)
        domain: Domain the citation belongs to
        entity_ref: Optional reference to an entity, usually its position
    """

    model_config = ConfigDict(extra="forbid")

    url: str
    domain: str = Field(min_length=1)
    entity_ref: str | None = None

    @field_validator("url")
    @classmethod
    def validate_absolute_url(cls, v: str) -> str:
        """Require an absolute URL without rewriting it."""
        if not is_absolute_url(v):
            raise ValueError(f"url must be absolute, got {v!r}")
        return v


class AnswerNotes(BaseModel):
    """Quality flags attached by the surface."""

    model_config = ConfigDict(extra="forbid")

    flags: list[AnswerFlag] = Field(default_factory=list)


class AnswerBlock(BaseModel):
    """
    Canonical structured answer for one (query, run) pair.

    Example:
        >>> block = AnswerBlock.model_validate({
        ...     "ordered_entities": [
        ...         {"name": "Acme Dental", "domain": "acmedental.com",
        ...          "rationale": "Top rated", "position": 1}
        ...     ],
        ...     "citations": [
        ...         {"url": "https://acmedental.com", "domain": "acmedental.com"}
        ...     ],
        ...     "answer_summary": "Acme Dental leads.",
        ... })
        >>> block.notes.flags
        []
    """

    model_config = ConfigDict(extra="forbid")

    ordered_entities: list[AnswerEntity]
    citations: list[AnswerCitation]
    answer_summary: str
    notes: AnswerNotes = Field(default_factory=AnswerNotes)

    def to_payload(self) -> dict[str, Any]:
        """
        Serialize to a plain JSON-compatible dict.

        Omits unset entity_ref values so the payload validates back into an
        identical block.
        """
        return self.model_dump(mode="json", exclude_none=True)


def is_absolute_url(value: str) -> bool:
    """
    Check that value has both a scheme and a network location.

    Examples:
        >>> is_absolute_url("https://acme.com/about")
        True
        >>> is_absolute_url("acme.com/about")
        False
    """
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def fallback_answer_block(summary: str = NO_SOURCES_SUMMARY) -> AnswerBlock:
    """
    Build the canonical empty AnswerBlock used when no structure is usable.

    Callers substitute it when coercion fails or a connector errors, so
    scoring still runs for every query.

    Args:
        summary: Explanatory placeholder, e.g. "Connector error"

    Returns:
        AnswerBlock with no entities, no citations and flags ["no_sources"]
    """
    return AnswerBlock(
        ordered_entities=[],
        citations=[],
        answer_summary=summary,
        notes=AnswerNotes(flags=["no_sources"]),
    )
