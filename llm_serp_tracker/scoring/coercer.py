"""
Coercion of arbitrary surface output into a valid AnswerBlock.

Surfaces are asked for one JSON shape but return many: entity lists under
"results" or "providers", names nested in a "provider" object, citations
hanging off each entity, flags at the top level. coerce_to_answer_block()
runs a fixed ladder and stops at the first success:

1. Direct validation: already a valid AnswerBlock, returned unchanged.
2. Entity repair (extract_entities)
3. Citation repair (extract_citations)
4. Summary and flag repair (extract_summary, extract_flags)
5. Final validation of the assembled object

Each step is a standalone function over plain JSON values (dict, list, str,
numbers) so it can be exercised on its own. The ladder never raises: the
result is either an AnswerBlock or None, and callers substitute
fallback_answer_block() for None.

Example:
    >>> block = coerce_to_answer_block({
    ...     "results": [{"provider": {"name": "Acme", "domain": ["acme.com"]}}],
    ...     "summary": "Acme is popular.",
    ... })
    >>> block.ordered_entities[0].rationale
    'Rationale not provided.'
"""

import logging
from typing import Any

from pydantic import ValidationError

from llm_serp_tracker.scoring.answer_block import (
    ALLOWED_FLAGS,
    AnswerBlock,
    is_absolute_url,
)

logger = logging.getLogger(__name__)

# Keys checked in order; the first one holding a non-empty list wins
ENTITY_LIST_KEYS = ("ordered_entities", "results", "providers", "entities")
NESTED_ENTITY_KEYS = ("provider", "entity")
RATIONALE_KEYS = ("rationale", "reason", "why")
CITATION_LIST_KEYS = ("citations", "sources")
SUMMARY_KEYS = ("answer_summary", "summary")

RATIONALE_PLACEHOLDER = "Rationale not provided."
SUMMARY_PLACEHOLDER = "No summary provided."


# ============================================================================
# Field extraction rules
# ============================================================================


def extract_string(value: Any) -> str | None:
    """
    Resolve a string from a scalar or a list of candidates.

    Returns the stripped string when value is a non-blank string, or the
    first non-blank string element when value is a list. Anything else
    resolves to None.

    Examples:
        >>> extract_string("  Acme ")
        'Acme'
        >>> extract_string(["", "acme.com", "acme.io"])
        'acme.com'
        >>> extract_string(42) is None
        True
    """
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None

    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()

    return None


def extract_positive_int(value: Any) -> int | None:
    """
    Return value as a positive integer, or None.

    Integral floats (2.0) are accepted since JSON producers emit them; bools
    and numeric strings are not.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, float) and value.is_integer() and value >= 1:
        return int(value)
    return None


def _field_from_item(item: dict[str, Any], key: str) -> str | None:
    """Look up key on the item itself, then one level down in a nested object."""
    resolved = extract_string(item.get(key))
    if resolved is not None:
        return resolved

    for nested_key in NESTED_ENTITY_KEYS:
        nested = item.get(nested_key)
        if isinstance(nested, dict):
            resolved = extract_string(nested.get(key))
            if resolved is not None:
                return resolved

    return None


def _first_list(data: dict[str, Any], keys: tuple[str, ...]) -> list[Any] | None:
    """First non-empty list under keys; an empty list only when no key holds items."""
    empty = None
    for key in keys:
        value = data.get(key)
        if isinstance(value, list):
            if value:
                return value
            if empty is None:
                empty = value
    return empty


# ============================================================================
# Repair ladder steps
# ============================================================================


def validate_answer_block(candidate: Any) -> AnswerBlock | None:
    """
    Validate candidate against the AnswerBlock schema without repairing it.

    Returns:
        The validated block, or None if candidate does not fit exactly.
    """
    if isinstance(candidate, AnswerBlock):
        return candidate

    if not isinstance(candidate, dict):
        return None

    try:
        return AnswerBlock.model_validate(candidate)
    except ValidationError:
        return None


def extract_entities(data: dict[str, Any]) -> list[dict[str, Any]] | None:
    """
    Rebuild the ordered entity list from any accepted entity key.

    Rules per item:
        - name/domain from the item or a nested "provider"/"entity" object;
          list values resolve to their first non-blank string
        - items without a resolvable name or domain are dropped
        - rationale falls back through "reason"/"why", then a placeholder
        - position falls back to the 1-based list index

    Each returned entity keeps its source item under "_source" so nested
    citations can be recovered by extract_citations(). The key is removed
    before final validation.

    Returns:
        Repaired entity dicts, or None when no entity list exists, the list
        is empty, or none of its items could be resolved.
    """
    items = _first_list(data, ENTITY_LIST_KEYS)
    if items is None:
        return None

    entities: list[dict[str, Any]] = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            continue

        name = _field_from_item(item, "name")
        domain = _field_from_item(item, "domain")
        if name is None or domain is None:
            logger.debug(f"Dropping entity #{index}: unresolved name or domain")
            continue

        rationale = None
        for key in RATIONALE_KEYS:
            rationale = _field_from_item(item, key)
            if rationale is not None:
                break

        position = extract_positive_int(item.get("position"))

        entities.append(
            {
                "name": name,
                "domain": domain,
                "rationale": rationale or RATIONALE_PLACEHOLDER,
                "position": position if position is not None else index,
                "_source": item,
            }
        )

    if not entities:
        return None

    return entities


def _repair_citation(item: Any, default_ref: str | None = None) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None

    url = extract_string(item.get("url"))
    domain = extract_string(item.get("domain"))
    if url is None or domain is None or not is_absolute_url(url):
        return None

    citation: dict[str, Any] = {"url": url, "domain": domain}
    entity_ref = item.get("entity_ref")
    if isinstance(entity_ref, str) and entity_ref:
        citation["entity_ref"] = entity_ref
    elif isinstance(entity_ref, int) and not isinstance(entity_ref, bool):
        citation["entity_ref"] = str(entity_ref)
    elif default_ref is not None:
        citation["entity_ref"] = default_ref

    return citation


def extract_citations(
    data: dict[str, Any], entities: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """
    Rebuild the citation list.

    A top-level "citations" (or "sources") list is used when present. When
    absent, citations nested under each repaired entity are flattened in
    entity order and tagged with that entity's position as entity_ref
    unless they name one themselves. Items without an absolute url and a
    domain are dropped.
    """
    top_level = _first_list(data, CITATION_LIST_KEYS)
    if top_level is not None:
        repaired = (_repair_citation(item) for item in top_level)
        return [citation for citation in repaired if citation is not None]

    citations: list[dict[str, Any]] = []
    for entity in entities:
        nested = _first_list(entity.get("_source", {}), CITATION_LIST_KEYS)
        if nested is None:
            continue
        default_ref = str(entity["position"])
        for item in nested:
            citation = _repair_citation(item, default_ref=default_ref)
            if citation is not None:
                citations.append(citation)

    return citations


def extract_summary(data: dict[str, Any]) -> str:
    """Return answer_summary, then summary, then a fixed placeholder.

    Blank strings are skipped.
    """
    for key in SUMMARY_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return SUMMARY_PLACEHOLDER


def extract_flags(data: dict[str, Any]) -> list[str]:
    """
    Read flags from notes.flags or a top-level "flags" list.

    Values outside the known flag set are silently dropped; order is kept
    and duplicates are removed.

    Example:
        >>> extract_flags({"flags": ["no_sources", "made_up", "no_sources"]})
        ['no_sources']
    """
    raw_flags = None
    notes = data.get("notes")
    if isinstance(notes, dict) and isinstance(notes.get("flags"), list):
        raw_flags = notes["flags"]
    elif isinstance(data.get("flags"), list):
        raw_flags = data["flags"]

    if raw_flags is None:
        return []

    flags: list[str] = []
    for flag in raw_flags:
        if isinstance(flag, str) and flag in ALLOWED_FLAGS and flag not in flags:
            flags.append(flag)
    return flags


# ============================================================================
# Public entry point
# ============================================================================


def coerce_to_answer_block(candidate: Any) -> AnswerBlock | None:
    """
    Produce a valid AnswerBlock from whatever JSON value a surface returned.

    Args:
        candidate: Decoded JSON value (usually a dict) or an AnswerBlock

    Returns:
        AnswerBlock, or None when nothing usable could be recovered. Never
        raises. An already-valid block is returned unchanged, so coercing
        twice yields identical output.

    Example:
        >>> coerce_to_answer_block("not an object") is None
        True
    """
    direct = validate_answer_block(candidate)
    if direct is not None:
        return direct

    if not isinstance(candidate, dict):
        logger.debug(f"Cannot coerce {type(candidate).__name__} into AnswerBlock")
        return None

    entities = extract_entities(candidate)
    if entities is None:
        logger.debug("Coercion failed: no usable entity list")
        return None

    citations = extract_citations(candidate, entities)

    assembled = {
        "ordered_entities": [
            {key: value for key, value in entity.items() if key != "_source"}
            for entity in entities
        ],
        "citations": citations,
        "answer_summary": extract_summary(candidate),
        "notes": {"flags": extract_flags(candidate)},
    }

    try:
        block = AnswerBlock.model_validate(assembled)
    except ValidationError as e:
        logger.debug(f"Coercion failed final validation: {e.error_count()} errors")
        return None

    logger.debug(
        f"Coerced AnswerBlock with {len(block.ordered_entities)} entities "
        f"and {len(block.citations)} citations"
    )
    return block
