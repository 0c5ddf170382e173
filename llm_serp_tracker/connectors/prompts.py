"""
Prompt text and response schema shared by all surfaces.

Both surfaces receive the same system and user prompt so their answers stay
comparable; only the transport differs.
"""

from typing import Any, get_args

from llm_serp_tracker.connectors.base import ConnectorContext
from llm_serp_tracker.scoring.answer_block import AnswerFlag

SYSTEM_PROMPT = "You are a precise GEO audit assistant. Output strict JSON only."

EMPTY_LIST_MARKER = "—"


def build_prompt(context: ConnectorContext) -> str:
    """
    Build the user prompt for one query.

    Example:
        >>> print(build_prompt(ctx).splitlines()[1])
        Query: Best dentist in Austin?
    """
    domains = ", ".join(context.brand_domains) or EMPTY_LIST_MARKER
    competitors = ", ".join(context.competitors) or EMPTY_LIST_MARKER

    return "\n".join(
        [
            "Task: Perform a GEO audit for the following query and return ONLY "
            "the JSON object matching the schema.",
            f"Query: {context.query_text}",
            f"Brand: {context.brand_name}",
            f"Brand domains: {domains}",
            f"Competitors: {competitors}",
            "Requirements:",
            "- Produce an ordered list of providers/brands relevant to the query "
            "(name, domain, rationale, position starting at 1).",
            "- Include citations with absolute URLs and their domains.",
            "- Summarize the answer in 1-2 sentences.",
            '- If no grounded sources are available, set notes.flags to include "no_sources".',
            "Output: Return ONLY the JSON object, no markdown, no explanations.",
        ]
    )


# JSON Schema for OpenAI structured outputs. Strict mode requires every
# property to be listed as required, so entity_ref is always present here.
ANSWER_BLOCK_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["ordered_entities", "citations", "answer_summary", "notes"],
    "additionalProperties": False,
    "properties": {
        "ordered_entities": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name", "domain", "rationale", "position"],
                "additionalProperties": False,
                "properties": {
                    "name": {"type": "string"},
                    "domain": {"type": "string"},
                    "rationale": {"type": "string"},
                    "position": {"type": "integer"},
                },
            },
        },
        "citations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["url", "domain", "entity_ref"],
                "additionalProperties": False,
                "properties": {
                    "url": {"type": "string"},
                    "domain": {"type": "string"},
                    "entity_ref": {"type": "string"},
                },
            },
        },
        "answer_summary": {"type": "string"},
        "notes": {
            "type": "object",
            "required": ["flags"],
            "additionalProperties": False,
            "properties": {
                "flags": {
                    "type": "array",
                    "items": {"type": "string", "enum": list(get_args(AnswerFlag))},
                }
            },
        },
    },
}
