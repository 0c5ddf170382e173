"""
Connector contract shared by every surface.

A connector takes one query plus the brand context, asks its surface for a
structured answer, and returns a ConnectorResult. The scoring pipeline only
depends on this contract, never on which surface produced the answer.

Example:
    >>> connector = build_connector(runtime_surface)
    >>> result = await connector.invoke(ConnectorContext(
    ...     query_id="best-dentist", query_text="Best dentist in Austin?",
    ...     brand_name="Acme Dental", brand_domains=["acmedental.com"],
    ...     competitors=["smileco.com"],
    ... ))
    >>> result.answer["ordered_entities"][0]["name"]
    'Acme Dental'
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from llm_serp_tracker.config.schema import Surface
from llm_serp_tracker.scoring.json_parser import parse_json_permissive


@dataclass(frozen=True)
class ConnectorContext:
    """Query and brand context sent to a surface."""

    query_id: str
    query_text: str
    brand_name: str
    brand_domains: list[str] = field(default_factory=list)
    competitors: list[str] = field(default_factory=list)


@dataclass
class ConnectorResult:
    """
    What a connector returns for one query.

    Attributes:
        answer: Decoded JSON object when the answer text parsed, otherwise the
            raw answer text. Either way the scoring pipeline coerces it.
        raw: Vendor response body, kept for diagnostics
        warnings: Non-fatal notes, e.g. sampling parameters that were dropped
    """

    answer: dict[str, Any] | str
    raw: dict[str, Any]
    warnings: list[str] = field(default_factory=list)


class Connector(Protocol):
    """
    Protocol implemented by every surface connector.

    Implementations raise ConnectorError (or let httpx errors propagate after
    retries) when no answer could be obtained.
    """

    surface: Surface
    model_name: str

    async def invoke(self, context: ConnectorContext) -> ConnectorResult:
        ...


def decode_answer_text(text: str) -> dict[str, Any] | str:
    """
    Best-effort decode of a surface's answer text.

    Returns the decoded object when the text holds a JSON object, otherwise
    the text itself so the scoring pipeline can record a parse failure.
    """
    decoded = parse_json_permissive(text)
    if isinstance(decoded, dict):
        return decoded
    return text


def extract_error_detail(response: httpx.Response) -> str:
    """
    Pull the vendor error message out of a failed response.

    Both supported vendors use {"error": {"message": ...}}. Never includes
    request headers, so API keys cannot leak into error messages.
    """
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"HTTP {response.status_code}"

    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"HTTP {response.status_code}"
