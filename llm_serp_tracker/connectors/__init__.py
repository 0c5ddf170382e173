"""
Surface connectors for LLM SERP Tracker.

build_connector() maps a resolved surface configuration to the connector
that speaks to it. Callers depend on the Connector protocol only.
"""

from llm_serp_tracker.config.schema import RuntimeSurface, Surface
from llm_serp_tracker.connectors.base import (
    Connector,
    ConnectorContext,
    ConnectorResult,
)
from llm_serp_tracker.connectors.claude_connector import ClaudeConnector
from llm_serp_tracker.connectors.openai_connector import OpenAIConnector


def build_connector(settings: RuntimeSurface) -> Connector:
    """
    Create the connector for a resolved surface.

    Args:
        settings: RuntimeSurface from config.loader

    Returns:
        Connector instance for settings.surface

    Raises:
        ValueError: If the surface has no connector
    """
    if settings.surface == Surface.OPENAI:
        return OpenAIConnector(
            model_name=settings.model_name,
            api_key=settings.api_key,
            temperature=settings.temperature,
            top_p=settings.top_p,
            seed=settings.seed,
            base_url=settings.base_url,
        )

    if settings.surface == Surface.CLAUDE:
        return ClaudeConnector(
            model_name=settings.model_name,
            api_key=settings.api_key,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            base_url=settings.base_url,
        )

    raise ValueError(f"Unsupported surface: {settings.surface}")


__all__ = [
    "ClaudeConnector",
    "Connector",
    "ConnectorContext",
    "ConnectorResult",
    "OpenAIConnector",
    "build_connector",
]
