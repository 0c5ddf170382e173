"""
Claude surface connector.

Calls the Anthropic Messages API. Claude has no schema-enforced output mode
here, so the answer text is decoded permissively and any deviations are left
to the scoring pipeline's coercer.

Example:
    >>> connector = ClaudeConnector("claude-4.5", api_key="sk-ant-...")
    >>> result = await connector.invoke(context)
"""

import logging
from typing import Any

import httpx

from llm_serp_tracker.config.schema import Surface
from llm_serp_tracker.connectors.base import (
    ConnectorContext,
    ConnectorResult,
    decode_answer_text,
    extract_error_detail,
)
from llm_serp_tracker.connectors.prompts import SYSTEM_PROMPT, build_prompt
from llm_serp_tracker.connectors.retry_config import (
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    create_retry_decorator,
)
from llm_serp_tracker.exceptions import ConnectorError

logger = logging.getLogger(__name__)

ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1200


class ClaudeConnector:
    """
    Messages API connector.

    Attributes:
        model_name: Anthropic model identifier
        api_key: API key (NEVER logged)
        temperature: Sampling temperature
        max_tokens: Completion budget
        base_url: API base URL
    """

    surface = Surface.CLAUDE

    def __init__(
        self,
        model_name: str,
        api_key: str,
        temperature: float = 0.0,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        base_url: str | None = None,
    ):
        if not model_name or model_name.isspace():
            raise ValueError("model_name cannot be empty")

        if not api_key or api_key.isspace():
            raise ValueError("api_key cannot be empty")

        self.model_name = model_name
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.base_url = (base_url or ANTHROPIC_API_BASE).rstrip("/")

    def build_payload(self, context: ConnectorContext) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": build_prompt(context)}],
        }

    async def invoke(self, context: ConnectorContext) -> ConnectorResult:
        """
        Ask Claude for a structured answer to one query.

        Raises:
            ValueError: If the query text is empty
            ConnectorError: On non-retryable HTTP errors or answers without text
            httpx.HTTPStatusError: On retryable HTTP errors after retries
            httpx.ConnectError, httpx.TimeoutException: After retries
        """
        if not context.query_text or context.query_text.isspace():
            raise ValueError("query_text cannot be empty")

        data = await self._post(self.build_payload(context))

        warnings: list[str] = []
        if data.get("stop_reason") == "max_tokens":
            warnings.append(
                f"Answer truncated at max_tokens={self.max_tokens}; JSON may be incomplete"
            )

        text = self._extract_answer_text(data)

        logger.debug(
            f"Claude answer for query {context.query_id}: {len(text)} chars, "
            f"model={self.model_name}"
        )

        return ConnectorResult(answer=decode_answer_text(text), raw=data, warnings=warnings)

    @create_retry_decorator()
    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

        logger.debug(f"Sending request to Anthropic: model={self.model_name}")

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(
                    f"{self.base_url}/messages",
                    json=payload,
                    headers=headers,
                )

                if response.status_code in NO_RETRY_STATUS_CODES:
                    raise ConnectorError(
                        f"Anthropic API error (non-retryable): "
                        f"status={response.status_code}, "
                        f"model={self.model_name}, "
                        f"detail={extract_error_detail(response)}"
                    )

                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"Anthropic API HTTP error: status={e.response.status_code}, "
                f"model={self.model_name}, detail={extract_error_detail(e.response)}"
            )
            raise

        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.error(
                f"Anthropic API transport error: model={self.model_name}, "
                f"error={type(e).__name__}: {e}"
            )
            raise

        try:
            return response.json()
        except ValueError as e:
            raise ConnectorError(f"Failed to parse Anthropic response JSON: {e}") from e

    def _extract_answer_text(self, data: dict[str, Any]) -> str:
        """
        Join all text content blocks with newlines.

        Raises:
            ConnectorError: If the response has no text blocks
        """
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ConnectorError("Anthropic response missing 'content' array")

        texts = [
            block["text"]
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
        ]
        if not texts:
            raise ConnectorError(
                f"Anthropic returned no text content (stop_reason={data.get('stop_reason')})"
            )

        return "\n".join(texts)
