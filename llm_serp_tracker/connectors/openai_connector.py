"""
OpenAI surface connector.

Calls the Chat Completions API with a strict JSON Schema response format so
the model answers directly in AnswerBlock shape.

Key features:
- Async HTTP client (httpx.AsyncClient) for concurrent queries
- Retry on 429/5xx and network errors with exponential backoff
- Fail fast on 400/401/403/404
- Sampling overrides omitted for models that reject them (gpt-5, gpt-4.1)
- Security: API keys only ever appear in the Authorization header

Example:
    >>> connector = OpenAIConnector("gpt-5", api_key="sk-...")
    >>> result = await connector.invoke(context)
    >>> result.answer["answer_summary"]
    'Acme Dental is the most recommended clinic.'
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
from llm_serp_tracker.connectors.prompts import (
    ANSWER_BLOCK_JSON_SCHEMA,
    SYSTEM_PROMPT,
    build_prompt,
)
from llm_serp_tracker.connectors.retry_config import (
    NO_RETRY_STATUS_CODES,
    REQUEST_TIMEOUT,
    create_retry_decorator,
)
from llm_serp_tracker.exceptions import ConnectorError

logger = logging.getLogger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"

# Model families that reject temperature/top_p overrides
FIXED_SAMPLING_MODEL_PREFIXES = ("gpt-5", "gpt-4.1")


def supports_sampling_overrides(model_name: str) -> bool:
    """
    Check whether a model accepts temperature and top_p.

    Examples:
        >>> supports_sampling_overrides("gpt-4o-mini")
        True
        >>> supports_sampling_overrides("gpt-5-mini")
        False
    """
    return not model_name.lower().startswith(FIXED_SAMPLING_MODEL_PREFIXES)


class OpenAIConnector:
    """
    Chat Completions connector with structured outputs.

    Attributes:
        model_name: OpenAI model identifier (e.g., "gpt-5", "gpt-4o")
        api_key: API key (NEVER logged)
        temperature: Sampling temperature, sent only when supported
        top_p: Nucleus sampling, sent only when supported
        seed: Optional sampling seed
        base_url: API base URL
    """

    surface = Surface.OPENAI

    def __init__(
        self,
        model_name: str,
        api_key: str,
        temperature: float = 0.0,
        top_p: float = 1.0,
        seed: int | None = None,
        base_url: str | None = None,
    ):
        if not model_name or model_name.isspace():
            raise ValueError("model_name cannot be empty")

        if not api_key or api_key.isspace():
            raise ValueError("api_key cannot be empty")

        self.model_name = model_name
        self.api_key = api_key
        self.temperature = temperature
        self.top_p = top_p
        self.seed = seed
        self.base_url = (base_url or OPENAI_API_BASE).rstrip("/")

    def build_payload(self, context: ConnectorContext) -> tuple[dict[str, Any], list[str]]:
        """
        Build the request body and any warnings about dropped parameters.

        Returns:
            (payload, warnings)
        """
        warnings: list[str] = []
        payload: dict[str, Any] = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(context)},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "answer_block",
                    "strict": True,
                    "schema": ANSWER_BLOCK_JSON_SCHEMA,
                },
            },
        }

        if supports_sampling_overrides(self.model_name):
            payload["temperature"] = self.temperature
            payload["top_p"] = self.top_p
        elif self.temperature != 0.0 or self.top_p != 1.0:
            warnings.append(
                f"{self.model_name} does not accept sampling overrides; "
                f"temperature={self.temperature} and top_p={self.top_p} were not sent"
            )

        if self.seed is not None:
            payload["seed"] = self.seed

        return payload, warnings

    async def invoke(self, context: ConnectorContext) -> ConnectorResult:
        """
        Ask OpenAI for a structured answer to one query.

        Raises:
            ValueError: If the query text is empty
            ConnectorError: On non-retryable HTTP errors or empty answers
            httpx.HTTPStatusError: On retryable HTTP errors after retries
            httpx.ConnectError, httpx.TimeoutException: After retries
        """
        if not context.query_text or context.query_text.isspace():
            raise ValueError("query_text cannot be empty")

        payload, warnings = self.build_payload(context)
        data = await self._post(payload)

        text, refusal = self._extract_answer_text(data)
        if refusal:
            warnings.append(f"Model refused: {refusal}")

        logger.debug(
            f"OpenAI answer for query {context.query_id}: {len(text)} chars, "
            f"model={self.model_name}"
        )

        return ConnectorResult(answer=decode_answer_text(text), raw=data, warnings=warnings)

    @create_retry_decorator()
    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.debug(f"Sending request to OpenAI: model={self.model_name}")

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )

                if response.status_code in NO_RETRY_STATUS_CODES:
                    raise ConnectorError(
                        f"OpenAI API error (non-retryable): "
                        f"status={response.status_code}, "
                        f"model={self.model_name}, "
                        f"detail={extract_error_detail(response)}"
                    )

                # Retryable statuses (429, 5xx) raise here and are retried
                response.raise_for_status()

        except httpx.HTTPStatusError as e:
            logger.error(
                f"OpenAI API HTTP error: status={e.response.status_code}, "
                f"model={self.model_name}, detail={extract_error_detail(e.response)}"
            )
            raise

        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.error(
                f"OpenAI API transport error: model={self.model_name}, "
                f"error={type(e).__name__}: {e}"
            )
            raise

        try:
            return response.json()
        except ValueError as e:
            raise ConnectorError(f"Failed to parse OpenAI response JSON: {e}") from e

    def _extract_answer_text(self, data: dict[str, Any]) -> tuple[str, str | None]:
        """
        Return (content, refusal) from the first choice.

        Raises:
            ConnectorError: If the response has neither content nor a refusal
        """
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ConnectorError(f"Invalid OpenAI response structure: {e}") from e

        content = message.get("content") or ""
        refusal = message.get("refusal")

        if not content and not refusal:
            raise ConnectorError(
                f"OpenAI returned an empty answer (finish_reason="
                f"{data['choices'][0].get('finish_reason')})"
            )

        return content or refusal, refusal
