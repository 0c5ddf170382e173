"""
Tests for connectors.openai_connector module.

Tests cover:
- Initialization and validation
- Request payload: prompts, structured output schema, sampling overrides, seed
- Successful calls returning decoded answers or raw text
- Retry on 429/5xx, immediate failure on 401/400/404
- API key never appearing in logs
"""

import json
import logging

import httpx
import pytest
from tenacity import wait_none

from llm_serp_tracker.config.schema import Surface
from llm_serp_tracker.connectors.base import ConnectorContext
from llm_serp_tracker.connectors.openai_connector import (
    OPENAI_API_BASE,
    OpenAIConnector,
    supports_sampling_overrides,
)
from llm_serp_tracker.connectors.prompts import SYSTEM_PROMPT
from llm_serp_tracker.exceptions import ConnectorError

OPENAI_URL = f"{OPENAI_API_BASE}/chat/completions"


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    """Retry immediately instead of backing off."""
    monkeypatch.setattr(OpenAIConnector._post.retry, "wait", wait_none())


@pytest.fixture
def context():
    return ConnectorContext(
        query_id="best-dentist",
        query_text="Who is the best dentist in Austin?",
        brand_name="Acme Dental",
        brand_domains=["acmedental.com"],
        competitors=["smileco.com"],
    )


@pytest.fixture
def answer_block():
    return {
        "ordered_entities": [
            {"name": "Acme Dental", "domain": "acmedental.com", "rationale": "r", "position": 1}
        ],
        "citations": [
            {"url": "https://acmedental.com", "domain": "acmedental.com", "entity_ref": "1"}
        ],
        "answer_summary": "Acme Dental leads.",
        "notes": {"flags": []},
    }


def completion(content, refusal=None):
    return {
        "id": "chatcmpl-1",
        "choices": [
            {
                "message": {"role": "assistant", "content": content, "refusal": refusal},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
    }


class TestOpenAIConnectorInit:
    def test_init_success(self):
        connector = OpenAIConnector("gpt-4o-mini", "sk-test123")

        assert connector.surface == Surface.OPENAI
        assert connector.model_name == "gpt-4o-mini"
        assert connector.base_url == OPENAI_API_BASE

    def test_custom_base_url_trailing_slash(self):
        connector = OpenAIConnector("gpt-4o", "sk-test123", base_url="https://proxy.local/v1/")
        assert connector.base_url == "https://proxy.local/v1"

    @pytest.mark.parametrize(
        ("model", "key", "message"),
        [
            ("", "sk-test", "model_name cannot be empty"),
            ("gpt-4o", "   ", "api_key cannot be empty"),
        ],
    )
    def test_empty_arguments_rejected(self, model, key, message):
        with pytest.raises(ValueError, match=message):
            OpenAIConnector(model, key)


class TestBuildPayload:
    def test_prompts_and_schema(self, context):
        payload, warnings = OpenAIConnector("gpt-4o", "sk-test").build_payload(context)

        assert payload["model"] == "gpt-4o"
        assert payload["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        user_prompt = payload["messages"][1]["content"]
        assert "Query: Who is the best dentist in Austin?" in user_prompt
        assert "Brand domains: acmedental.com" in user_prompt
        assert "Competitors: smileco.com" in user_prompt
        assert payload["response_format"]["type"] == "json_schema"
        assert payload["response_format"]["json_schema"]["strict"] is True
        assert warnings == []

    def test_sampling_sent_for_supporting_models(self, context):
        connector = OpenAIConnector("gpt-4o", "sk-test", temperature=0.2, top_p=0.9, seed=42)
        payload, _ = connector.build_payload(context)

        assert payload["temperature"] == 0.2
        assert payload["top_p"] == 0.9
        assert payload["seed"] == 42

    def test_sampling_omitted_for_fixed_models(self, context):
        payload, warnings = OpenAIConnector("gpt-5", "sk-test").build_payload(context)

        assert "temperature" not in payload
        assert "top_p" not in payload
        assert "seed" not in payload
        assert warnings == []

    def test_warning_when_overrides_dropped(self, context):
        connector = OpenAIConnector("gpt-4.1-mini", "sk-test", temperature=0.7)
        payload, warnings = connector.build_payload(context)

        assert "temperature" not in payload
        assert len(warnings) == 1
        assert "does not accept sampling overrides" in warnings[0]

    def test_empty_lists_use_marker(self):
        context = ConnectorContext(query_id="q", query_text="Best?", brand_name="Acme")
        payload, _ = OpenAIConnector("gpt-4o", "sk-test").build_payload(context)

        assert "Brand domains: —" in payload["messages"][1]["content"]

    @pytest.mark.parametrize(
        ("model", "expected"),
        [("gpt-4o-mini", True), ("gpt-5", False), ("GPT-5-mini", False), ("gpt-4.1", False)],
    )
    def test_supports_sampling_overrides(self, model, expected):
        assert supports_sampling_overrides(model) is expected


class TestInvokeSuccess:
    @pytest.mark.asyncio
    async def test_json_answer_is_decoded(self, httpx_mock, context, answer_block):
        httpx_mock.add_response(
            method="POST", url=OPENAI_URL, json=completion(json.dumps(answer_block))
        )

        result = await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

        assert result.answer == answer_block
        assert result.raw["usage"]["total_tokens"] == 150
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_sends_auth_header_and_payload(self, httpx_mock, context, answer_block):
        httpx_mock.add_response(
            method="POST", url=OPENAI_URL, json=completion(json.dumps(answer_block))
        )

        await OpenAIConnector("gpt-4o-mini", "sk-test123", seed=7).invoke(context)

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer sk-test123"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["seed"] == 7

    @pytest.mark.asyncio
    async def test_prose_answer_passed_through_as_text(self, httpx_mock, context):
        httpx_mock.add_response(
            method="POST", url=OPENAI_URL, json=completion("I can't browse the web.")
        )

        result = await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

        assert result.answer == "I can't browse the web."

    @pytest.mark.asyncio
    async def test_refusal_adds_warning(self, httpx_mock, context):
        httpx_mock.add_response(
            method="POST", url=OPENAI_URL, json=completion(None, refusal="Not allowed")
        )

        result = await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

        assert result.answer == "Not allowed"
        assert result.warnings == ["Model refused: Not allowed"]

    @pytest.mark.asyncio
    async def test_empty_answer_raises(self, httpx_mock, context):
        httpx_mock.add_response(method="POST", url=OPENAI_URL, json=completion(""))

        with pytest.raises(ConnectorError, match="empty answer"):
            await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self):
        context = ConnectorContext(query_id="q", query_text=" ", brand_name="Acme")
        with pytest.raises(ValueError, match="query_text cannot be empty"):
            await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)


class TestNonRetryableErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    async def test_fails_immediately(self, httpx_mock, context, status):
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_URL,
            status_code=status,
            json={"error": {"message": "Incorrect API key provided"}},
        )

        with pytest.raises(ConnectorError, match="non-retryable") as exc_info:
            await OpenAIConnector("gpt-4o-mini", "sk-secret-key-1234567890").invoke(context)

        assert len(httpx_mock.get_requests()) == 1
        assert "Incorrect API key provided" in str(exc_info.value)
        assert "sk-secret-key-1234567890" not in str(exc_info.value)


class TestRetryableErrors:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, httpx_mock, context, answer_block):
        httpx_mock.add_response(method="POST", url=OPENAI_URL, status_code=429)
        httpx_mock.add_response(method="POST", url=OPENAI_URL, status_code=503)
        httpx_mock.add_response(
            method="POST", url=OPENAI_URL, json=completion(json.dumps(answer_block))
        )

        result = await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

        assert result.answer == answer_block
        assert len(httpx_mock.get_requests()) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, httpx_mock, context):
        for _ in range(3):
            httpx_mock.add_response(method="POST", url=OPENAI_URL, status_code=500)

        with pytest.raises(httpx.HTTPStatusError):
            await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

        assert len(httpx_mock.get_requests()) == 3

    @pytest.mark.asyncio
    async def test_retries_connection_errors(self, httpx_mock, context, answer_block):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        httpx_mock.add_response(
            method="POST", url=OPENAI_URL, json=completion(json.dumps(answer_block))
        )

        result = await OpenAIConnector("gpt-4o-mini", "sk-test123").invoke(context)

        assert result.answer == answer_block


@pytest.mark.asyncio
async def test_api_key_never_logged(httpx_mock, context, caplog):
    caplog.set_level(logging.DEBUG)
    httpx_mock.add_response(method="POST", url=OPENAI_URL, status_code=401, json={})

    with pytest.raises(ConnectorError):
        await OpenAIConnector("gpt-4o-mini", "sk-secret-key-1234567890").invoke(context)

    assert "sk-secret-key-1234567890" not in caplog.text
