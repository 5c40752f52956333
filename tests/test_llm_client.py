"""Tests for guidepilot.llm_client: provider calls, response contract, failure taxonomy."""

import json

import httpx
import pytest

from guidepilot.config import AutopilotConfig
from guidepilot.llm_client import (
    PROVIDERS,
    LLMClient,
    LLMClientError,
    LLMErrorCategory,
    parse_decision,
    read_project_docs,
)


def _openai_reply(content: str, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"choices": [{"message": {"content": content}}]})
    return handler


def _client(config, handler) -> LLMClient:
    return LLMClient(config, transport=httpx.MockTransport(handler))


VALID = json.dumps({
    "shouldIntervene": True,
    "guidance": "Run the failing test alone",
    "confidence": 0.8,
    "reasoning": "Same failure three times",
})


class TestParseDecision:
    def test_valid_json(self):
        decision = parse_decision(VALID)
        assert decision.should_intervene is True
        assert decision.guidance == "Run the failing test alone"
        assert decision.confidence == 0.8

    def test_fenced_json(self):
        decision = parse_decision(f"Here you go:\n```json\n{VALID}\n```")
        assert decision.should_intervene is True

    def test_confidence_is_clamped(self):
        decision = parse_decision(json.dumps({
            "shouldIntervene": False, "confidence": 1.7, "reasoning": "sure",
        }))
        assert decision.confidence == 1.0

    def test_not_json_is_parse_error(self):
        with pytest.raises(LLMClientError) as exc:
            parse_decision("I think Claude is fine")
        assert exc.value.category == LLMErrorCategory.PARSE

    @pytest.mark.parametrize("missing", ["shouldIntervene", "confidence", "reasoning"])
    def test_missing_field_is_shape_error(self, missing):
        data = json.loads(VALID)
        del data[missing]
        with pytest.raises(LLMClientError) as exc:
            parse_decision(json.dumps(data))
        assert exc.value.category == LLMErrorCategory.INVALID_SHAPE


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_success_openai(self, config):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return _openai_reply(VALID)(request)

        client = _client(config, handler)
        decision = await client.analyze_claude_output("error: foo\nerror: foo")

        assert decision.should_intervene is True
        assert decision.confidence == 0.8
        assert decision.error_category is None
        assert seen["auth"] == "Bearer sk-test-openai"
        assert seen["body"]["model"] == "gpt-4.1"
        assert "error: foo" in seen["body"]["messages"][0]["content"]
        assert client.get_stats()["request_count"] == 1

    @pytest.mark.asyncio
    async def test_success_anthropic(self):
        config = AutopilotConfig(
            provider="anthropic", model="claude-4-sonnet", api_keys={"anthropic": "ak-test"}
        )

        def handler(request):
            assert request.headers["x-api-key"] == "ak-test"
            return httpx.Response(200, json={"content": [{"type": "text", "text": VALID}]})

        decision = await _client(config, handler).analyze_claude_output("output")
        assert decision.should_intervene is True

    @pytest.mark.asyncio
    async def test_invalid_json_is_non_intervening(self, config):
        client = _client(config, _openai_reply("not json at all"))
        decision = await client.analyze_claude_output("output")
        assert decision.should_intervene is False
        assert decision.confidence == 0
        assert "parsing error" in decision.reasoning
        assert client.last_error_category == LLMErrorCategory.PARSE
        assert decision.error_category == "parse"

    @pytest.mark.asyncio
    async def test_missing_fields_is_non_intervening(self, config):
        client = _client(config, _openai_reply(json.dumps({"shouldIntervene": True})))
        decision = await client.analyze_claude_output("output")
        assert decision.should_intervene is False
        assert decision.confidence == 0
        assert "invalid response format" in decision.reasoning

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,category,text",
        [
            (401, LLMErrorCategory.AUTHENTICATION, "Authentication error"),
            (429, LLMErrorCategory.RATE_LIMIT, "Rate limit exceeded"),
            (400, LLMErrorCategory.BAD_REQUEST, "Bad request"),
            (500, LLMErrorCategory.UNKNOWN, "Unexpected OpenAI API error"),
        ],
    )
    async def test_http_errors_are_categorized(self, config, status, category, text):
        client = _client(config, lambda request: httpx.Response(status, json={"error": "x"}))
        decision = await client.analyze_claude_output("output")
        assert decision.should_intervene is False
        assert text in decision.reasoning
        assert client.last_error_category == category
        assert decision.error_category == category.value

    @pytest.mark.asyncio
    async def test_network_error(self, config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(config, handler)
        decision = await client.analyze_claude_output("output")
        assert "Network error" in decision.reasoning
        assert client.last_error_category == LLMErrorCategory.NETWORK

    @pytest.mark.asyncio
    async def test_missing_key_never_calls_provider(self):
        def handler(request):
            raise AssertionError("provider must not be called")

        client = _client(AutopilotConfig(), handler)
        decision = await client.analyze_claude_output("output")
        assert decision.reasoning == "OpenAI API key not configured"
        assert client.is_available() is False
        assert decision.error_category == "authentication"

    @pytest.mark.asyncio
    async def test_unsupported_model(self, config):
        config.model = "gpt-2"
        decision = await _client(config, _openai_reply(VALID)).analyze_claude_output("output")
        assert decision.reasoning == "Unsupported model: gpt-2 for provider OpenAI"

    @pytest.mark.asyncio
    async def test_unknown_provider(self, config):
        config.provider = "cohere"
        decision = await _client(config, _openai_reply(VALID)).analyze_claude_output("output")
        assert decision.reasoning == "Unknown provider: cohere"


class TestPrompt:
    @pytest.mark.asyncio
    async def test_includes_guide_prompt_and_project_docs(self, config, tmp_path):
        (tmp_path / "CLAUDE.md").write_text("Always use pnpm.")
        (tmp_path / "README.md").write_text("x" * 5000)
        config.guide_prompt = "Prefer small commits"

        prompt = await LLMClient(config).build_analysis_prompt("output", str(tmp_path))

        assert "Always use pnpm." in prompt
        assert "Prefer small commits" in prompt
        assert '"shouldIntervene": boolean' in prompt

    def test_docs_are_truncated(self, tmp_path):
        (tmp_path / "README.md").write_text("x" * 5000)
        docs = read_project_docs(str(tmp_path))
        assert len(docs) == 1
        assert docs[0].endswith("...")
        assert len(docs[0]) < 2100


class TestProviders:
    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            PROVIDERS["other"] = PROVIDERS["openai"]

    def test_available_provider_keys(self, config):
        assert LLMClient.get_available_provider_keys(config) == ["openai"]
        assert LLMClient.has_any_provider_keys(AutopilotConfig()) is False

    def test_static_helpers_accept_a_registry(self, config):
        registry = {"openai": PROVIDERS["openai"]}
        config.api_keys["anthropic"] = "ak-test"
        assert LLMClient.get_available_provider_keys(config, registry) == ["openai"]
        assert LLMClient.is_provider_available("anthropic", config, registry) is False
        assert LLMClient.get_all_supported_models(registry) == [
            {"provider": "OpenAI", "models": list(PROVIDERS["openai"].models)}
        ]

    def test_available_providers_lists_models(self, config):
        providers = LLMClient(config).get_available_providers()
        openai = next(p for p in providers if p["name"] == "OpenAI")
        assert openai["available"] is True
        assert "gpt-4.1" in openai["models"]
