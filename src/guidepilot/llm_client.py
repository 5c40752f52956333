"""LLM client: one call surface over the hosted model providers.

Every failure (missing key, unsupported model, HTTP error, timeout,
unparseable or mis-shaped response) comes back as a non-intervening
``AutopilotDecision`` with confidence 0 and a categorized reasoning string.
Nothing raises to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

import httpx

from guidepilot.config import AutopilotConfig
from guidepilot.models import AutopilotDecision

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0  # seconds
TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 1024

PROJECT_DOC_FILES = ("CLAUDE.md", "README.md", "package.json")
PROJECT_DOC_MAX_CHARS = 2000

ANTHROPIC_VERSION = "2023-06-01"

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


class LLMErrorCategory(Enum):
    """Failure taxonomy for provider calls."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    PARSE = "parse"
    INVALID_SHAPE = "invalid_shape"
    BAD_REQUEST = "bad_request"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


class LLMClientError(Exception):
    """Internal error carrying its category; converted to a decision before returning."""

    def __init__(self, category: LLMErrorCategory, message: str):
        super().__init__(message)
        self.category = category


def _openai_request(model: str, api_key: str, prompt: str) -> tuple[dict, dict]:
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    body = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": TEMPERATURE,
    }
    return headers, body


def _openai_text(data: dict) -> str:
    return data["choices"][0]["message"]["content"]


def _anthropic_request(model: str, api_key: str, prompt: str) -> tuple[dict, dict]:
    headers = {
        "x-api-key": api_key,
        "anthropic-version": ANTHROPIC_VERSION,
        "Content-Type": "application/json",
    }
    body = {
        "model": model,
        "max_tokens": MAX_OUTPUT_TOKENS,
        "temperature": TEMPERATURE,
        "messages": [{"role": "user", "content": prompt}],
    }
    return headers, body


def _anthropic_text(data: dict) -> str:
    return "".join(block["text"] for block in data["content"] if block.get("type") == "text")


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    models: tuple[str, ...]
    endpoint: str
    build_request: Callable[[str, str, str], tuple[dict, dict]]
    extract_text: Callable[[dict], str]


PROVIDERS: Mapping[str, ProviderInfo] = MappingProxyType({
    "openai": ProviderInfo(
        name="OpenAI",
        models=("gpt-4.1", "o4-mini", "o3"),
        endpoint="https://api.openai.com/v1/chat/completions",
        build_request=_openai_request,
        extract_text=_openai_text,
    ),
    "anthropic": ProviderInfo(
        name="Anthropic",
        models=("claude-4-sonnet", "claude-4-opus"),
        endpoint="https://api.anthropic.com/v1/messages",
        build_request=_anthropic_request,
        extract_text=_anthropic_text,
    ),
})


def parse_decision(text: str) -> AutopilotDecision:
    """Parse and validate the strict JSON contract.

    Raises LLMClientError(PARSE) for non-JSON and
    LLMClientError(INVALID_SHAPE) for JSON of the wrong shape.
    """
    candidate = text.strip()
    fenced = _FENCED_JSON.search(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise LLMClientError(LLMErrorCategory.PARSE, f"JSON parsing failed: {e}") from e

    if not isinstance(data, dict):
        raise LLMClientError(
            LLMErrorCategory.INVALID_SHAPE, "Invalid response structure from LLM: not an object"
        )

    should_intervene = data.get("shouldIntervene")
    confidence = data.get("confidence")
    reasoning = data.get("reasoning")
    guidance = data.get("guidance")

    if (
        not isinstance(should_intervene, bool)
        or isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
        or not isinstance(reasoning, str)
        or (guidance is not None and not isinstance(guidance, str))
    ):
        raise LLMClientError(
            LLMErrorCategory.INVALID_SHAPE, "Invalid response structure from LLM"
        )

    return AutopilotDecision(
        should_intervene=should_intervene,
        confidence=min(max(float(confidence), 0.0), 1.0),
        reasoning=reasoning,
        guidance=guidance or None,
    )


def _categorize(error: Exception, provider_name: str) -> tuple[LLMErrorCategory, str]:
    """Map an exception to its category and human-readable reasoning."""
    if isinstance(error, LLMClientError):
        category = error.category
    elif isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        category = LLMErrorCategory.NETWORK
    elif isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (401, 403):
            category = LLMErrorCategory.AUTHENTICATION
        elif status == 429:
            category = LLMErrorCategory.RATE_LIMIT
        elif status == 400:
            category = LLMErrorCategory.BAD_REQUEST
        else:
            category = LLMErrorCategory.UNKNOWN
    elif isinstance(error, (KeyError, IndexError, TypeError)):
        category = LLMErrorCategory.INVALID_SHAPE
        error = LLMClientError(category, f"Invalid response structure from LLM: missing {error}")
    else:
        category = LLMErrorCategory.UNKNOWN

    message = str(error) or error.__class__.__name__
    prefixes = {
        LLMErrorCategory.PARSE: "LLM response parsing error",
        LLMErrorCategory.INVALID_SHAPE: "LLM returned invalid response format",
        LLMErrorCategory.NETWORK: f"Network error calling {provider_name} API",
        LLMErrorCategory.AUTHENTICATION: f"Authentication error with {provider_name}",
        LLMErrorCategory.RATE_LIMIT: f"Rate limit exceeded for {provider_name}",
        LLMErrorCategory.BAD_REQUEST: f"Bad request to {provider_name} API",
        LLMErrorCategory.UNSUPPORTED: f"Unsupported request for {provider_name}",
        LLMErrorCategory.UNKNOWN: f"Unexpected {provider_name} API error",
    }
    return category, f"{prefixes[category]}: {message}"


def _failed(reasoning: str, category: LLMErrorCategory) -> AutopilotDecision:
    return AutopilotDecision(
        should_intervene=False,
        confidence=0.0,
        reasoning=reasoning,
        error_category=category.value,
    )


class LLMClient:
    """Client for the configured LLM provider.

    ``transport`` is handed to ``httpx.AsyncClient`` (tests pass an
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: AutopilotConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = REQUEST_TIMEOUT,
        providers: Mapping[str, ProviderInfo] = PROVIDERS,
    ):
        self.config = config
        self.timeout = timeout
        self._transport = transport
        self._providers = providers
        self._request_count = 0
        self.last_error_category: LLMErrorCategory | None = None

    def update_config(self, config: AutopilotConfig) -> None:
        self.config = config

    def _provider(self) -> ProviderInfo | None:
        return self._providers.get(self.config.provider)

    def _api_key(self, provider: str) -> str | None:
        # Config only: no environment fallback to the providers' own variables
        return self.config.api_keys.get(provider) or None

    def is_available(self) -> bool:
        return self._provider() is not None and bool(self._api_key(self.config.provider))

    def get_current_provider_name(self) -> str:
        provider = self._provider()
        return provider.name if provider else "Unknown"

    def get_supported_models(self) -> list[str]:
        provider = self._provider()
        return list(provider.models) if provider else []

    def get_available_providers(self) -> list[dict[str, Any]]:
        return [
            {
                "name": info.name,
                "models": list(info.models),
                "available": bool(self._api_key(key)),
            }
            for key, info in self._providers.items()
        ]

    # The static helpers below work without a client instance. They read the
    # built-in registry unless a ``providers`` mapping is passed explicitly.

    @staticmethod
    def is_provider_available(
        provider: str,
        config: AutopilotConfig | None = None,
        providers: Mapping[str, ProviderInfo] = PROVIDERS,
    ) -> bool:
        if provider not in providers:
            return False
        return bool(config and config.api_keys.get(provider))

    @staticmethod
    def get_available_provider_keys(
        config: AutopilotConfig | None = None,
        providers: Mapping[str, ProviderInfo] = PROVIDERS,
    ) -> list[str]:
        return [key for key in providers if LLMClient.is_provider_available(key, config, providers)]

    @staticmethod
    def has_any_provider_keys(
        config: AutopilotConfig | None = None,
        providers: Mapping[str, ProviderInfo] = PROVIDERS,
    ) -> bool:
        return bool(LLMClient.get_available_provider_keys(config, providers))

    @staticmethod
    def get_all_supported_models(
        providers: Mapping[str, ProviderInfo] = PROVIDERS,
    ) -> list[dict[str, Any]]:
        return [{"provider": info.name, "models": list(info.models)} for info in providers.values()]

    def _fail(self, reasoning: str, category: LLMErrorCategory) -> AutopilotDecision:
        # Only feeds get_stats(); callers read the category off the decision
        self.last_error_category = category
        return _failed(reasoning, category)

    async def analyze_claude_output(
        self,
        output: str,
        project_path: str | None = None,
    ) -> AutopilotDecision:
        """Ask the configured model whether the session needs guidance."""
        provider = self._provider()
        if provider is None:
            return self._fail(f"Unknown provider: {self.config.provider}", LLMErrorCategory.UNSUPPORTED)

        api_key = self._api_key(self.config.provider)
        if not api_key:
            return self._fail(f"{provider.name} API key not configured", LLMErrorCategory.AUTHENTICATION)

        if self.config.model not in provider.models:
            return self._fail(
                f"Unsupported model: {self.config.model} for provider {provider.name}",
                LLMErrorCategory.UNSUPPORTED,
            )

        try:
            prompt = await self.build_analysis_prompt(output, project_path)
            text = await self._complete(provider, api_key, prompt)
            decision = parse_decision(text)
        except Exception as e:
            category, reasoning = _categorize(e, provider.name)
            logger.error(f"LLM call failed for {provider.name} ({category.value}): {e}")
            return self._fail(reasoning, category)

        self.last_error_category = None
        logger.info(
            f"{provider.name} analysis: should_intervene={decision.should_intervene}, "
            f"confidence={decision.confidence}"
        )
        return decision

    async def _complete(self, provider: ProviderInfo, api_key: str, prompt: str) -> str:
        headers, body = provider.build_request(self.config.model, api_key, prompt)
        logger.info(f"Calling {provider.name} API with model: {self.config.model}")
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(provider.endpoint, headers=headers, json=body)
            response.raise_for_status()
            self._request_count += 1
            try:
                data = response.json()
            except json.JSONDecodeError as e:
                raise LLMClientError(
                    LLMErrorCategory.PARSE, f"JSON parsing failed: provider envelope: {e}"
                ) from e
        text = provider.extract_text(data)
        logger.debug(f"{provider.name} response length: {len(text)} chars")
        return text

    async def build_analysis_prompt(self, output: str, project_path: str | None = None) -> str:
        project_context = ""
        user_guidance = ""

        if self.config.guide_prompt:
            user_guidance = (
                "\n\nUSER'S GUIDANCE INSTRUCTIONS:\n"
                f"{self.config.guide_prompt}\n\n"
                "Focus guidance on these user preferences while maintaining general helpfulness."
            )

        if project_path:
            docs = await asyncio.to_thread(read_project_docs, project_path)
            if docs:
                project_context = "\n\nPROJECT CONTEXT:\n" + "\n\n---\n\n".join(docs)

        return ANALYSIS_PROMPT.format(
            output=output,
            project_context=project_context,
            user_guidance=user_guidance,
        ).strip()

    def get_stats(self) -> dict[str, Any]:
        return {
            "provider": self.get_current_provider_name(),
            "model": self.config.model,
            "available": self.is_available(),
            "request_count": self._request_count,
            "last_error_category": (
                self.last_error_category.value if self.last_error_category else None
            ),
        }


def read_project_docs(project_path: str) -> list[str]:
    """Read up to three doc/manifest files from the project root, truncated."""
    found: list[str] = []
    root = Path(project_path)
    for name in PROJECT_DOC_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            content = path.read_text(errors="replace")
        except OSError as e:
            logger.debug(f"Skipping unreadable {path}: {e}")
            continue
        if len(content) > PROJECT_DOC_MAX_CHARS:
            content = content[:PROJECT_DOC_MAX_CHARS] + "..."
        found.append(f"{name}:\n{content}")
    return found


ANALYSIS_PROMPT = """
You are an AI assistant monitoring Claude Code sessions. Your job is to detect when Claude needs guidance and provide brief, actionable suggestions.

Analyze this Claude Code terminal output and determine if Claude needs guidance:

TERMINAL OUTPUT:
{output}{project_context}{user_guidance}

Look for patterns indicating Claude needs help:
- Repetitive behavior or loops
- Error messages being ignored
- Confusion or uncertainty in responses
- Getting stuck on the same task
- Making the same mistakes repeatedly
- Overthinking simple problems
- Not following project conventions or patterns
- Missing obvious solutions based on project structure
- Struggling with project-specific tools or frameworks

Respond with JSON in this exact format:
{{
  "shouldIntervene": boolean,
  "guidance": "Brief actionable suggestion (max 60 chars)" or null,
  "confidence": number (0-1),
  "reasoning": "Why you made this decision"
}}

Guidelines:
- The user has configurable intervention thresholds (typically 0.3-0.7)
- Consider context from project documentation
- Focus on actionable guidance that leverages project knowledge
- Provide confidence scores that accurately reflect the certainty of your assessment
"""
