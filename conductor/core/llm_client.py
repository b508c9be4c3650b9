"""
LLM Client for Conductor.

Thin OpenRouter (OpenAI chat-completions) client with:
- bounded retry-with-backoff and a per-attempt wall-clock timeout
- single-tool enforcement (one tool invocation per round)
- tolerant parsing: malformed tool arguments are kept for validation
  instead of being dropped
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, cast

import httpx

from conductor.config import settings
from conductor.contracts.json_types import JSONObject
from conductor.contracts.llm_types import (
    ChatMessage,
    OpenAIRequestPayload,
    OpenAIResponse,
    OpenAIToolChoice,
    ToolSchemaDict,
    UsageStats,
)
from conductor.core.retry import RetryExhaustedError, TransientError, retry_with_backoff

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM provider (OpenRouter only)."""
    OPENROUTER = "openrouter"


class ModelTransportError(Exception):
    """The reasoning model call failed after retries (or with a non-retryable status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class ToolCall:
    """One tool invocation request emitted by the model.

    ``params`` is untrusted until validated by the tool's entry.  When the
    model sent arguments that are not a JSON object, ``params`` is empty and
    ``arguments_error`` says why, so validation can report it back.
    """

    name: str
    params: JSONObject
    id: str = ""
    arguments_error: Optional[str] = None

    def arguments_json(self) -> str:
        return json.dumps(self.params, separators=(",", ":"))


@dataclass
class LLMResponse:
    """One model turn: free text, a tool invocation, or both."""
    content: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[UsageStats] = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def text(self) -> str:
        return (self.content or "").strip()


class ReasoningModel(Protocol):
    """What the orchestrator needs from a model client (real or scripted)."""

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchemaDict]] = None,
        tool_choice: Optional[OpenAIToolChoice] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse: ...


def enforce_single_tool(response: LLMResponse) -> LLMResponse:
    """Enforce single tool call per round."""
    if len(response.tool_calls) <= 1:
        return response
    dropped = len(response.tool_calls) - 1
    response.tool_calls = response.tool_calls[:1]
    logger.warning(f"Enforced single tool: dropped {dropped} extra calls")
    return response


def force_tool(name: str) -> OpenAIToolChoice:
    """``tool_choice`` that forces one specific function."""
    return {"type": "function", "function": {"name": name}}


class LLMClient:
    """OpenRouter chat-completions client."""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.provider = provider or LLMProvider(settings.llm_provider)
        self.api_key = api_key or self._get_api_key()
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self.base_url = self._get_base_url()
        self._client: Optional[httpx.AsyncClient] = None

    def _get_api_key(self) -> str:
        if self.provider == LLMProvider.OPENROUTER:
            key = settings.openrouter_api_key
            if key is None:
                raise ValueError("OpenRouter API key not configured")
            return key
        raise ValueError(f"No API key configured for provider: {self.provider}")

    def _get_base_url(self) -> str:
        if self.provider == LLMProvider.OPENROUTER:
            return "https://openrouter.ai/api"
        raise ValueError(f"Unknown provider: {self.provider}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.api_key}",
                "X-Title": settings.app_name,
            }
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[ToolSchemaDict]] = None,
        tool_choice: Optional[OpenAIToolChoice] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Send a chat completion request with bounded retries.

        Raises ``ModelTransportError`` on a non-retryable status or once the
        retry budget is spent.
        """
        payload: OpenAIRequestPayload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else settings.llm_temperature,
            "max_tokens": max_tokens or settings.llm_max_tokens,
            "stream": False,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = tool_choice if tool_choice is not None else "auto"

        logger.debug(f"LLM request: {len(messages)} messages, {len(tools) if tools else 0} tools")

        async def _attempt() -> LLMResponse:
            start = time.time()
            response = await self.client.post(
                f"{self.base_url}/v1/chat/completions",
                json=payload,
            )
            response.raise_for_status()
            try:
                data = cast(OpenAIResponse, response.json())
            except ValueError as e:
                raise TransientError(f"Model returned non-JSON body: {e}") from e
            if not data.get("choices"):
                raise TransientError("Model response had no choices")
            usage = data.get("usage") or {}
            logger.info(
                f"LLM: {time.time() - start:.2f}s, {usage.get('prompt_tokens', 0)} prompt, "
                f"{usage.get('completion_tokens', 0)} completion tokens"
            )
            try:
                return self._parse_response(data)
            except (AttributeError, TypeError, IndexError) as e:
                raise TransientError(f"Model response could not be parsed: {e}") from e

        try:
            return await retry_with_backoff(_attempt, label=f"llm:{self.model}")
        except RetryExhaustedError as e:
            raise ModelTransportError(str(e)) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 400:
                logger.error(f"400 Bad Request from model provider: {e.response.text[:500]}")
            raise ModelTransportError(f"Model request rejected with HTTP {status}", status) from e

    def _parse_response(self, data: OpenAIResponse) -> LLMResponse:
        """Parse OpenAI-compatible response."""
        choice = (data.get("choices") or [{}])[0] or {}
        message = choice.get("message") or {}

        response = LLMResponse(
            content=message.get("content"),
            finish_reason=choice.get("finish_reason"),
            usage=data.get("usage"),
        )

        for tc in message.get("tool_calls") or []:
            fn = tc.get("function") or {}
            raw = fn.get("arguments") or "{}"
            params: JSONObject = {}
            error: Optional[str] = None
            try:
                decoded = json.loads(raw) if isinstance(raw, str) else raw
                if isinstance(decoded, dict):
                    params = decoded
                else:
                    error = f"arguments must be a JSON object, got {type(decoded).__name__}"
            except json.JSONDecodeError as e:
                error = f"arguments are not valid JSON ({e.msg})"
            if error:
                logger.warning(f"Tool call {fn.get('name', '?')}: {error}")
            response.tool_calls.append(ToolCall(
                id=tc.get("id") or "",
                name=fn.get("name") or "",
                params=params,
                arguments_error=error,
            ))

        return response
