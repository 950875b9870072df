"""OpenAI-compatible model provider."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import openai
from openai import AsyncOpenAI

from weft.config import ModelConfig
from weft.errors import LLMError
from weft.types import (
    ChatParams,
    FunctionCall,
    Message,
    Role,
    StreamDelta,
    ToolCall,
    ToolCallDelta,
)
from .base import BaseModelProvider

_RETRYABLE = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,
)


def _content_parts(m: Message) -> str | list[dict[str, Any]] | None:
    if not m.images:
        return m.content
    parts: list[dict[str, Any]] = []
    if m.content:
        parts.append({"type": "text", "text": m.content})
    parts.extend({"type": "image_url", "image_url": {"url": img.data_url}} for img in m.images)
    return parts


def _msg_to_dict(m: Message) -> dict[str, Any]:
    # control turns are steering instructions; OpenAI only knows them as system text
    role = Role.SYSTEM if m.role == Role.CONTROL else m.role
    d: dict[str, Any] = {"role": role.value, "content": _content_parts(m)}
    if m.tool_calls:
        d["tool_calls"] = [tc.to_dict() for tc in m.tool_calls]
    if m.role == Role.TOOL:
        d["tool_call_id"] = m.tool_call_id
    return d


def _messages(params: ChatParams) -> list[dict[str, Any]]:
    out = [{"role": "system", "content": params.system_prompt}] if params.system_prompt else []
    out.extend(_msg_to_dict(m) for m in params.messages)
    return out


def _tools_to_dicts(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{"type": "function", "function": schema} for schema in tools]


def _response_format(params: ChatParams) -> dict[str, Any] | None:
    if not params.json_schema:
        return None
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "promptschema",
            "schema": params.json_schema,
            "strict": bool(params.json_strict),
        },
    }


class OpenAIProvider(BaseModelProvider):
    name = "openai"

    def __init__(self, config: ModelConfig | None = None, client: AsyncOpenAI | None = None) -> None:
        config = config or ModelConfig()
        super().__init__(retry=config.retry, circuit_breaker=config.circuit_breaker)
        self._config = config
        self._client = client or AsyncOpenAI(
            api_key=config.api_key.get_secret_value() if config.api_key else None,
            base_url=config.base_url,
            timeout=config.timeout_s,
        )

    def _request(self, params: ChatParams, stream: bool) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": params.model or self._config.model,
            "messages": _messages(params),
        }
        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature
        if self._config.max_tokens is not None:
            kwargs["max_tokens"] = self._config.max_tokens
        if params.tools:
            kwargs["tools"] = _tools_to_dicts(params.tools)
        response_format = _response_format(params)
        if response_format:
            kwargs["response_format"] = response_format
        if stream:
            kwargs["stream"] = True
        return kwargs

    async def _do_complete(self, params: ChatParams) -> Message:
        resp = await self._client.chat.completions.create(**self._request(params, stream=False))
        msg = resp.choices[0].message
        tool_calls = [
            ToolCall(id=tc.id, function=FunctionCall(tc.function.name, tc.function.arguments or ""))
            for tc in msg.tool_calls or []
        ]
        content = msg.content
        if content is None and not tool_calls:
            content = ""
        return Message.assistant(content, tool_calls)

    async def _do_stream(self, params: ChatParams) -> AsyncGenerator[StreamDelta, None]:
        resp = await self._client.chat.completions.create(**self._request(params, stream=True))
        async for chunk in resp:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is None:
                continue
            if delta.content:
                yield StreamDelta(content_delta=delta.content)
            for tc in delta.tool_calls or []:
                fn = tc.function
                yield StreamDelta(
                    tool_call_delta=ToolCallDelta(
                        index=tc.index,
                        id=tc.id,
                        function_name_delta=fn.name if fn else None,
                        function_arguments_delta=fn.arguments if fn else None,
                    )
                )

    async def _do_embed(self, texts: list[str], model_id: str) -> list[list[float]]:
        resp = await self._client.embeddings.create(model=model_id, input=texts)
        return [d.embedding for d in sorted(resp.data, key=lambda d: d.index)]

    def _is_retryable(self, err: Exception) -> bool:
        return isinstance(err, _RETRYABLE)

    def _to_llm_error(self, err: Exception) -> LLMError:
        if isinstance(err, LLMError):
            return err
        if isinstance(err, openai.APIStatusError):
            return LLMError(
                "LLM_HTTP_ERROR", self.name, f"{self.name} API error ({err.status_code}): {err.message}",
                status_code=err.status_code, cause=err,
            )
        return super()._to_llm_error(err)
