"""OpenAI Chat Completions backend (also Azure OpenAI and OpenAI-compatible vendors)."""
from __future__ import annotations

import json

import httpx
from openai import AsyncAzureOpenAI, AsyncOpenAI

from scene_agent.agent.messages import AssistantMessage, ToolCallRecord
from scene_agent.agent.providers.base import CompletionBackend, new_call_id


class OpenAIBackend(CompletionBackend):
    name = "openai"

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            http_client=httpx.AsyncClient(timeout=timeout_seconds),
        )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def for_azure(
        cls,
        *,
        deployment: str,
        api_key: str,
        endpoint: str,
        api_version: str,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
    ) -> "OpenAIBackend":
        client = AsyncAzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=api_version,
            http_client=httpx.AsyncClient(timeout=timeout_seconds),
        )
        backend = cls(
            model=deployment,
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
            client=client,
        )
        backend.name = "azure"
        return backend

    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> AssistantMessage:
        payload: dict = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if tools:
            payload["tools"] = tools

        response = await self.client.chat.completions.create(**payload)
        choice = response.choices[0]
        message = choice.message

        tool_calls: list[ToolCallRecord] = []
        for tc in message.tool_calls or []:
            tool_calls.append(ToolCallRecord(
                id=tc.id or new_call_id(),
                function_name=tc.function.name,
                arguments_json=_arguments_text(tc.function.arguments),
            ))

        usage: dict[str, int] = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens or 0,
            }

        return AssistantMessage(
            content=message.content or "",
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )


def _arguments_text(arguments: object) -> str:
    # Invalid JSON is kept verbatim so the registry can report it.
    if isinstance(arguments, str):
        return arguments or "{}"
    if arguments is None:
        return "{}"
    return json.dumps(arguments, ensure_ascii=False)
