"""Anthropic Messages API backend. Converts OpenAI wire messages to content blocks."""
from __future__ import annotations

import json

import httpx
from anthropic import AsyncAnthropic

from scene_agent.agent.messages import AssistantMessage, ToolCallRecord
from scene_agent.agent.providers.base import CompletionBackend


class AnthropicBackend(CompletionBackend):
    name = "anthropic"

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self.client = client or AsyncAnthropic(
            api_key=api_key,
            http_client=httpx.AsyncClient(timeout=timeout_seconds),
        )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> AssistantMessage:
        system_prompt, converted = _build_messages(messages)

        payload: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": converted,
            "temperature": self.temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tools:
            payload["tools"] = _build_tools(tools)

        response = await self.client.messages.create(**payload)

        text_parts: list[str] = []
        tool_calls: list[ToolCallRecord] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCallRecord(
                    id=block.id,
                    function_name=block.name,
                    arguments_json=json.dumps(block.input, ensure_ascii=False),
                ))

        return AssistantMessage(
            content="\n".join(text_parts),
            tool_calls=tool_calls,
            finish_reason="tool_calls" if response.stop_reason == "tool_use" else "stop",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )


def _text_blocks(content: object) -> list[dict]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    blocks: list[dict] = []
    for part in content or []:
        if part.get("type") == "text":
            blocks.append({"type": "text", "text": str(part.get("text", ""))})
        elif part.get("type") == "image_url":
            image = part.get("image_url")
            url = image.get("url") if isinstance(image, dict) else image
            blocks.append(_image_block(str(url or "")))
    return blocks


def _image_block(url: str) -> dict:
    if url.startswith("data:") and ";base64," in url:
        header, data = url.split(";base64,", 1)
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": header[len("data:"):], "data": data},
        }
    return {"type": "image", "source": {"type": "url", "url": url}}


def _parse_arguments(arguments: str) -> dict:
    try:
        parsed = json.loads(arguments)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _append(result: list[dict], role: str, blocks: list[dict]) -> None:
    # The Messages API requires alternating roles; merge adjacent turns.
    if not blocks:
        return
    if result and result[-1]["role"] == role:
        result[-1]["content"].extend(blocks)
    else:
        result.append({"role": role, "content": blocks})


def _build_messages(messages: list[dict]) -> tuple[str, list[dict]]:
    """Split out system text and convert the rest to Anthropic message format."""
    system_parts: list[str] = []
    result: list[dict] = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content", "")
        if role == "system":
            system_parts.extend(block["text"] for block in _text_blocks(content) if block["type"] == "text")
        elif role == "assistant":
            blocks = _text_blocks(content)
            for tc in msg.get("tool_calls") or []:
                function = tc.get("function", {})
                blocks.append({
                    "type": "tool_use",
                    "id": tc.get("id"),
                    "name": function.get("name"),
                    "input": _parse_arguments(function.get("arguments", "{}")),
                })
            _append(result, "assistant", blocks)
        elif role == "tool":
            text = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)
            _append(result, "user", [{
                "type": "tool_result",
                "tool_use_id": msg.get("tool_call_id"),
                "content": text,
            }])
        else:
            _append(result, "user", _text_blocks(content))
    return "\n\n".join(system_parts), result


def _build_tools(tools: list[dict]) -> list[dict]:
    """Convert OpenAI function tools to Anthropic tools format."""
    converted: list[dict] = []
    for tool in tools:
        function = tool.get("function", tool)
        converted.append({
            "name": function["name"],
            "description": function.get("description", ""),
            "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
        })
    return converted
