"""Repair ladder behaviour of ChatModelClient."""
from __future__ import annotations

import pytest

from scene_agent.agent.chat_client import ChatModelClient, flatten_messages, is_content_type_error
from scene_agent.agent.messages import AssistantMessage, Message
from scene_agent.agent.providers.base import CompletionBackend
from scene_agent.config import DEFAULT_REPAIR_PROMPT
from scene_agent.errors import MessageFormatError, ModelCallError
from scene_agent.observability.metrics import RuntimeMetrics

CONTENT_ERROR = "Invalid type for 'messages[2].content': expected one of a string or array of objects, but got an object instead."


# ─── Helpers ──────────────────────────────────────────────────────────────────

class ScriptedBackend(CompletionBackend):
    """Backend that raises or returns the next scripted outcome."""

    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[list[dict], list[dict] | None]] = []

    async def complete(self, messages, tools=None):
        self.calls.append((messages, tools))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


HISTORY = [
    {"role": "system", "content": "rules"},
    {"role": "user", "content": [{"type": "text", "text": "make a cube"}]},
    {"role": "assistant", "content": "", "tool_calls": [{"id": "c1", "name": "execute_code", "args": {"code": "x"}}]},
    {"role": "tool", "content": '{"success":true}', "tool_call_id": "c1"},
]


def _client(backend: CompletionBackend) -> tuple[ChatModelClient, RuntimeMetrics]:
    metrics = RuntimeMetrics()
    return ChatModelClient(backend, metrics=metrics), metrics


# ─── Tests ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_first_attempt_success():
    backend = ScriptedBackend([AssistantMessage(content="hello")])
    client, metrics = _client(backend)

    result = await client.invoke(HISTORY)

    assert result.content == "hello"
    assert result.repair_tier == 1
    assert len(backend.calls) == 1
    sent, tools = backend.calls[0]
    assert sent[2]["tool_calls"][0]["function"] == {"name": "execute_code", "arguments": '{"code":"x"}'}
    assert sent[3]["tool_call_id"] == "c1"
    assert tools is None
    assert metrics.model_calls_total == 1
    assert metrics.repairs_total == {}


@pytest.mark.asyncio
async def test_tier_two_flattens_messages():
    backend = ScriptedBackend([RuntimeError(CONTENT_ERROR), AssistantMessage(content="ok")])
    client, metrics = _client(backend)

    result = await client.invoke(HISTORY)

    assert result.repair_tier == 2
    flattened, _ = backend.calls[1]
    assert all(set(m) == {"role", "content"} for m in flattened)
    assert all(isinstance(m["content"], str) for m in flattened)
    assert [m["role"] for m in flattened] == ["system", "user", "assistant", "user"]
    assert flattened[1]["content"] == '[{"type":"text","text":"make a cube"}]'
    assert metrics.repairs_total == {"tier2": 1}


@pytest.mark.asyncio
async def test_fail_fail_succeed_uses_tier_three():
    backend = ScriptedBackend([
        RuntimeError(CONTENT_ERROR),
        RuntimeError("still broken"),
        AssistantMessage(content="generic help"),
    ])
    client, metrics = _client(backend)

    result = await client.invoke(HISTORY)

    assert result.content == "generic help"
    assert result.repair_tier == 3
    assert len(backend.calls) == 3
    assert backend.calls[2][0] == [{"role": "user", "content": DEFAULT_REPAIR_PROMPT}]
    assert metrics.repairs_total == {"tier2": 1, "tier3": 1}
    assert metrics.model_calls_total == 3


@pytest.mark.asyncio
async def test_ladder_exhausted_raises_with_original():
    original = RuntimeError(CONTENT_ERROR)
    backend = ScriptedBackend([original, RuntimeError("two"), RuntimeError("three")])
    client, _ = _client(backend)

    with pytest.raises(ModelCallError) as exc_info:
        await client.invoke(HISTORY)

    assert exc_info.value.original is original
    assert exc_info.value.__cause__ is original
    assert exc_info.value.attempts == 3
    assert len(backend.calls) == 3


@pytest.mark.asyncio
async def test_other_errors_skip_the_ladder():
    backend = ScriptedBackend([RuntimeError("rate limited"), AssistantMessage(content="never")])
    client, metrics = _client(backend)

    with pytest.raises(ModelCallError):
        await client.invoke(HISTORY)

    assert len(backend.calls) == 1
    assert metrics.repairs_total == {}


@pytest.mark.asyncio
async def test_tools_are_sent_in_function_shape():
    backend = ScriptedBackend([AssistantMessage(content="ok")])
    client, _ = _client(backend)

    await client.invoke("hi", tools=[{"name": "validate_code", "parameters": {"properties": {"code": {"type": "string"}}}}])

    _, tools = backend.calls[0]
    assert tools == [{
        "type": "function",
        "function": {
            "name": "validate_code",
            "description": "Tool validate_code",
            "parameters": {"type": "object", "properties": {"code": {"type": "string"}}},
        },
    }]


@pytest.mark.asyncio
async def test_empty_history_gets_fallback_prompt():
    backend = ScriptedBackend([AssistantMessage(content="ok")])
    client = ChatModelClient(backend, fallback_prompt="help me", metrics=RuntimeMetrics())

    await client.invoke([])

    assert backend.calls[0][0] == [{"role": "user", "content": "help me"}]


def test_content_type_classification():
    assert is_content_type_error(RuntimeError(CONTENT_ERROR))
    assert is_content_type_error(MessageFormatError("bad content"))
    assert is_content_type_error(ValueError("messages.3.content: Input should be a valid string"))
    assert not is_content_type_error(RuntimeError("rate limited"))
    assert not is_content_type_error(TimeoutError())


def test_content_type_classification_reads_error_body():
    exc = RuntimeError("Error code: 400")
    exc.body = {"error": {"message": CONTENT_ERROR}}
    assert is_content_type_error(exc)


def test_flatten_keeps_plain_strings():
    flattened = flatten_messages([Message(role="tool", content="done", tool_call_id="c1")])
    assert flattened == [{"role": "user", "content": "done"}]
