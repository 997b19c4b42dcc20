from __future__ import annotations

import json

import pytest

from scene_agent.agent.provider_router import build_backend
from scene_agent.agent.providers.anthropic_provider import _build_messages, _build_tools
from scene_agent.agent.providers.mock_provider import MockBackend, cube_code, pick_color
from scene_agent.agent.providers.openai_provider import OpenAIBackend
from scene_agent.config import load_settings


def test_anthropic_conversion_hoists_system_and_converts_tools():
    system, messages = _build_messages([
        {"role": "system", "content": "rules"},
        {"role": "user", "content": "make a cube"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "execute_code", "arguments": '{"code":"x"}'}}],
        },
        {"role": "tool", "content": '{"success":true}', "tool_call_id": "c1"},
        {"role": "tool", "content": '{"success":true}', "tool_call_id": "c2"},
    ])

    assert system == "rules"
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[1]["content"] == [{"type": "tool_use", "id": "c1", "name": "execute_code", "input": {"code": "x"}}]
    assert [block["tool_use_id"] for block in messages[2]["content"]] == ["c1", "c2"]


def test_anthropic_images_and_tools():
    _, messages = _build_messages([{
        "role": "user",
        "content": [
            {"type": "text", "text": "what is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ],
    }])
    image = messages[0]["content"][1]
    assert image["source"] == {"type": "base64", "media_type": "image/png", "data": "AAAA"}

    tools = _build_tools([{"type": "function", "function": {"name": "t", "description": "d", "parameters": {"type": "object"}}}])
    assert tools == [{"name": "t", "description": "d", "input_schema": {"type": "object"}}]


@pytest.mark.asyncio
async def test_mock_backend_script():
    backend = MockBackend()
    tools = [{"type": "function", "function": {"name": "execute_code"}}]

    code = await backend.complete([{"role": "user", "content": "a purple cube"}])
    assert code.content == cube_code("purple")

    decision = await backend.complete([{"role": "user", "content": "a red cube"}], tools)
    assert decision.tool_calls[0].function_name == "execute_code"
    assert json.loads(decision.tool_calls[0].arguments_json) == {"code": cube_code("red"), "mode": "replace"}

    answer = await backend.complete(
        [{"role": "user", "content": "a red cube"}, {"role": "tool", "content": "{}", "tool_call_id": "x"}],
        tools,
    )
    assert answer.tool_calls == []
    assert "red cube" in answer.content


def test_pick_color_defaults():
    assert pick_color("something shiny") == "green"
    assert pick_color("A Yellow box") == "yellow"


def test_build_backend(monkeypatch):
    monkeypatch.setenv("SCENE_AGENT_PROVIDER", "mock")
    assert isinstance(build_backend(load_settings()), MockBackend)

    monkeypatch.setenv("SCENE_AGENT_PROVIDER", "openai")
    monkeypatch.setenv("SCENE_AGENT_API_KEY", "sk-test")
    assert isinstance(build_backend(load_settings()), OpenAIBackend)

    monkeypatch.setenv("SCENE_AGENT_PROVIDER", "google")
    with pytest.raises(ValueError):
        build_backend(load_settings())


def test_build_backend_requires_key(monkeypatch):
    monkeypatch.setenv("SCENE_AGENT_PROVIDER", "anthropic")
    monkeypatch.delenv("SCENE_AGENT_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ValueError):
        build_backend(load_settings())
