from __future__ import annotations

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from scene_agent.agent.messages import Message, ToolCallRecord, is_valid_content
from scene_agent.agent.normalizer import normalize_message, normalize_messages
from scene_agent.config import DEFAULT_FALLBACK_PROMPT


class Unprintable:
    def __str__(self) -> str:
        raise RuntimeError("no str for you")


SAMPLES = [
    None,
    42,
    "plain text",
    {"role": "user", "content": "hello"},
    {"role": "assistant", "content": {"foo": 1}},
    {"role": "bogus", "content": [1, 2, 3]},
    {"role": "user", "content": [{"type": "text", "text": "hi"}]},
    {"role": "user", "content": [{"type": "video", "url": "x"}]},
    {"role": "assistant", "content": None, "tool_calls": [{"id": "c1", "name": "execute_code", "args": {"code": "x"}}]},
    {"role": "tool", "content": {"success": True}, "toolCallId": "c1"},
    {"role": "user", "content": {"nested": {"agent_scratchpad": [{"step": 1}]}}},
    {"role": "assistant", "content": "", "function_call": {"name": "f", "arguments": {"a": 1}}},
    Message(role="system", content="rules"),
]


@pytest.mark.parametrize("value", SAMPLES)
def test_output_content_is_always_string_or_part_list(value):
    message = normalize_message(value)
    assert message.role in {"system", "user", "assistant", "tool"}
    assert is_valid_content(message.content)
    assert not isinstance(message.content, dict)


@pytest.mark.parametrize("value", SAMPLES)
def test_normalization_is_idempotent(value):
    once = normalize_message(value)
    assert normalize_message(once) == once


def test_none_and_scalars():
    assert normalize_message(None) == Message(role="user", content="")
    assert normalize_message(42) == Message(role="user", content="42")


def test_empty_content_list_becomes_empty_string():
    message = normalize_message({"role": "user", "content": []})
    assert message.content == ""
    assert message.to_wire() == {"role": "user", "content": ""}
    assert is_valid_content([]) is False


def test_object_content_becomes_compact_json():
    message = normalize_message({"role": "user", "content": {"foo": 1}})
    assert message.content == '{"foo":1}'


def test_non_ascii_is_kept():
    message = normalize_message({"role": "user", "content": {"text": "立方体"}})
    assert message.content == '{"text":"立方体"}'


def test_unknown_and_missing_roles_become_user():
    assert normalize_message({"role": "wizard", "content": "x"}).role == "user"
    assert normalize_message({"content": "x"}).role == "user"
    assert normalize_message({"role": 7, "content": "x"}).role == "user"


def test_role_aliases():
    assert normalize_message({"role": "human", "content": "x"}).role == "user"
    assert normalize_message({"role": "ai", "content": "x"}).role == "assistant"
    assert normalize_message({"role": "function", "content": "x"}).role == "tool"


def test_valid_part_list_is_kept():
    parts = [{"type": "text", "text": "look"}, {"type": "image_url", "image_url": {"url": "data:image/png;base64,AA"}}]
    message = normalize_message({"role": "user", "content": parts})
    assert message.content == parts
    assert message.content is not parts


def test_invalid_part_list_is_serialized():
    message = normalize_message({"role": "user", "content": [{"type": "video"}]})
    assert message.content == '[{"type":"video"}]'


def test_nested_scratchpad_is_stringified():
    value = {"role": "user", "content": {"data": {"agent_scratchpad": [{"tool": "execute_code"}]}}}
    message = normalize_message(value)
    decoded = json.loads(message.content)
    assert decoded["data"]["agent_scratchpad"] == '[{"tool":"execute_code"}]'


def test_unserializable_content_falls_back_to_str():
    message = normalize_message({"role": "user", "content": {"x": {1, 2}}})
    assert isinstance(message.content, str)


def test_unprintable_content_becomes_empty():
    message = normalize_message({"role": "user", "content": Unprintable()})
    assert message.content == ""


def test_tool_call_shapes():
    openai_shape = {"id": "a", "type": "function", "function": {"name": "execute_code", "arguments": {"code": "x"}}}
    langchain_shape = {"id": "b", "name": "validate_code", "args": {"code": "y"}}
    canonical_shape = {"id": "c", "functionName": "analyze_scene", "argumentsJSON": '{"detail":"basic"}'}
    message = normalize_message({
        "role": "assistant",
        "content": "",
        "tool_calls": [openai_shape, langchain_shape, canonical_shape],
    })
    assert message.tool_calls == [
        ToolCallRecord(id="a", function_name="execute_code", arguments_json='{"code":"x"}'),
        ToolCallRecord(id="b", function_name="validate_code", arguments_json='{"code":"y"}'),
        ToolCallRecord(id="c", function_name="analyze_scene", arguments_json='{"detail":"basic"}'),
    ]


def test_unserializable_arguments_become_empty_object():
    message = normalize_message({
        "role": "assistant",
        "function_call": {"name": "f", "arguments": {"bad": object()}},
    })
    assert message.function_call.arguments == "{}"


def test_langchain_messages():
    history = [
        SystemMessage(content="rules"),
        HumanMessage(content="make a cube"),
        AIMessage(content="", tool_calls=[{"name": "execute_code", "args": {"code": "x"}, "id": "c1"}]),
        ToolMessage(content='{"success":true}', tool_call_id="c1"),
    ]
    messages = normalize_messages(history)
    assert [m.role for m in messages] == ["system", "user", "assistant", "tool"]
    assert messages[2].tool_calls == [ToolCallRecord(id="c1", function_name="execute_code", arguments_json='{"code":"x"}')]
    assert messages[3].tool_call_id == "c1"


def test_to_wire_for_tool_message():
    message = normalize_message({"role": "tool", "content": "ok", "tool_call_id": "c1", "name": "execute_code"})
    assert message.to_wire() == {"role": "tool", "content": "ok", "name": "execute_code", "tool_call_id": "c1"}


def test_normalize_messages_never_empty():
    assert normalize_messages([]) == [Message(role="user", content=DEFAULT_FALLBACK_PROMPT)]
    assert normalize_messages([], fallback_prompt="hi") == [Message(role="user", content="hi")]


def test_normalize_messages_wraps_single_value():
    assert normalize_messages("hello") == [Message(role="user", content="hello")]
