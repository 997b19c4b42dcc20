from __future__ import annotations

import copy

import pytest
from langchain_core.tools import tool

from scene_agent.agent.tool_formatter import (
    ToolDescriptor,
    empty_schema,
    format_tools,
    to_function_descriptor,
    to_openai_tool,
)


@tool
def add_light(intensity: float) -> str:
    """Add a point light to the scene."""
    return f"light {intensity}"


def test_non_list_input_yields_empty_list():
    assert format_tools(None) == []
    assert format_tools("execute_code") == []
    assert format_tools({"name": "x"}) == []


def test_none_entries_are_dropped_and_defaults_filled():
    formatted = format_tools([None, {"description": "no name"}, {"name": "bare"}])
    assert [d.name for d in formatted] == ["tool_1", "bare"]
    assert formatted[0].description == "no name"
    assert formatted[1].description == "Tool bare"
    assert formatted[1].parameter_schema == empty_schema()


def test_schema_is_repaired():
    formatted = format_tools([
        {"name": "a", "description": "d", "parameters": '{"type": "string", "properties": {"code": {"type": "string"}}}'},
        {"name": "b", "description": "d", "parameters": "{not json"},
        {"name": "c", "description": "d", "schema": {"type": "object", "properties": [], "required": "code"}},
        {"name": "d", "description": "d", "function": {"parameters": {"properties": {"x": {"type": "number"}}}}},
    ])
    a, b, c, d = formatted
    assert a.parameter_schema == {"type": "object", "properties": {"code": {"type": "string"}}}
    assert b.parameter_schema == empty_schema()
    assert c.parameter_schema == {"type": "object", "properties": {}, "required": []}
    assert d.parameter_schema["type"] == "object"
    assert d.parameter_schema["properties"] == {"x": {"type": "number"}}


def test_openai_function_shape():
    formatted = format_tools([{
        "type": "function",
        "function": {
            "name": "execute_code",
            "description": "Run code",
            "parameters": {"type": "object", "properties": {"code": {"type": "string"}}, "required": ["code"]},
        },
    }])
    assert formatted[0].name == "execute_code"
    assert formatted[0].description == "Run code"
    assert formatted[0].parameter_schema["required"] == ["code"]


def test_formatting_is_idempotent():
    raw = [None, {"name": "x", "parameters": "[]"}, {"description": "y", "schema": {"properties": {"a": {}}}}]
    once = format_tools(raw)
    assert format_tools(once) == once


def test_inputs_are_not_mutated():
    raw = [{"name": "x", "description": "d", "parameters": {"type": "string", "properties": {"a": {"type": "string"}}}}]
    snapshot = copy.deepcopy(raw)
    formatted = format_tools(raw)
    formatted[0].parameter_schema["properties"]["a"]["type"] = "number"
    assert raw == snapshot


def test_wire_shapes():
    descriptor = ToolDescriptor(name="validate_code", description="Check code")
    assert to_function_descriptor(descriptor) == {
        "name": "validate_code",
        "description": "Check code",
        "parameters": {"type": "object", "properties": {}, "required": []},
    }
    assert to_openai_tool(descriptor) == {"type": "function", "function": to_function_descriptor(descriptor)}


def test_unsupported_entries_are_skipped():
    assert format_tools([3, "text", {"name": "ok", "description": "d"}])[0].name == "ok"
    assert len(format_tools([3, "text"])) == 0


@pytest.mark.asyncio
async def test_langchain_tool_is_converted():
    formatted = format_tools([add_light])
    descriptor = formatted[0]
    assert descriptor.name == "add_light"
    assert "point light" in descriptor.description
    assert "intensity" in descriptor.parameter_schema["properties"]
    assert await descriptor.handler(intensity=0.5) == "light 0.5"
