"""Tool descriptors: one normalized shape for every tool handed to the model."""
from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_function

logger = logging.getLogger(__name__)


def empty_schema() -> dict:
    return {"type": "object", "properties": {}, "required": []}


@dataclass(slots=True)
class ToolDescriptor:
    name: str
    description: str
    parameter_schema: dict = field(default_factory=empty_schema)
    handler: Callable | None = field(default=None, compare=False, repr=False)


def _coerce_schema(raw: Any) -> dict:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            return empty_schema()
    if not isinstance(raw, Mapping):
        return empty_schema()

    schema = copy.deepcopy(dict(raw))
    schema["type"] = "object"
    if not isinstance(schema.get("properties"), Mapping):
        schema["properties"] = {}
    if "required" in schema and not isinstance(schema["required"], list):
        schema["required"] = []
    return schema


def _fields_from_mapping(tool: Mapping[str, Any]) -> tuple[Any, Any, Any, Any]:
    function = tool.get("function")
    function = function if isinstance(function, Mapping) else {}
    name = tool.get("name") or function.get("name")
    description = tool.get("description") or function.get("description")

    schema: Any = None
    for key in ("parameter_schema", "parameterSchema", "parameters", "input_schema", "schema"):
        if tool.get(key) is not None:
            schema = tool[key]
            break
    if schema is None:
        schema = function.get("parameters")

    handler = tool.get("handler") or tool.get("invoke")
    return name, description, schema, handler if callable(handler) else None


def _fields_from_langchain(tool: BaseTool) -> tuple[Any, Any, Any, Any]:
    try:
        function = convert_to_openai_function(tool)
    except Exception:  # noqa: BLE001
        logger.warning("could not convert langchain tool %r, using an empty schema", tool.name)
        function = {"name": tool.name, "description": tool.description}

    async def handler(**kwargs: Any) -> Any:
        return await tool.ainvoke(kwargs)

    return function.get("name"), function.get("description"), function.get("parameters"), handler


def format_tool(tool: Any, index: int = 0) -> ToolDescriptor | None:
    """Normalize one tool definition, or return None if there is nothing to format."""
    if tool is None:
        return None

    if isinstance(tool, ToolDescriptor):
        name, description, schema, handler = tool.name, tool.description, tool.parameter_schema, tool.handler
    elif isinstance(tool, BaseTool):
        name, description, schema, handler = _fields_from_langchain(tool)
    elif isinstance(tool, Mapping):
        name, description, schema, handler = _fields_from_mapping(tool)
    else:
        logger.warning("tool[%d] has unsupported type %s, skipped", index, type(tool).__name__)
        return None

    if not isinstance(name, str) or not name.strip():
        logger.warning("tool[%d] has no name, using tool_%d", index, index)
        name = f"tool_{index}"
    if not isinstance(description, str) or not description.strip():
        description = f"Tool {name}"

    return ToolDescriptor(
        name=name.strip(),
        description=description,
        parameter_schema=_coerce_schema(schema),
        handler=handler,
    )


def format_tools(tools: Any) -> list[ToolDescriptor]:
    """Normalize a list of tool definitions. Inputs are never mutated."""
    if not isinstance(tools, (list, tuple)):
        if tools is not None:
            logger.warning("tools is not a list, ignoring %s", type(tools).__name__)
        return []

    formatted: list[ToolDescriptor] = []
    for index, tool in enumerate(tools):
        descriptor = format_tool(tool, index)
        if descriptor is not None:
            formatted.append(descriptor)
    return formatted


def to_function_descriptor(descriptor: ToolDescriptor) -> dict:
    return {
        "name": descriptor.name,
        "description": descriptor.description,
        "parameters": copy.deepcopy(descriptor.parameter_schema),
    }


def to_openai_tool(descriptor: ToolDescriptor) -> dict:
    return {"type": "function", "function": to_function_descriptor(descriptor)}
