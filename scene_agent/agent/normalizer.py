"""
normalizer.py — coerce arbitrary conversation values into canonical Messages.

Everything that reaches the completion API passes through here first. The functions
never raise: values that cannot be repaired collapse to empty-string content.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from langchain_core.messages import BaseMessage

from scene_agent.agent.messages import (
    ROLES,
    FunctionCall,
    Message,
    ToolCallRecord,
    is_valid_content,
    is_valid_part_list,
)
from scene_agent.config import DEFAULT_FALLBACK_PROMPT
from scene_agent.errors import MessageFormatError

logger = logging.getLogger(__name__)

ROLE_ALIASES = {
    "human": "user",
    "ai": "assistant",
    "function": "tool",
}
SCRATCHPAD_KEYS = ("agent_scratchpad", "agentScratchpad")
_MAX_SCRATCHPAD_DEPTH = 32


def to_json_text(value: Any) -> str:
    """Compact JSON text, the same form the browser produces."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return ""


def _field(value: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in value:
            return value[key]
    return None


def _coerce_role(value: Any) -> str:
    if not isinstance(value, str):
        return "user"
    role = value.strip().lower()
    role = ROLE_ALIASES.get(role, role)
    return role if role in ROLES else "user"


def _stringify_scratchpads(value: Any, depth: int = 0) -> Any:
    """Replace structured scratchpad values nested in *value* with their JSON text."""
    if depth > _MAX_SCRATCHPAD_DEPTH:
        return value
    if isinstance(value, Mapping):
        result: dict[Any, Any] = {}
        for key, item in value.items():
            if key in SCRATCHPAD_KEYS and item is not None and not isinstance(item, str):
                try:
                    result[key] = to_json_text(item)
                except (TypeError, ValueError):
                    result[key] = _safe_str(item)
            else:
                result[key] = _stringify_scratchpads(item, depth + 1)
        return result
    if isinstance(value, (list, tuple)):
        return [_stringify_scratchpads(item, depth + 1) for item in value]
    return value


def _coerce_content(value: Any) -> str | list[dict[str, Any]]:
    if value is None or (isinstance(value, (list, tuple)) and not value):
        return ""
    if isinstance(value, str):
        return value
    if is_valid_part_list(value):
        return [dict(part) for part in value]
    if isinstance(value, (Mapping, list, tuple)):
        try:
            return to_json_text(_stringify_scratchpads(value))
        except (TypeError, ValueError, RecursionError) as exc:
            logger.warning("content is not JSON serializable, using str(): %s", exc)
            return _safe_str(value)
    return _safe_str(value)


def _coerce_arguments(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return "{}"
    try:
        return to_json_text(value)
    except (TypeError, ValueError, RecursionError):
        return "{}"


def _coerce_tool_call(raw: Any, index: int) -> ToolCallRecord | None:
    if isinstance(raw, ToolCallRecord):
        return ToolCallRecord(
            id=_safe_str(raw.id),
            function_name=_safe_str(raw.function_name),
            arguments_json=_coerce_arguments(raw.arguments_json),
        )
    if not isinstance(raw, Mapping):
        return None

    call_id = raw.get("id")
    function = raw.get("function")
    if isinstance(function, Mapping):
        name = function.get("name")
        arguments = function.get("arguments")
    else:
        name = _field(raw, "functionName", "function_name", "name")
        arguments = _field(raw, "argumentsJSON", "arguments_json", "arguments", "args")

    return ToolCallRecord(
        id=_safe_str(call_id) if call_id else f"call_{index}",
        function_name=_safe_str(name) if name is not None else "",
        arguments_json=_coerce_arguments(arguments),
    )


def _coerce_function_call(raw: Any) -> FunctionCall | None:
    if isinstance(raw, FunctionCall):
        return FunctionCall(name=_safe_str(raw.name), arguments=_coerce_arguments(raw.arguments))
    if not isinstance(raw, Mapping):
        return None
    name = raw.get("name")
    return FunctionCall(
        name=_safe_str(name) if name is not None else "",
        arguments=_coerce_arguments(raw.get("arguments")),
    )


def _fields_from_langchain(msg: BaseMessage) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "role": msg.type,
        "content": msg.content,
        "name": msg.name,
    }
    tool_calls = getattr(msg, "tool_calls", None)
    if tool_calls:
        fields["tool_calls"] = tool_calls
    tool_call_id = getattr(msg, "tool_call_id", None)
    if tool_call_id:
        fields["tool_call_id"] = tool_call_id
    return fields


def _fields_from_message(msg: Message) -> dict[str, Any]:
    return {
        "role": msg.role,
        "content": msg.content,
        "name": msg.name,
        "tool_calls": msg.tool_calls,
        "tool_call_id": msg.tool_call_id,
        "function_call": msg.function_call,
    }


def _build(fields: Mapping[str, Any]) -> Message:
    content = _coerce_content(fields.get("content"))
    if not is_valid_content(content):
        raise MessageFormatError(f"content of type {type(content).__name__} is not representable")

    name = fields.get("name")
    raw_calls = _field(fields, "tool_calls", "toolCalls")
    tool_calls: list[ToolCallRecord] = []
    if isinstance(raw_calls, (list, tuple)):
        for index, raw in enumerate(raw_calls):
            call = _coerce_tool_call(raw, index)
            if call is not None:
                tool_calls.append(call)

    tool_call_id = _field(fields, "tool_call_id", "toolCallId")

    return Message(
        role=_coerce_role(fields.get("role")),
        content=content,
        name=_safe_str(name) if name else None,
        tool_calls=tool_calls,
        tool_call_id=_safe_str(tool_call_id) if tool_call_id else None,
        function_call=_coerce_function_call(_field(fields, "function_call", "functionCall")),
    )


def normalize_message(value: Any) -> Message:
    """Return a canonical Message for any input value."""
    if value is None:
        return Message(role="user", content="")

    if isinstance(value, Message):
        fields = _fields_from_message(value)
    elif isinstance(value, BaseMessage):
        fields = _fields_from_langchain(value)
    elif isinstance(value, Mapping):
        fields = value
    else:
        return Message(role="user", content=_safe_str(value))

    try:
        return _build(fields)
    except MessageFormatError as exc:
        logger.warning("forcing empty content: %s", exc)
        return Message(role=_coerce_role(fields.get("role")), content="")
    except Exception:  # noqa: BLE001
        logger.exception("message normalization failed, substituting empty user message")
        return Message(role="user", content="")


def normalize_messages(values: Any, *, fallback_prompt: str = DEFAULT_FALLBACK_PROMPT) -> list[Message]:
    """Normalize a sequence of messages; the result is never empty."""
    if isinstance(values, (list, tuple)):
        result = [normalize_message(value) for value in values]
    else:
        result = [normalize_message(values)]

    if not result:
        logger.warning("empty message list, inserting fallback prompt")
        result = [Message(role="user", content=fallback_prompt)]
    return result
