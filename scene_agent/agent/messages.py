"""Canonical message types shared by the normalizer, chat client and executor."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ROLES = ("system", "user", "assistant", "tool")
PART_TYPES = ("text", "image_url")

ContentPart = dict[str, Any]
Content = str | list[ContentPart]


@dataclass(slots=True)
class ToolCallRecord:
    id: str
    function_name: str
    arguments_json: str = "{}"

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.function_name,
                "arguments": self.arguments_json,
            },
        }


@dataclass(slots=True)
class FunctionCall:
    name: str
    arguments: str = "{}"


@dataclass(slots=True)
class Message:
    role: str = "user"
    content: Content = ""
    name: str | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    tool_call_id: str | None = None
    function_call: FunctionCall | None = None

    def to_wire(self) -> dict:
        """Render the OpenAI chat-completions message dict."""
        entry: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name:
            entry["name"] = self.name
        if self.tool_calls:
            entry["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id:
            entry["tool_call_id"] = self.tool_call_id
        if self.function_call is not None:
            entry["function_call"] = {
                "name": self.function_call.name,
                "arguments": self.function_call.arguments,
            }
        return entry


@dataclass(slots=True)
class AssistantMessage:
    content: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    repair_tier: int = 1

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


def is_valid_part_list(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    return all(isinstance(part, dict) and part.get("type") in PART_TYPES for part in value)


def is_valid_content(value: Any) -> bool:
    return isinstance(value, str) or is_valid_part_list(value)
