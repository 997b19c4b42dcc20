"""Offline scripted backend, used when no API key is configured and in tests."""
from __future__ import annotations

import json
import re

from scene_agent.agent.messages import AssistantMessage, ToolCallRecord
from scene_agent.agent.providers.base import CompletionBackend, new_call_id

COLORS = {
    "red": "0xff0000",
    "green": "0x00ff00",
    "blue": "0x0000ff",
    "yellow": "0xffff00",
    "white": "0xffffff",
    "orange": "0xff8800",
    "purple": "0x8800ff",
}
DEFAULT_COLOR = "green"


def _last_user_text(messages: list[dict]) -> str:
    for msg in reversed(messages):
        if msg.get("role") == "user" and isinstance(msg.get("content"), str):
            return msg["content"]
    return ""


def pick_color(text: str) -> str:
    lowered = text.lower()
    for color in COLORS:
        if re.search(rf"\b{color}\b", lowered):
            return color
    return DEFAULT_COLOR


def cube_code(color: str) -> str:
    return (
        "const geometry = new THREE.BoxGeometry(1, 1, 1);\n"
        f"const material = new THREE.MeshStandardMaterial({{ color: {COLORS[color]} }});\n"
        "const cube = new THREE.Mesh(geometry, material);\n"
        "cube.position.set(0, 0.5, 0);\n"
        "scene.add(cube);"
    )


class MockBackend(CompletionBackend):
    name = "mock"

    def __init__(self) -> None:
        self.calls: list[list[dict]] = []

    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> AssistantMessage:
        self.calls.append(messages)
        color = pick_color(_last_user_text(messages))

        if not tools:
            return AssistantMessage(content=cube_code(color))

        if messages and messages[-1].get("role") == "tool":
            return AssistantMessage(content=f"Done. I added a {color} cube to the scene.")

        arguments = {"code": cube_code(color), "mode": "replace"}
        return AssistantMessage(
            content="",
            tool_calls=[ToolCallRecord(
                id=new_call_id(),
                function_name="execute_code",
                arguments_json=json.dumps(arguments),
            )],
            finish_reason="tool_calls",
        )
