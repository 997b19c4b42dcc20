"""Completion backend base type: takes OpenAI wire messages, returns an AssistantMessage."""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from scene_agent.agent.messages import AssistantMessage


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:8]}"


class CompletionBackend(ABC):
    name: str = "base"

    @abstractmethod
    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> AssistantMessage: ...
