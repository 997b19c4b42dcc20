"""
chat_client.py — sanitized chat-completion calls with a three-tier repair ladder.

Tier 1 sends the normalized history as-is. If the API rejects a message content
type, tier 2 resends every message as a plain {role, content} string pair. If that
also fails, tier 3 sends a single generic help request. Any other failure is raised
as ModelCallError without retrying.
"""
from __future__ import annotations

import logging
import re
from typing import Any

from scene_agent.agent.messages import AssistantMessage, Message
from scene_agent.agent.normalizer import normalize_messages, to_json_text
from scene_agent.agent.providers.base import CompletionBackend
from scene_agent.agent.tool_formatter import format_tools, to_openai_tool
from scene_agent.config import DEFAULT_FALLBACK_PROMPT, DEFAULT_REPAIR_PROMPT
from scene_agent.errors import MessageFormatError, ModelCallError
from scene_agent.observability.metrics import RuntimeMetrics, get_runtime_metrics

logger = logging.getLogger(__name__)

CONTENT_TYPE_ERROR_PATTERNS = [
    re.compile(r"invalid type for .?messages\[\d+\]\.content", re.IGNORECASE),
    re.compile(r"messages\[\d+\]\.content", re.IGNORECASE),
    re.compile(r"messages\.\d+\.content", re.IGNORECASE),
    re.compile(r"content.{0,80}(must be|expected).{0,40}(string|array)", re.IGNORECASE),
]


def _error_text(exc: BaseException) -> str:
    parts = [str(exc)]
    body = getattr(exc, "body", None)
    if body is not None:
        parts.append(body if isinstance(body, str) else repr(body))
    message = getattr(exc, "message", None)
    if isinstance(message, str):
        parts.append(message)
    return "\n".join(parts)


def is_content_type_error(exc: BaseException) -> bool:
    if isinstance(exc, MessageFormatError):
        return True
    text = _error_text(exc)
    return any(pattern.search(text) for pattern in CONTENT_TYPE_ERROR_PATTERNS)


def flatten_messages(messages: list[Message]) -> list[dict]:
    """Tier 2 payload: role and string content only."""
    flattened: list[dict] = []
    for msg in messages:
        content = msg.content if isinstance(msg.content, str) else to_json_text(msg.content)
        role = "user" if msg.role == "tool" else msg.role
        flattened.append({"role": role, "content": content})
    return flattened


class ChatModelClient:
    def __init__(
        self,
        backend: CompletionBackend,
        *,
        fallback_prompt: str = DEFAULT_FALLBACK_PROMPT,
        repair_prompt: str = DEFAULT_REPAIR_PROMPT,
        metrics: RuntimeMetrics | None = None,
    ) -> None:
        self.backend = backend
        self.fallback_prompt = fallback_prompt
        self.repair_prompt = repair_prompt
        self.metrics = metrics or get_runtime_metrics()

    async def _call(self, wire_messages: list[dict], wire_tools: list[dict] | None) -> AssistantMessage:
        self.metrics.model_calls_total += 1
        return await self.backend.complete(wire_messages, wire_tools)

    def _record_repair(self, tier: int, exc: BaseException) -> None:
        self.metrics.increment_repair(tier)
        logger.warning(
            "model call rejected, retrying with repair tier %d: %s",
            tier,
            exc,
            extra={"tier": tier, "outcome": "repair"},
        )

    async def invoke(self, messages: Any, *, tools: Any = None) -> AssistantMessage:
        normalized = normalize_messages(messages, fallback_prompt=self.fallback_prompt)
        wire_tools = [to_openai_tool(d) for d in format_tools(tools)] or None

        try:
            result = await self._call([m.to_wire() for m in normalized], wire_tools)
            result.repair_tier = 1
            return result
        except Exception as exc:  # noqa: BLE001
            original = exc
            if not is_content_type_error(exc):
                raise ModelCallError(f"Model call failed: {exc}", original=exc, attempts=1) from exc

        self._record_repair(2, original)
        try:
            result = await self._call(flatten_messages(normalized), wire_tools)
            result.repair_tier = 2
            return result
        except Exception as exc:  # noqa: BLE001
            self._record_repair(3, exc)

        try:
            result = await self._call([{"role": "user", "content": self.repair_prompt}], wire_tools)
            result.repair_tier = 3
            return result
        except Exception as exc:  # noqa: BLE001
            logger.error("model call failed after all repair tiers: %s", exc, extra={"tier": 3, "outcome": "failed"})
            raise ModelCallError(
                f"Model call failed after repair: {original}",
                original=original,
                attempts=3,
            ) from original
