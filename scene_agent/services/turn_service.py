from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from scene_agent.agent.chat_client import ChatModelClient
from scene_agent.agent.executor import AgentExecutor, TurnResult
from scene_agent.agent.tool_registry import RemoteToolBridge, build_scene_registry
from scene_agent.observability.metrics import RuntimeMetrics, get_runtime_metrics
from scene_agent.services.correlator import RequestCorrelator, new_request_id
from scene_agent.trace import get_current_trace_id
from scene_agent.transport.channel import TransportChannel, make_event

logger = logging.getLogger(__name__)

TOOL_RESULT_EVENTS = {"tool_result", "tool_response"}


@dataclass(slots=True)
class _SessionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class TurnService:
    """Runs agent turns for browser sessions, one at a time per session."""

    def __init__(
        self,
        *,
        chat_client: ChatModelClient,
        correlator: RequestCorrelator,
        max_iterations: int = 5,
        tool_timeout_seconds: float = 30.0,
        metrics: RuntimeMetrics | None = None,
    ) -> None:
        self.chat_client = chat_client
        self.correlator = correlator
        self.max_iterations = max_iterations
        self.tool_timeout_seconds = tool_timeout_seconds
        self.metrics = metrics or get_runtime_metrics()
        self._locks: dict[str, _SessionLock] = {}
        self._tasks: set[asyncio.Task] = set()

    def start_turn(
        self,
        session_id: str,
        content: Any,
        history: Any,
        channel: TransportChannel,
    ) -> str:
        request_id = new_request_id("turn")
        task = asyncio.create_task(self.run_turn(session_id, content, history, channel, request_id=request_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request_id

    async def run_turn(
        self,
        session_id: str,
        content: Any,
        history: Any,
        channel: TransportChannel,
        *,
        request_id: str | None = None,
    ) -> TurnResult:
        request_id = request_id or new_request_id("turn")
        log_extra = {"trace_id": get_current_trace_id(), "session_id": session_id, "request_id": request_id}

        async with self._session_lock(session_id):
            self.metrics.turns_total += 1
            started = time.monotonic()

            async def notify(event_type: str, payload: dict) -> None:
                await channel.send(make_event(event_type, **payload))

            bridge = RemoteToolBridge(self.correlator, channel, self.tool_timeout_seconds)
            executor = AgentExecutor(
                self.chat_client,
                build_scene_registry(bridge, self.chat_client),
                max_iterations=self.max_iterations,
                notify=notify,
            )
            result = await executor.invoke(content, history, request_id=request_id)

            if result.status == "failed":
                self.metrics.turns_failed_total += 1
            elif result.status == "degraded":
                self.metrics.turns_degraded_total += 1

            logger.info(
                "turn finished",
                extra={
                    **log_extra,
                    "outcome": result.status,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )

            await self._send(channel, make_event("agent_message", content=result.output, requestId=request_id), log_extra)
            await self._send(channel, make_event("agent_complete", requestId=request_id), log_extra)
            return result

    def resolve_tool_result(self, payload: dict) -> bool:
        request_id = payload.get("requestId") or payload.get("request_id")
        if not isinstance(request_id, str) or not request_id:
            raise ValueError("tool result is missing requestId")
        matched = self.correlator.resolve(request_id, payload.get("result"))
        if not matched:
            logger.info("tool result did not match a pending request", extra={"request_id": request_id})
        return matched

    async def handle_event(self, session_id: str, event: Any, channel: TransportChannel) -> None:
        """Dispatch one inbound event from a socket."""
        if not isinstance(event, dict):
            await channel.send(make_event("error", message="Event must be a JSON object."))
            return

        event_type = event.get("type")
        if event_type == "user_input":
            content = event.get("content")
            if not isinstance(content, str) or not content.strip():
                await channel.send(make_event("error", message="user_input requires non-empty content."))
                return
            self.start_turn(session_id, content, event.get("chatHistory"), channel)
        elif event_type in TOOL_RESULT_EVENTS:
            try:
                self.resolve_tool_result(event)
            except ValueError as exc:
                await channel.send(make_event("error", message=str(exc)))
        else:
            await channel.send(make_event("error", message=f"Unknown event type: {event_type}"))

    async def shutdown(self) -> None:
        self.correlator.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        # Entries live only while a turn holds or waits on them.
        entry = self._locks.setdefault(session_id, _SessionLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(session_id) is entry:
                del self._locks[session_id]

    def active_sessions(self) -> int:
        return len(self._locks)

    async def _send(self, channel: TransportChannel, event: dict, log_extra: dict) -> None:
        try:
            await channel.send(event)
        except Exception:  # noqa: BLE001
            logger.warning("could not deliver %s", event["type"], extra=log_extra, exc_info=True)
