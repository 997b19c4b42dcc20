"""
channel.py — outbound event delivery to the browser.

TransportChannel is the only thing the agent knows about the browser. BusChannel feeds
the per-session EventBus behind HTTP polling and SSE; WebSocketChannel writes straight
to an open socket.
"""
from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

from fastapi import WebSocket


def make_event(event_type: str, **fields: Any) -> dict[str, Any]:
    event: dict[str, Any] = {"type": event_type}
    event.update(fields)
    event["ts"] = datetime.now(tz=timezone.utc).isoformat()
    return event


class TransportChannel(ABC):
    @abstractmethod
    async def send(self, event: dict[str, Any]) -> None: ...


class EventBus:
    """Per-session fan-out to SSE subscribers plus a time-bounded backlog for polling."""

    def __init__(self, retention_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._subscribers: dict[str, set[asyncio.Queue[dict]]] = {}
        self._backlog: dict[str, deque[tuple[float, dict]]] = {}

    def _prune(self) -> None:
        # Sweeps every session so backlogs nobody polls still expire.
        cutoff = self._clock() - self.retention_seconds
        for session_id in list(self._backlog):
            backlog = self._backlog[session_id]
            while backlog and backlog[0][0] < cutoff:
                backlog.popleft()
            if not backlog:
                del self._backlog[session_id]

    def backlog_size(self) -> int:
        return sum(len(backlog) for backlog in self._backlog.values())

    async def publish(self, session_id: str, event: dict) -> None:
        self._prune()
        self._backlog.setdefault(session_id, deque()).append((self._clock(), event))
        for queue in list(self._subscribers.get(session_id, ())):
            await queue.put(event)

    def drain(self, session_id: str) -> list[dict]:
        self._prune()
        backlog = self._backlog.pop(session_id, None)
        return [event for _, event in backlog] if backlog else []

    async def subscribe(self, session_id: str) -> AsyncIterator[dict]:
        queue: asyncio.Queue[dict] = asyncio.Queue()
        self._subscribers.setdefault(session_id, set()).add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            queues = self._subscribers.get(session_id)
            if queues is not None:
                queues.discard(queue)
                if not queues:
                    del self._subscribers[session_id]


class BusChannel(TransportChannel):
    def __init__(self, bus: EventBus, session_id: str) -> None:
        self.bus = bus
        self.session_id = session_id

    async def send(self, event: dict[str, Any]) -> None:
        await self.bus.publish(self.session_id, event)


class WebSocketChannel(TransportChannel):
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, event: dict[str, Any]) -> None:
        await self.websocket.send_text(json.dumps(event, ensure_ascii=False))


async def stream_as_sse(event: dict[str, Any]) -> dict[str, str]:
    return {
        "event": event["type"],
        "data": json.dumps(event, ensure_ascii=False),
    }
