"""Matches tool results coming back from the browser to the invocation awaiting them."""
from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict

from scene_agent.errors import ToolTimeoutError

logger = logging.getLogger(__name__)

_sequence = itertools.count()


def new_request_id(prefix: str = "req") -> str:
    # Low byte is a counter so ids minted in the same millisecond still differ.
    suffix = (secrets.randbits(24) << 8) | (next(_sequence) & 0xFF)
    return f"{prefix}-{int(time.time() * 1000)}-{suffix:08x}"


@dataclass(slots=True)
class ToolInvocation:
    tool_name: str
    raw_arguments: Any
    request_id: str
    future: asyncio.Future = field(repr=False)
    deadline: asyncio.TimerHandle | None = field(default=None, repr=False)


class RequestCorrelator:
    def __init__(self, default_timeout: float | None = None) -> None:
        self.default_timeout = default_timeout
        self._pending: Dict[str, ToolInvocation] = {}

    def register(
        self,
        request_id: str,
        timeout: float | None = None,
        *,
        tool_name: str = "",
        raw_arguments: Any = None,
    ) -> asyncio.Future:
        if request_id in self._pending:
            raise ValueError(f"Request {request_id} is already pending")

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        invocation = ToolInvocation(
            tool_name=tool_name,
            raw_arguments=raw_arguments,
            request_id=request_id,
            future=future,
        )
        timeout = self.default_timeout if timeout is None else timeout
        if timeout is not None:
            invocation.deadline = loop.call_later(timeout, self._expire_after, request_id, timeout)
        self._pending[request_id] = invocation
        return future

    def resolve(self, request_id: str, result: Any) -> bool:
        invocation = self._pending.pop(request_id, None)
        if invocation is None:
            logger.debug("ignoring result for unknown request", extra={"request_id": request_id})
            return False
        if invocation.deadline is not None:
            invocation.deadline.cancel()
        if invocation.future.done():
            return False
        invocation.future.set_result(result)
        return True

    def _expire_after(self, request_id: str, timeout: float) -> None:
        invocation = self._pending.pop(request_id, None)
        if invocation is None or invocation.future.done():
            return
        logger.warning(
            "tool result timed out",
            extra={"request_id": request_id, "tool_name": invocation.tool_name, "outcome": "timeout"},
        )
        invocation.future.set_exception(ToolTimeoutError(request_id, timeout))

    def expire(self, request_id: str) -> bool:
        invocation = self._pending.pop(request_id, None)
        if invocation is None:
            return False
        if invocation.deadline is not None:
            invocation.deadline.cancel()
        if invocation.future.done():
            return False
        invocation.future.set_exception(ToolTimeoutError(request_id))
        return True

    def discard(self, request_id: str) -> None:
        """Drop an entry whose waiter has gone away, without failing its future."""
        invocation = self._pending.pop(request_id, None)
        if invocation is None:
            return
        if invocation.deadline is not None:
            invocation.deadline.cancel()
        if not invocation.future.done():
            invocation.future.cancel()

    def pending_count(self) -> int:
        return len(self._pending)

    def cancel_all(self) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for invocation in pending:
            if invocation.deadline is not None:
                invocation.deadline.cancel()
            if not invocation.future.done():
                invocation.future.cancel()
