"""
executor.py — one agent turn as a LangGraph StateGraph.

Graph topology:
  START → start → thinking → [tool calls?] → tool_dispatch → thinking → ...
                           ↘ [answer / failure] → responding → END
  tool_dispatch → responding once the iteration cap is reached.
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from scene_agent.agent.chat_client import ChatModelClient
from scene_agent.agent.messages import Message, ToolCallRecord
from scene_agent.agent.normalizer import normalize_message
from scene_agent.agent.system_prompts import build_system_prompt
from scene_agent.agent.tool_registry import ToolRegistry
from scene_agent.errors import IterationLimitExceeded, user_safe_message

logger = logging.getLogger(__name__)

EMPTY_ANSWER_NOTICE = "I don't have anything more to add for this request."

Notify = Callable[[str, dict], Awaitable[None] | None]


@dataclass(slots=True)
class ScratchpadEntry:
    call: ToolCallRecord
    output: str
    is_error: bool = False
    thought: str = ""

    def to_messages(self) -> list[Message]:
        return [
            Message(role="assistant", content=self.thought, tool_calls=[self.call]),
            Message(role="tool", content=self.output, name=self.call.function_name, tool_call_id=self.call.id),
        ]


@dataclass(slots=True)
class TurnResult:
    output: str
    status: str
    iterations: int = 0
    scratchpad: list[ScratchpadEntry] = field(default_factory=list)
    error: str | None = None


class TurnState(TypedDict, total=False):
    user_input: Any
    history: Any
    scratchpad: list[ScratchpadEntry]
    iteration_count: int
    pending_calls: list[ToolCallRecord]
    output: str
    status: str  # "running" | "completed" | "degraded" | "failed"
    error: str | None
    notice: str


# ─── nodes ────────────────────────────────────────────────────────────────────

async def start_node(state: TurnState, config: RunnableConfig) -> dict:
    raw_input = state.get("user_input")
    text = raw_input if isinstance(raw_input, str) else ("" if raw_input is None else str(raw_input))

    raw_history = state.get("history")
    if raw_history is None:
        history: list[Message] = []
    elif isinstance(raw_history, (list, tuple)):
        history = [normalize_message(item) for item in raw_history]
    else:
        history = [normalize_message(raw_history)]

    return {
        "user_input": text,
        "history": history,
        "scratchpad": [],
        "iteration_count": 0,
        "pending_calls": [],
        "status": "running",
        "error": None,
    }


async def thinking_node(state: TurnState, config: RunnableConfig) -> dict:
    chat_client: ChatModelClient = config["configurable"]["chat_client"]
    registry: ToolRegistry = config["configurable"]["registry"]
    system_prompt: str = config["configurable"]["system_prompt"]
    request_id: str | None = config["configurable"].get("request_id")

    scratchpad = state.get("scratchpad", [])
    await _notify(config, "agent_thinking", {
        "content": "Reviewing tool results..." if scratchpad else "Thinking...",
        "requestId": request_id,
    })

    messages = [Message(role="system", content=system_prompt), *state.get("history", [])]
    messages.append(Message(role="user", content=state.get("user_input", "")))
    for entry in scratchpad:
        messages.extend(entry.to_messages())

    try:
        response = await chat_client.invoke(messages, tools=registry.descriptors())
    except Exception as exc:  # noqa: BLE001
        logger.error("turn failed while thinking: %s", exc, extra={"request_id": request_id, "outcome": "failed"})
        return {
            "status": "failed",
            "pending_calls": [],
            "error": f"{exc.__class__.__name__}: {exc}",
            "notice": user_safe_message(exc),
        }

    logger.debug(
        "thinking: repair_tier=%d tool_calls=%d",
        response.repair_tier,
        len(response.tool_calls),
        extra={"request_id": request_id},
    )
    if response.wants_tools:
        return {"pending_calls": list(response.tool_calls), "output": response.content}
    return {"pending_calls": [], "output": response.content, "status": "completed"}


async def tool_dispatch_node(state: TurnState, config: RunnableConfig) -> dict:
    registry: ToolRegistry = config["configurable"]["registry"]
    max_iterations: int = config["configurable"]["max_iterations"]
    request_id: str | None = config["configurable"].get("request_id")

    scratchpad = list(state.get("scratchpad", []))
    # Text sent alongside the tool calls rides on the first entry of the batch.
    thought = state.get("output") or ""
    for index, call in enumerate(state.get("pending_calls", [])):
        await _notify(config, "tool_started", {"tool": call.function_name, "requestId": request_id})
        output, ok = await registry.invoke(call.function_name, call.arguments_json)
        scratchpad.append(ScratchpadEntry(call=call, output=output, is_error=not ok, thought=thought if index == 0 else ""))
        await _notify(config, "tool_finished", {"tool": call.function_name, "ok": ok, "requestId": request_id})

    iteration_count = state.get("iteration_count", 0) + 1
    update: dict = {"scratchpad": scratchpad, "iteration_count": iteration_count, "pending_calls": [], "output": ""}
    if iteration_count >= max_iterations:
        limit = IterationLimitExceeded(max_iterations)
        logger.warning("iteration limit reached", extra={"request_id": request_id, "outcome": "degraded"})
        update.update({"status": "degraded", "error": str(limit), "notice": user_safe_message(limit)})
    return update


async def responding_node(state: TurnState, config: RunnableConfig) -> dict:
    status = state.get("status", "completed")
    if status in ("failed", "degraded"):
        return {"output": state.get("notice") or user_safe_message(RuntimeError())}
    output = (state.get("output") or "").strip()
    return {"output": output or EMPTY_ANSWER_NOTICE, "status": "completed"}


def route_after_thinking(state: TurnState) -> str:
    if state.get("status") == "failed":
        return "responding"
    if state.get("pending_calls"):
        return "tool_dispatch"
    return "responding"


def route_after_dispatch(state: TurnState) -> str:
    if state.get("status") == "degraded":
        return "responding"
    return "thinking"


def build_turn_graph():
    """Construct and compile the turn graph."""
    graph = StateGraph(TurnState)

    graph.add_node("start", start_node)
    graph.add_node("thinking", thinking_node)
    graph.add_node("tool_dispatch", tool_dispatch_node)
    graph.add_node("responding", responding_node)

    graph.set_entry_point("start")
    graph.add_edge("start", "thinking")
    graph.add_conditional_edges(
        "thinking",
        route_after_thinking,
        {"tool_dispatch": "tool_dispatch", "responding": "responding"},
    )
    graph.add_conditional_edges(
        "tool_dispatch",
        route_after_dispatch,
        {"thinking": "thinking", "responding": "responding"},
    )
    graph.add_edge("responding", END)

    return graph.compile()


class AgentExecutor:
    def __init__(
        self,
        chat_client: ChatModelClient,
        registry: ToolRegistry,
        *,
        max_iterations: int = 5,
        system_prompt: str | None = None,
        notify: Notify | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.chat_client = chat_client
        self.registry = registry
        self.max_iterations = max_iterations
        self.system_prompt = system_prompt or build_system_prompt(registry)
        self.notify = notify
        self.graph = build_turn_graph()

    async def invoke(self, input: Any, history: Any = None, *, request_id: str | None = None) -> TurnResult:
        config = {
            "configurable": {
                "chat_client": self.chat_client,
                "registry": self.registry,
                "system_prompt": self.system_prompt,
                "max_iterations": self.max_iterations,
                "notify": self.notify,
                "request_id": request_id,
            },
            "recursion_limit": self.max_iterations * 2 + 5,
        }
        try:
            final = await self.graph.ainvoke({"user_input": input, "history": history}, config=config)
        except Exception as exc:  # noqa: BLE001
            logger.exception("turn graph raised", extra={"request_id": request_id})
            return TurnResult(
                output=user_safe_message(exc),
                status="failed",
                error=f"{exc.__class__.__name__}: {exc}",
            )

        return TurnResult(
            output=final.get("output", ""),
            status=final.get("status", "completed"),
            iterations=final.get("iteration_count", 0),
            scratchpad=list(final.get("scratchpad", [])),
            error=final.get("error"),
        )


# ─── helpers ──────────────────────────────────────────────────────────────────

async def _notify(config: RunnableConfig, event_type: str, payload: dict) -> None:
    notify = config["configurable"].get("notify")
    if notify is None:
        return
    try:
        result = notify(event_type, payload)
        if inspect.isawaitable(result):
            await result
    except Exception:  # noqa: BLE001
        logger.warning("progress notification failed: %s", event_type, exc_info=True)
