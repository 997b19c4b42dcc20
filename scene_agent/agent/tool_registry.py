"""Tool registry: the scene tools, their schemas, and dispatch."""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any

from scene_agent.agent.system_prompts import CODE_GENERATION_PROMPT, build_code_request
from scene_agent.agent.tool_formatter import ToolDescriptor, format_tool
from scene_agent.errors import ToolExecutionError, ToolTimeoutError
from scene_agent.observability.metrics import RuntimeMetrics, get_runtime_metrics
from scene_agent.security.code_guard import check_code, validate_scene_code
from scene_agent.services.correlator import RequestCorrelator, new_request_id
from scene_agent.transport.channel import TransportChannel, make_event

if TYPE_CHECKING:
    from scene_agent.agent.chat_client import ChatModelClient

logger = logging.getLogger(__name__)

EXECUTION_MODES = ("replace", "append")
_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)


def _failure(error: str) -> str:
    return json.dumps({"success": False, "error": error}, ensure_ascii=False)


def _is_failure(result: Any) -> bool:
    return isinstance(result, dict) and result.get("success") is False


class ToolRegistry:
    def __init__(self, metrics: RuntimeMetrics | None = None) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self.metrics = metrics or get_runtime_metrics()

    def register(self, tool: Any) -> ToolDescriptor:
        descriptor = format_tool(tool, len(self._tools))
        if descriptor is None:
            raise ValueError("Cannot register an empty tool definition")
        self._tools[descriptor.name] = descriptor
        return descriptor

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    async def invoke(self, name: str, raw_arguments: Any) -> tuple[str, bool]:
        """Run a tool and return (result text, ok). Never raises."""
        descriptor = self._tools.get(name)
        if descriptor is None or descriptor.handler is None:
            logger.warning("unknown tool requested", extra={"tool_name": name, "outcome": "unknown"})
            return _failure(f"Unknown tool: {name}"), False

        if isinstance(raw_arguments, str):
            try:
                args = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError as exc:
                return _failure(f"Arguments are not valid JSON: {exc.msg}"), False
        else:
            args = raw_arguments if raw_arguments is not None else {}
        if not isinstance(args, dict):
            return _failure("Arguments must be a JSON object"), False

        self.metrics.increment_tool_call(name)
        started = time.monotonic()
        outcome = "ok"
        try:
            if inspect.iscoroutinefunction(descriptor.handler):
                result = await descriptor.handler(**args)
            else:
                result = await asyncio.to_thread(descriptor.handler, **args)
        except ToolTimeoutError as exc:
            self.metrics.tool_timeouts_total += 1
            outcome = "timeout"
            return _failure(str(exc)), False
        except ToolExecutionError as exc:
            outcome = "error"
            return _failure(str(exc)), False
        except Exception as exc:  # noqa: BLE001
            outcome = "error"
            logger.exception("tool handler raised", extra={"tool_name": name})
            return _failure(f"{exc.__class__.__name__}: {exc}"), False
        finally:
            logger.info(
                "tool finished",
                extra={
                    "tool_name": name,
                    "outcome": outcome,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                },
            )

        if isinstance(result, str):
            return result, True
        return json.dumps(result, ensure_ascii=False, default=str), not _is_failure(result)


class RemoteToolBridge:
    """Sends a request event to the browser and waits for the matching tool_result."""

    def __init__(self, correlator: RequestCorrelator, channel: TransportChannel, timeout: float | None = 30.0) -> None:
        self.correlator = correlator
        self.channel = channel
        self.timeout = timeout

    async def request(self, event_type: str, payload: dict, *, tool_name: str = "", prefix: str = "tool") -> Any:
        request_id = new_request_id(prefix)
        future = self.correlator.register(
            request_id,
            self.timeout,
            tool_name=tool_name,
            raw_arguments=payload,
        )
        try:
            await self.channel.send(make_event(event_type, requestId=request_id, **payload))
            return await future
        finally:
            self.correlator.discard(request_id)


def strip_code_fences(text: str) -> str:
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def build_scene_tools(bridge: RemoteToolBridge, chat_client: ChatModelClient) -> list[ToolDescriptor]:
    """Build the scene tool set bound to one browser session."""

    async def generate_code(description: str, complexity: str = "medium") -> dict:
        response = await chat_client.invoke([
            {"role": "system", "content": CODE_GENERATION_PROMPT},
            {"role": "user", "content": build_code_request(description, complexity)},
        ])
        code = strip_code_fences(response.content)
        if not code:
            return {"success": False, "error": "The model returned no code.", "description": description}
        return {"success": True, "code": code, "description": description}

    async def execute_code(code: str, mode: str = "replace") -> Any:
        if mode not in EXECUTION_MODES:
            raise ToolExecutionError(f"Unsupported execution mode: {mode}")
        check_code(code)
        result = await bridge.request(
            "code_execution",
            {"code": code, "mode": mode},
            tool_name="execute_code",
            prefix="exec",
        )
        return result if isinstance(result, dict) else {"success": True, "result": result}

    def validate_code(code: str) -> dict:
        valid, reason = validate_scene_code(code)
        return {"valid": valid, "reason": reason}

    async def capture_screenshot(quality: float = 0.8, view: str = "current") -> Any:
        quality = min(max(float(quality), 0.0), 1.0)
        return await bridge.request(
            "screenshot_request",
            {"quality": quality, "view": view},
            tool_name="capture_screenshot",
            prefix="screenshot",
        )

    async def analyze_scene(detail: str = "basic", focus: str | None = None) -> Any:
        return await bridge.request(
            "scene_analysis_request",
            {"detail": detail, "focus": focus},
            tool_name="analyze_scene",
            prefix="analysis",
        )

    return [
        ToolDescriptor(
            name="generate_code",
            description="Generate Three.js code for a 3D scene from a description. Returns the code; does not run it.",
            parameter_schema={
                "type": "object",
                "properties": {
                    "description": {"type": "string", "description": "What the scene should contain"},
                    "complexity": {
                        "type": "string",
                        "enum": ["simple", "medium", "complex"],
                        "description": "How detailed the scene should be (default: medium)",
                    },
                },
                "required": ["description"],
            },
            handler=generate_code,
        ),
        ToolDescriptor(
            name="execute_code",
            description="Run Three.js code in the browser scene and report whether it succeeded.",
            parameter_schema={
                "type": "object",
                "properties": {
                    "code": {"type": "string", "description": "Plain JavaScript using the existing scene"},
                    "mode": {
                        "type": "string",
                        "enum": list(EXECUTION_MODES),
                        "description": "'replace' clears the scene first, 'append' adds to it",
                    },
                },
                "required": ["code"],
            },
            handler=execute_code,
        ),
        ToolDescriptor(
            name="validate_code",
            description="Check Three.js code for required calls and blocked constructs without running it.",
            parameter_schema={
                "type": "object",
                "properties": {
                    "code": {"type": "string", "description": "Code to check"},
                },
                "required": ["code"],
            },
            handler=validate_code,
        ),
        ToolDescriptor(
            name="capture_screenshot",
            description="Capture a screenshot of the current 3D scene.",
            parameter_schema={
                "type": "object",
                "properties": {
                    "quality": {"type": "number", "description": "Image quality 0-1 (default: 0.8)"},
                    "view": {"type": "string", "description": "Viewpoint: current, front, top, side"},
                },
                "required": [],
            },
            handler=capture_screenshot,
        ),
        ToolDescriptor(
            name="analyze_scene",
            description="Analyze the structure and performance of the current 3D scene.",
            parameter_schema={
                "type": "object",
                "properties": {
                    "detail": {"type": "string", "description": "Level of detail: basic, detailed"},
                    "focus": {"type": "string", "description": "Object or property to focus on"},
                },
                "required": [],
            },
            handler=analyze_scene,
        ),
    ]


def build_scene_registry(bridge: RemoteToolBridge, chat_client: ChatModelClient) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in build_scene_tools(bridge, chat_client):
        registry.register(tool)
    return registry
