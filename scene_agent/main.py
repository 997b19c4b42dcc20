from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scene_agent.agent.chat_client import ChatModelClient
from scene_agent.agent.provider_router import build_backend
from scene_agent.api import ops, sessions, tool_results, ws
from scene_agent.config import debug_enabled, load_settings
from scene_agent.deps import set_dependencies
from scene_agent.errors import error_from_exception
from scene_agent.observability.logging import get_runtime_logger
from scene_agent.services.correlator import RequestCorrelator
from scene_agent.services.turn_service import TurnService
from scene_agent.trace import TRACE_HEADER, get_current_trace_id, normalize_trace_id, set_current_trace_id
from scene_agent.transport.channel import EventBus

settings = load_settings()
logger = get_runtime_logger(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = build_backend(settings)
    chat_client = ChatModelClient(
        backend,
        fallback_prompt=settings.fallback_prompt,
        repair_prompt=settings.repair_prompt,
    )
    turn_service = TurnService(
        chat_client=chat_client,
        correlator=RequestCorrelator(default_timeout=settings.tool_timeout_seconds),
        max_iterations=settings.max_iterations,
        tool_timeout_seconds=settings.tool_timeout_seconds,
    )
    bus = EventBus(retention_seconds=settings.event_retention_seconds)
    set_dependencies(turn_service, bus)
    logger.info("runtime started", extra={"outcome": backend.name})

    yield

    await turn_service.shutdown()


app = FastAPI(title="Scene Agent Runtime", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    trace_id = normalize_trace_id(request.headers.get(TRACE_HEADER))
    request.state.trace_id = trace_id
    set_current_trace_id(trace_id)
    started = datetime.now(tz=timezone.utc)
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        status_code, payload = error_from_exception(exc, trace_id)
        response = JSONResponse(status_code=status_code, content=payload)
    duration_ms = int((datetime.now(tz=timezone.utc) - started).total_seconds() * 1000)
    logger.info(
        "http_request",
        extra={
            "trace_id": trace_id,
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "outcome": "ok" if response.status_code < 400 else "error",
        },
    )
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(Exception)
async def exception_handler(request: Request, exc: Exception):
    trace_id = str(getattr(request.state, "trace_id", get_current_trace_id()))
    status_code, payload = error_from_exception(exc, trace_id)
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await exception_handler(request, exc)


app.include_router(sessions.router)
app.include_router(tool_results.router)
app.include_router(ws.router)
app.include_router(ops.router)


def run() -> None:
    uvicorn.run(
        "scene_agent.main:app",
        host=settings.host,
        port=settings.port,
        reload=debug_enabled(),
        log_level=settings.log_level,
    )
