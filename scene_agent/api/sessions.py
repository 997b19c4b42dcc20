from __future__ import annotations

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from scene_agent.deps import get_event_bus, get_turn_service
from scene_agent.errors import SceneAgentApiError
from scene_agent.transport.channel import BusChannel, stream_as_sse

router = APIRouter(prefix="/v1", tags=["sessions"])


@router.post("/sessions/{session_id}/input", status_code=202)
async def submit_input(
    session_id: str,
    payload: dict,
    turn_service=Depends(get_turn_service),
    bus=Depends(get_event_bus),
):
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        raise SceneAgentApiError(
            code="E_SCHEMA_INVALID",
            message="content must be a non-empty string.",
            retryable=False,
            status_code=400,
            details={"session_id": session_id},
            cause="missing_content",
        )
    request_id = turn_service.start_turn(
        session_id,
        content,
        payload.get("chatHistory"),
        BusChannel(bus, session_id),
    )
    return {"requestId": request_id}


@router.get("/sessions/{session_id}/messages")
async def poll_messages(session_id: str, bus=Depends(get_event_bus)):
    return {"messages": bus.drain(session_id)}


@router.get("/sessions/{session_id}/events")
async def stream_events(session_id: str, bus=Depends(get_event_bus)):
    async def event_generator():
        async for event in bus.subscribe(session_id):
            yield await stream_as_sse(event)

    return EventSourceResponse(event_generator())
