from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from scene_agent.deps import get_turn_service
from scene_agent.trace import TRACE_HEADER, normalize_trace_id, set_current_trace_id
from scene_agent.transport.channel import WebSocketChannel, make_event

router = APIRouter(tags=["ws"])
logger = logging.getLogger(__name__)


@router.websocket("/ws/{session_id}")
async def session_socket(websocket: WebSocket, session_id: str):
    turn_service = get_turn_service()
    set_current_trace_id(normalize_trace_id(websocket.headers.get(TRACE_HEADER)))
    await websocket.accept()
    channel = WebSocketChannel(websocket)
    await channel.send(make_event("connection_established", sessionId=session_id))
    logger.info("websocket connected", extra={"session_id": session_id})

    try:
        while True:
            frame = await websocket.receive_text()
            try:
                event = json.loads(frame)
            except json.JSONDecodeError:
                await channel.send(make_event("error", message="Frame is not valid JSON."))
                continue
            await turn_service.handle_event(session_id, event, channel)
    except WebSocketDisconnect:
        logger.info("websocket disconnected", extra={"session_id": session_id})
