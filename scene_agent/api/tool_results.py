from __future__ import annotations

from fastapi import APIRouter, Depends

from scene_agent.deps import get_turn_service

router = APIRouter(prefix="/v1", tags=["tool-results"])


@router.post("/tool-results")
async def submit_tool_result(payload: dict, turn_service=Depends(get_turn_service)):
    matched = turn_service.resolve_tool_result(payload)
    return {"ok": True, "matched": matched}
