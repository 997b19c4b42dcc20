from __future__ import annotations

import os

from fastapi import APIRouter

from scene_agent.config import load_settings
from scene_agent.observability.metrics import get_runtime_metrics

router = APIRouter(prefix="/v1", tags=["ops"])
settings = load_settings()
RUNTIME_VERSION = "0.1.0"


@router.get("/health")
async def health():
    return {
        "ok": True,
        "version": RUNTIME_VERSION,
        "provider": settings.provider,
        "runtime_status": "ok",
    }


@router.get("/version")
async def version():
    return {
        "runtime_version": RUNTIME_VERSION,
        "build": os.getenv("SCENE_AGENT_BUILD"),
        "commit": os.getenv("SCENE_AGENT_COMMIT"),
    }


@router.get("/metrics")
async def metrics():
    return get_runtime_metrics().snapshot()
