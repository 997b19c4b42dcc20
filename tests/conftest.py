from __future__ import annotations

import importlib

import pytest
from fastapi.testclient import TestClient

import scene_agent.main as main_module


@pytest.fixture
def isolated_client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SCENE_AGENT_PROVIDER", "mock")
    monkeypatch.setenv("SCENE_AGENT_TOOL_TIMEOUT_SECONDS", "2")
    module = importlib.reload(main_module)
    with TestClient(module.app) as client:
        yield client
