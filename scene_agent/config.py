from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_FALLBACK_PROMPT = "Please help me with Three.js code generation."
DEFAULT_REPAIR_PROMPT = "I need help with Three.js code generation."

_API_KEY_ENV_BY_PROVIDER = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    provider: str
    model: str
    api_key: str
    base_url: str | None
    azure_endpoint: str | None
    azure_api_version: str
    azure_deployment: str | None
    temperature: float
    max_tokens: int
    max_iterations: int
    tool_timeout_seconds: float
    event_retention_seconds: float
    fallback_prompt: str
    repair_prompt: str
    log_level: str


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def load_settings() -> Settings:
    provider = os.getenv("SCENE_AGENT_PROVIDER", "mock").strip().lower() or "mock"
    api_key = os.getenv("SCENE_AGENT_API_KEY", "").strip()
    if not api_key and provider in _API_KEY_ENV_BY_PROVIDER:
        api_key = os.getenv(_API_KEY_ENV_BY_PROVIDER[provider], "").strip()

    max_iterations = int(os.getenv("SCENE_AGENT_MAX_ITERATIONS", "5"))
    if max_iterations < 1:
        raise RuntimeError("SCENE_AGENT_MAX_ITERATIONS must be at least 1")

    return Settings(
        host=os.getenv("SCENE_AGENT_HOST", "127.0.0.1"),
        port=int(os.getenv("SCENE_AGENT_PORT", "3001")),
        provider=provider,
        model=os.getenv("SCENE_AGENT_MODEL", "gpt-4o"),
        api_key=api_key,
        base_url=_optional("SCENE_AGENT_BASE_URL"),
        azure_endpoint=_optional("SCENE_AGENT_AZURE_ENDPOINT") or _optional("AZURE_OPENAI_ENDPOINT"),
        azure_api_version=os.getenv("SCENE_AGENT_AZURE_API_VERSION", "2024-02-15-preview"),
        azure_deployment=_optional("SCENE_AGENT_AZURE_DEPLOYMENT")
        or _optional("AZURE_OPENAI_API_DEPLOYMENT_NAME"),
        temperature=float(os.getenv("SCENE_AGENT_TEMPERATURE", "0")),
        max_tokens=int(os.getenv("SCENE_AGENT_MAX_TOKENS", "4096")),
        max_iterations=max_iterations,
        tool_timeout_seconds=float(os.getenv("SCENE_AGENT_TOOL_TIMEOUT_SECONDS", "30")),
        event_retention_seconds=float(os.getenv("SCENE_AGENT_EVENT_RETENTION_SECONDS", "30")),
        fallback_prompt=os.getenv("SCENE_AGENT_FALLBACK_PROMPT", DEFAULT_FALLBACK_PROMPT),
        repair_prompt=os.getenv("SCENE_AGENT_REPAIR_PROMPT", DEFAULT_REPAIR_PROMPT),
        log_level=os.getenv("SCENE_AGENT_LOG_LEVEL", "info").strip().lower(),
    )


def debug_enabled() -> bool:
    return _parse_bool(os.getenv("SCENE_AGENT_DEBUG"), False)
