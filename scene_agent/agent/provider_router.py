from __future__ import annotations

from scene_agent.agent.providers.anthropic_provider import AnthropicBackend
from scene_agent.agent.providers.base import CompletionBackend
from scene_agent.agent.providers.mock_provider import MockBackend
from scene_agent.agent.providers.openai_provider import OpenAIBackend
from scene_agent.config import Settings

OPENAI_COMPATIBLE_PROVIDERS = {
    "openai",
    "deepseek",
    "qwen",
    "zhipu",
    "custom",
}


def build_backend(settings: Settings) -> CompletionBackend:
    provider = settings.provider
    if provider == "mock":
        return MockBackend()
    if not settings.api_key:
        raise ValueError(f"No API key configured for provider: {provider}")

    if provider in OPENAI_COMPATIBLE_PROVIDERS:
        return OpenAIBackend(
            model=settings.model,
            api_key=settings.api_key,
            base_url=settings.base_url,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    if provider == "azure":
        if not settings.azure_endpoint:
            raise ValueError("SCENE_AGENT_AZURE_ENDPOINT is required for provider: azure")
        return OpenAIBackend.for_azure(
            deployment=settings.azure_deployment or settings.model,
            api_key=settings.api_key,
            endpoint=settings.azure_endpoint,
            api_version=settings.azure_api_version,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    if provider == "anthropic":
        return AnthropicBackend(
            model=settings.model,
            api_key=settings.api_key,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    raise ValueError(f"Unsupported provider: {provider}")
