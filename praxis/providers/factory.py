"""Build the provider registry from Settings."""

from __future__ import annotations

import httpx

from praxis.config import Settings
from praxis.providers.base import ProviderRegistry
from praxis.providers.local import LocalProvider
from praxis.providers.remote import AnthropicProvider, OllamaProvider, OpenAIProvider, OpenRouterProvider


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.provider_timeout_connect,
            read=settings.provider_timeout_read,
            write=settings.provider_timeout_connect,
            pool=settings.provider_timeout_connect,
        ),
        limits=httpx.Limits(
            max_connections=settings.provider_max_connections,
            max_keepalive_connections=settings.provider_max_keepalive,
        ),
    )


def build_providers(settings: Settings, http_client: httpx.AsyncClient) -> ProviderRegistry:
    """Every provider is registered; missing keys only fail when that provider is called."""
    max_tokens = settings.provider_max_tokens
    return ProviderRegistry(
        [
            OpenAIProvider(http_client, settings.openai_base_url, settings.openai_api_key, max_tokens),
            OpenRouterProvider(http_client, settings.openrouter_base_url, settings.openrouter_api_key, max_tokens),
            AnthropicProvider(http_client, settings.anthropic_base_url, settings.anthropic_api_key, max_tokens),
            OllamaProvider(http_client, settings.ollama_base_url, max_tokens=max_tokens),
            LocalProvider(),
        ]
    )
