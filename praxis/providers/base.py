"""Provider protocol and the registry that resolves provider identifiers."""

from __future__ import annotations

import logging
from typing import Protocol

from praxis.errors import UpstreamError

logger = logging.getLogger(__name__)


class TextProvider(Protocol):
    """Anything that turns a prompt into text.

    Implementations raise UpstreamError on transport failures, non-2xx
    responses, or bodies they cannot read text out of.
    """

    name: str

    async def generate(self, prompt: str, model: str, temperature: float) -> str: ...


class ProviderRegistry:
    """Maps an agent's ``provider`` identifier to an implementation."""

    def __init__(self, providers: list[TextProvider] | None = None) -> None:
        self._providers: dict[str, TextProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: TextProvider) -> None:
        self._providers[provider.name.lower()] = provider

    def get(self, name: str) -> TextProvider:
        provider = self._providers.get((name or "").strip().lower())
        if provider is None:
            raise UpstreamError(f"Unknown provider: {name!r}", provider=name)
        return provider

    async def generate(self, name: str, prompt: str, model: str, temperature: float) -> str:
        """Call provider ``name``; any failure or non-text result surfaces as UpstreamError."""
        provider = self.get(name)
        try:
            text = await provider.generate(prompt, model, temperature)
        except UpstreamError:
            raise
        except Exception as e:
            logger.warning("Provider %s raised %s: %s", provider.name, type(e).__name__, e)
            raise UpstreamError(
                f"{provider.name} provider error: {type(e).__name__}: {e}", provider=provider.name
            ) from e
        if not isinstance(text, str):
            raise UpstreamError(f"{provider.name} returned {type(text).__name__}, not text", provider=provider.name)
        return text

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: str) -> bool:
        return (name or "").strip().lower() in self._providers
