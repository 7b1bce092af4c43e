"""Text-generation providers.

Public API:
    TextProvider      - Protocol every provider implements
    ProviderRegistry  - Lookup by provider identifier
    build_providers   - Registry wired from Settings and a shared httpx client
"""

from praxis.providers.base import ProviderRegistry, TextProvider
from praxis.providers.factory import build_providers

__all__ = ["ProviderRegistry", "TextProvider", "build_providers"]
