"""Offline provider that echoes a truncated prompt. Used when no API is configured."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LocalProvider:
    name = "local"

    def __init__(self, preview_chars: int = 100) -> None:
        self.preview_chars = preview_chars

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        logger.debug("Local provider answering for model %s", model)
        return f"MOCK_RESULT for: {prompt[: self.preview_chars]}..."
