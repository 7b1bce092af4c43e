"""HTTP providers on a shared httpx.AsyncClient.

One request per call, no retries: a failure becomes UpstreamError and the
caller records it.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from praxis.errors import UpstreamError

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class HttpProvider:
    """Shared POST + error mapping for the JSON APIs below."""

    name = "http"

    def __init__(
        self, http_client: httpx.AsyncClient, base_url: str, api_key: str = "", max_tokens: int = 1000
    ) -> None:
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_tokens = max_tokens

    def _headers(self) -> dict[str, str]:
        return {"content-type": "application/json"}

    def _require_key(self) -> None:
        if not self.api_key:
            raise UpstreamError(f"{self.name} API key is not configured", provider=self.name)

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(f"{self.base_url}{path}", json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("%s request failed: %s", self.name, e)
            raise UpstreamError(f"{self.name} request failed: {e}", provider=self.name) from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning("%s returned HTTP %d", self.name, response.status_code)
            raise UpstreamError(
                f"{self.name} request failed: {response.status_code} {response.text[:500]}",
                provider=self.name,
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise UpstreamError(f"{self.name} returned a non-JSON body", provider=self.name) from e
        if not isinstance(data, dict):
            raise UpstreamError(f"{self.name} returned an unexpected body", provider=self.name)
        return data

    def _malformed(self, data: dict[str, Any]) -> UpstreamError:
        return UpstreamError(f"{self.name} response had no text: {json.dumps(data)[:200]}", provider=self.name)


class OpenAIProvider(HttpProvider):
    """Chat Completions API (also the wire format OpenRouter speaks)."""

    name = "openai"

    def _headers(self) -> dict[str, str]:
        return {"content-type": "application/json", "authorization": f"Bearer {self.api_key}"}

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        self._require_key()
        data = await self._post(
            "/chat/completions",
            {
                "model": model,
                "temperature": temperature,
                "max_tokens": self.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise self._malformed(data) from e
        if not isinstance(content, str):
            raise self._malformed(data)
        return content


class OpenRouterProvider(OpenAIProvider):
    name = "openrouter"


class AnthropicProvider(HttpProvider):
    name = "anthropic"

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        self._require_key()
        data = await self._post(
            "/v1/messages",
            {
                "model": model,
                "max_tokens": self.max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise self._malformed(data)
        text = "".join(
            b["text"]
            for b in blocks
            if isinstance(b, dict) and b.get("type", "text") == "text" and isinstance(b.get("text"), str)
        )
        if not text:
            raise self._malformed(data)
        return text


class OllamaProvider(HttpProvider):
    """Local Ollama server; requests a single non-streamed JSON response."""

    name = "ollama"

    async def generate(self, prompt: str, model: str, temperature: float) -> str:
        data = await self._post(
            "/api/generate",
            {
                "model": model or "llama3",
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": temperature},
            },
        )
        text = data.get("response")
        if not isinstance(text, str):
            raise self._malformed(data)
        return text
