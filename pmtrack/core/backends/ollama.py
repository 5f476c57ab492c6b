"""Ollama HTTP backend for pmtrack.

Talks to a running Ollama server. Ollama loads and evicts models on its
own, so this backend only owns the HTTP client.

Ollama API documentation: https://github.com/ollama/ollama/blob/main/docs/api.md
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

import httpx

from . import GenerationError, ModelLoadError
from .base import InferenceBackend

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434"


def _error_message(body: bytes | str, fallback: str) -> str:
    """Pull Ollama's {"error": ...} text out of a response body."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return fallback
    if isinstance(data, dict) and "error" in data:
        return f"Ollama error: {data['error']}"
    return fallback


class OllamaBackend(InferenceBackend):
    """HTTP client backend for Ollama chat completion.

    Example:
        backend = OllamaBackend("llama3.2:latest")
        await backend.load()  # Verifies the model is pulled
        text = await backend.complete(messages, json_output=True)
        await backend.unload()
    """

    def __init__(
        self,
        model_name: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the Ollama backend.

        Args:
            model_name: Name of the model in Ollama (e.g., "llama3.2:latest")
            endpoint: Ollama API base URL
            timeout: Per-request timeout in seconds
        """
        self._name = model_name
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def model_name(self) -> str:
        return self._name

    @property
    def is_loaded(self) -> bool:
        return self._client is not None

    async def load(self) -> None:
        """Open the client and check the model via /api/show.

        Raises:
            ModelLoadError: If the model is missing or Ollama is unreachable
        """
        if self._client is not None:
            return

        client = httpx.AsyncClient(timeout=self._timeout)

        try:
            resp = await client.post(f"{self._endpoint}/api/show", json={"name": self._name})
        except httpx.ConnectError as e:
            await client.aclose()
            raise ModelLoadError(
                f"Cannot connect to Ollama at {self._endpoint}. Is Ollama running?"
            ) from e
        except httpx.TimeoutException as e:
            await client.aclose()
            raise ModelLoadError(f"Timeout connecting to Ollama at {self._endpoint}") from e

        if resp.status_code != 200:
            await client.aclose()
            raise ModelLoadError(
                _error_message(resp.content, f"Model '{self._name}' not found in Ollama")
            )

        self._client = client
        logger.info(f"Ollama backend ready: {self._name} at {self._endpoint}")

    async def unload(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def generate_stream(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> AsyncGenerator[str, None]:
        """Stream from /api/chat, one JSON object per line."""
        if not self.is_loaded:
            raise RuntimeError("OllamaBackend not loaded. Call load() before generate_stream()")

        assert self._client is not None

        payload: dict[str, Any] = {
            "model": self._name,
            "messages": list(messages),
            "stream": True,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        if json_output:
            payload["format"] = "json"

        try:
            async with self._client.stream(
                "POST", f"{self._endpoint}/api/chat", json=payload
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    raise GenerationError(
                        _error_message(body, f"Ollama API error (status {response.status_code})")
                    )

                async for line in response.aiter_lines():
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    content = data.get("message", {}).get("content", "")
                    if content:
                        yield content
                    if data.get("done", False):
                        break

        except httpx.ConnectError as e:
            raise GenerationError(f"Lost connection to Ollama at {self._endpoint}") from e
        except httpx.TimeoutException as e:
            raise GenerationError("Timeout during generation - Ollama may be overloaded") from e

    @classmethod
    async def is_available(cls, endpoint: str = DEFAULT_ENDPOINT) -> bool:
        """Check /api/tags with a 2 second timeout."""
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                response = await client.get(f"{endpoint.rstrip('/')}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False


__all__ = ["OllamaBackend"]
