"""OpenAI-compatible HTTP backend for pmtrack.

Works against any server exposing /v1/models and a streaming
/v1/chat/completions endpoint: the OpenAI API itself, vLLM, LM Studio and
similar. Hosted APIs take a bearer token via ``api_key``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

import httpx

from . import GenerationError, ModelLoadError
from .base import InferenceBackend

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8000"


def _error_message(body: bytes | str, fallback: str) -> str:
    """Pull the OpenAI-style error message out of a response body."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return fallback
    if not isinstance(data, dict) or "error" not in data:
        return fallback
    detail = data["error"]
    if isinstance(detail, dict):
        detail = detail.get("message", detail)
    return f"API error: {detail}"


class OpenAICompatBackend(InferenceBackend):
    """HTTP client backend for OpenAI-style chat completion.

    Example:
        backend = OpenAICompatBackend("gpt-4o-mini", "https://api.openai.com", api_key)
        await backend.load()
        text = await backend.complete(messages, json_output=True)
        await backend.unload()
    """

    def __init__(
        self,
        model_name: str,
        endpoint: str = DEFAULT_ENDPOINT,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the backend.

        Args:
            model_name: Model id as listed by /v1/models
            endpoint: API base URL without the /v1 suffix
            api_key: Optional bearer token
            timeout: Per-request timeout in seconds
        """
        self._name = model_name
        self._endpoint = endpoint.rstrip("/")
        if self._endpoint.endswith("/v1"):
            self._endpoint = self._endpoint[: -len("/v1")]
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def model_name(self) -> str:
        return self._name

    @property
    def is_loaded(self) -> bool:
        return self._client is not None

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    async def load(self) -> None:
        """Open the client and check the model appears in /v1/models.

        Raises:
            ModelLoadError: If the server is unreachable or lacks the model
        """
        if self._client is not None:
            return

        client = httpx.AsyncClient(timeout=self._timeout, headers=self._headers())

        try:
            resp = await client.get(f"{self._endpoint}/v1/models")
        except httpx.ConnectError as e:
            await client.aclose()
            raise ModelLoadError(f"Cannot connect to {self._endpoint}. Is the server running?") from e
        except httpx.TimeoutException as e:
            await client.aclose()
            raise ModelLoadError(f"Timeout connecting to {self._endpoint}") from e

        if resp.status_code != 200:
            await client.aclose()
            raise ModelLoadError(
                _error_message(
                    resp.content,
                    f"Cannot list models at {self._endpoint} (status {resp.status_code})",
                )
            )

        available = [m.get("id") for m in resp.json().get("data", [])]
        if self._name not in available:
            await client.aclose()
            models_str = ", ".join(str(m) for m in available) if available else "none"
            raise ModelLoadError(
                f"Model '{self._name}' not served at {self._endpoint}. Available models: {models_str}"
            )

        self._client = client
        logger.info(f"OpenAI-compatible backend ready: {self._name} at {self._endpoint}")

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
        """Stream from /v1/chat/completions using server-sent events."""
        if not self.is_loaded:
            raise RuntimeError(
                "OpenAICompatBackend not loaded. Call load() before generate_stream()"
            )

        assert self._client is not None

        payload: dict[str, Any] = {
            "model": self._name,
            "messages": list(messages),
            "stream": True,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_output:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with self._client.stream(
                "POST", f"{self._endpoint}/v1/chat/completions", json=payload
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    raise GenerationError(
                        _error_message(body, f"API error (status {response.status_code})")
                    )

                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue

                    data_str = line[len("data: "):]
                    if data_str.strip() == "[DONE]":
                        break

                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue

                    choices = data.get("choices", [])
                    if not choices:
                        continue
                    content = choices[0].get("delta", {}).get("content", "")
                    if content:
                        yield content
                    if choices[0].get("finish_reason") is not None:
                        break

        except httpx.ConnectError as e:
            raise GenerationError(f"Lost connection to {self._endpoint}") from e
        except httpx.TimeoutException as e:
            raise GenerationError("Timeout during generation") from e

    @classmethod
    async def is_available(cls, endpoint: str = DEFAULT_ENDPOINT) -> bool:
        """Check /v1/models with a 2 second timeout."""
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                response = await client.get(f"{endpoint.rstrip('/')}/v1/models")
                return response.status_code == 200
        except httpx.HTTPError:
            return False


__all__ = ["OpenAICompatBackend"]
