"""LLM inference backends for pmtrack.

Backends are only needed when entity extraction runs in LLM mode:
- OllamaBackend: HTTP API wrapper for a local Ollama server
- OpenAICompatBackend: any /v1/chat/completions server (OpenAI, vLLM, LM Studio)

Usage:
    from pmtrack.core.backends import create_backend

    backend = create_backend(config.llm)
    await backend.load()
    text = await backend.complete(messages, json_output=True)
    await backend.unload()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import InferenceBackend

if TYPE_CHECKING:
    from ...config import LLMSettings


# Exceptions
class BackendError(Exception):
    """Base exception for backend errors."""

    pass


class ModelLoadError(BackendError):
    """Backend unreachable or model not served."""

    pass


class GenerationError(BackendError):
    """Error during text generation."""

    pass


def create_backend(settings: "LLMSettings") -> InferenceBackend:
    """Create the backend named by the LLM settings.

    Args:
        settings: LLM section of the application config

    Returns:
        Configured InferenceBackend instance (not yet loaded)

    Raises:
        ValueError: If the backend name is unknown
    """
    if settings.backend == "ollama":
        from .ollama import OllamaBackend

        return OllamaBackend(settings.model, endpoint=settings.endpoint)

    elif settings.backend == "openai":
        from .openai_compat import OpenAICompatBackend

        return OpenAICompatBackend(
            settings.model,
            endpoint=settings.endpoint,
            api_key=settings.api_key,
        )

    else:
        raise ValueError(f"Unknown backend: {settings.backend}")


__all__ = [
    # Base class
    "InferenceBackend",
    # Backends (lazy imported)
    "OllamaBackend",
    "OpenAICompatBackend",
    # Factory
    "create_backend",
    # Exceptions
    "BackendError",
    "ModelLoadError",
    "GenerationError",
]


def __getattr__(name: str):
    """Lazy import backends so httpx is only touched when needed."""
    if name == "OllamaBackend":
        from .ollama import OllamaBackend
        return OllamaBackend
    if name == "OpenAICompatBackend":
        from .openai_compat import OpenAICompatBackend
        return OpenAICompatBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
