"""Abstract base class for LLM inference backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncGenerator


class InferenceBackend(ABC):
    """Abstract base class for HTTP-served LLM backends.

    Lifecycle:
    1. Create backend instance with model name and endpoint
    2. Call load() to open the HTTP client and verify the model
    3. Call generate_stream() or complete()
    4. Call unload() to close the client (must be idempotent)
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name as the server knows it."""
        ...

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """Check if the HTTP client is open."""
        ...

    @abstractmethod
    async def load(self) -> None:
        """Open the client and verify the model is served.

        Raises:
            ModelLoadError: If the server is unreachable or lacks the model
        """
        ...

    @abstractmethod
    async def unload(self) -> None:
        """Close the client. Must be idempotent."""
        ...

    @abstractmethod
    async def generate_stream(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> AsyncGenerator[str, None]:
        """Stream token generation.

        Args:
            messages: List of {"role": "user"|"assistant"|"system", "content": str}
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)
            json_output: Ask the server to constrain output to a JSON object

        Yields:
            String chunks (may be partial tokens)

        Raises:
            RuntimeError: If not loaded
            GenerationError: If generation fails mid-stream
        """
        ...
        # Make this a generator
        yield ""

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.7,
        json_output: bool = False,
    ) -> str:
        """Collect a full response from generate_stream()."""
        chunks: list[str] = []
        async for chunk in self.generate_stream(
            messages,
            max_tokens=max_tokens,
            temperature=temperature,
            json_output=json_output,
        ):
            chunks.append(chunk)
        return "".join(chunks)

    @classmethod
    @abstractmethod
    async def is_available(cls, endpoint: str) -> bool:
        """Check if the server answers at ``endpoint``."""
        ...


__all__ = ["InferenceBackend"]
