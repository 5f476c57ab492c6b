"""pmtrack Configuration.

Includes:
- AppConfig: Main application settings with environment variable support
- LLMSettings: Inference backend used when extraction runs in LLM mode

Environment Variables:
    PMTRACK_DATA_PATH: Directory holding the .pmtrack folder
    PMTRACK_STORE_BACKEND: "memory" or "yaml"
    PMTRACK_SESSION_TTL_SECONDS: Idle lifetime of a conversation
    PMTRACK_EXTRACTOR: "regex" or "llm"
    PMTRACK_LLM__BACKEND: "ollama" or "openai"
    PMTRACK_LLM__MODEL: Model name served by the backend
    PMTRACK_LLM__ENDPOINT: Backend base URL
    PMTRACK_LLM__API_KEY: Bearer token for hosted APIs
    PMTRACK_KNOWN_ASSIGNEES: JSON list of people names
    PMTRACK_HOST / PMTRACK_PORT: HTTP bind address
"""

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_DIR = ".pmtrack"
CONFIG_FILE = "config.yaml"


class LLMSettings(BaseModel):
    """Inference backend settings for LLM extraction.

    Attributes:
        backend: Which HTTP API to talk to
        model: Model name as the server knows it
        endpoint: API base URL
        api_key: Optional bearer token (OpenAI-compatible only)
        temperature: Sampling temperature for extraction requests
        max_tokens: Completion limit for extraction requests
    """

    backend: Literal["ollama", "openai"] = "ollama"
    model: str = "llama3.2:latest"
    endpoint: str = "http://localhost:11434"
    api_key: Optional[str] = None
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=256, gt=0)


class AppConfig(BaseSettings):
    """Application configuration with environment variable support.

    Configuration is loaded from environment variables with PMTRACK_ prefix.
    For example, PMTRACK_SESSION_TTL_SECONDS sets session_ttl_seconds and
    PMTRACK_LLM__MODEL sets llm.model.

    Precedence (highest to lowest):
        1. Environment variables (PMTRACK_*)
        2. Config file (.pmtrack/config.yaml)
        3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="PMTRACK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    data_path: Path = Field(default_factory=Path.cwd)
    store_backend: Literal["memory", "yaml"] = "memory"
    session_ttl_seconds: int = Field(default=1800, ge=0)
    extractor: Literal["regex", "llm"] = "regex"
    llm: LLMSettings = Field(default_factory=LLMSettings)
    known_assignees: list[str] = Field(default_factory=lambda: ["Balak S", "Pratik M"])

    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def config_file(self) -> Path:
        """Get the config.yaml path for this data directory."""
        return self.data_path / CONFIG_DIR / CONFIG_FILE

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        """Load configuration from .pmtrack/config.yaml if it exists.

        Values set through the environment win over the file.

        Args:
            path: Data directory to load configuration for

        Returns:
            AppConfig merged from environment, file and defaults
        """
        from ruamel.yaml import YAML

        from_env = cls(data_path=path)
        config_file = from_env.config_file

        if not config_file.exists():
            return from_env

        yaml = YAML()
        with config_file.open() as f:
            data: dict[str, Any] = dict(yaml.load(f) or {})

        data.pop("data_path", None)
        merged = {k: v for k, v in data.items() if k not in from_env.model_fields_set}

        # Nested llm section merges per key
        if "llm" in data and "llm" in from_env.model_fields_set:
            merged["llm"] = {
                **dict(data["llm"] or {}),
                **from_env.llm.model_dump(exclude_unset=True),
            }

        return cls(data_path=path, **merged)

    def save(self) -> None:
        """Save configuration to .pmtrack/config.yaml in the data path."""
        from ruamel.yaml import YAML

        config_dir = self.data_path / CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        yaml = YAML()
        yaml.default_flow_style = False

        data = self.model_dump(mode="json", exclude={"data_path"})
        # Secrets stay in the environment
        data["llm"].pop("api_key", None)

        with self.config_file.open("w") as f:
            yaml.dump(data, f)


__all__ = ["AppConfig", "LLMSettings"]
