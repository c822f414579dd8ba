"""
Configuration and settings for Jarvis Assistant.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


def get_default_data_dir() -> Path:
    """Get the default directory for persisted assistant state."""
    return Path(os.environ.get("JARVIS_ASSISTANT_DATA_DIR", Path.home() / ".local" / "share" / "jarvis-assistant"))


class GatewayConfig(BaseModel):
    """Model backend configuration."""

    backend: Literal["gemini", "openai", "simple"] = Field(
        default_factory=lambda: os.environ.get("JARVIS_ASSISTANT_BACKEND", "gemini")
    )
    api_key: str | None = Field(
        default_factory=lambda: os.environ.get("JARVIS_ASSISTANT_API_KEY")
    )

    # Model per routing tier
    low_latency_model: str = Field(default="gemini-2.5-flash-lite")
    default_model: str = Field(default="gemini-2.5-flash")
    deep_reasoning_model: str = Field(default="gemini-2.5-pro")

    image_model: str = Field(default="imagen-4.0-generate-001")
    video_model: str = Field(default="veo-3.0-fast-generate-001")
    tts_model: str = Field(default="gemini-2.5-flash-preview-tts")

    request_timeout_s: float = Field(
        default_factory=lambda: float(os.environ.get("JARVIS_ASSISTANT_TIMEOUT", "60"))
    )


class RetryConfig(BaseModel):
    """Backoff for transient backend failures."""

    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=1000, ge=0)


class OrchestratorConfig(BaseModel):
    """Tool loop configuration."""

    history_window: int = Field(default=30, ge=1)
    max_tool_rounds: int = Field(default=10, ge=1)
    assistant_name: str = Field(default="J.A.R.V.I.S.")
    external_tools: list[str] = Field(default_factory=list)


class SpeechConfig(BaseModel):
    """Speech output configuration."""

    enabled: bool = Field(
        default_factory=lambda: os.environ.get("JARVIS_ASSISTANT_VOICE", "1") not in ("0", "false", "off")
    )
    voice: str = Field(default="Kore")
    sample_rate: int = Field(default=24000)
    cache_entries: int = Field(default=32, ge=0)
    output_device: int | None = Field(default=None)


class Config(BaseModel):
    """Main configuration."""

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    data_dir: Path = Field(default_factory=get_default_data_dir)
    memory_file: str | None = Field(default=None)  # Relative to data_dir unless absolute

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load a preset from a YAML file.

        Sections missing from the file keep their defaults; unknown top-level
        keys are ignored.
        """
        import yaml

        yaml_path = Path(path).expanduser()
        with open(yaml_path) as f:
            raw = yaml.safe_load(f) or {}

        return cls.model_validate({k: v for k, v in raw.items() if k in cls.model_fields})

    def memory_path(self) -> Path | None:
        if not self.memory_file:
            return None
        path = Path(self.memory_file).expanduser()
        return path if path.is_absolute() else self.data_dir / path


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration."""
    global _config
    _config = config
