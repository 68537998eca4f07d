"""Pydantic settings for multi-AI workflow configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml


class ResilienceConfig(BaseModel):
    """Circuit breaker, timeout and step retry configuration."""

    failure_threshold: int = 3
    reset_timeout: float = 300.0  # 5 min
    backend_timeout: float = 600.0  # 10 min
    max_concurrent_backends: int = 3
    step_retry_attempts: int = 2
    step_retry_min_wait: float = 1.0
    step_retry_max_wait: float = 30.0


class BackendModels(BaseModel):
    """Model tiers for a single backend."""

    primary: str | None = None
    fallback: str | None = None
    available: list[str] = Field(default_factory=list)


class ModelCatalog(BaseModel):
    """Model tiers for every backend."""

    qwen: BackendModels = Field(default_factory=lambda: BackendModels(
        primary="qwen3-coder-plus",
        fallback="qwen3-coder",
        available=["qwen3-coder-plus", "qwen3-coder"],
    ))
    gemini: BackendModels = Field(default_factory=lambda: BackendModels(
        primary="gemini-3-pro-preview",
        fallback="gemini-3-flash-preview",
        available=[
            "gemini-3-pro-preview",
            "gemini-3-flash-preview",
            "gemini-2.5-pro",
            "gemini-2.5-flash",
            "gemini-2.5-flash-lite",
        ],
    ))
    rovodev: BackendModels = Field(default_factory=BackendModels)
    cursor: BackendModels = Field(default_factory=lambda: BackendModels(
        available=[
            "gpt-5.1",
            "gpt-5",
            "composer-1",
            "sonnet-4.5",
            "haiku-4.5",
            "deepseek-v3.1",
        ],
    ))
    droid: BackendModels = Field(default_factory=lambda: BackendModels(
        available=["glm-4.6", "claude-sonnet-4-5", "gpt-5-codex"],
    ))

    def get_backend(self, backend: str) -> BackendModels:
        """Get model tiers for a backend (empty tiers if unknown)."""
        return getattr(self, backend, None) or BackendModels()


class Settings(BaseSettings):
    """Main settings for multi-AI workflows."""

    model_config = SettingsConfigDict(
        env_prefix="MULTI_AI_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # General
    debug: bool = False
    verbose: bool = False
    log_level: str = "INFO"

    # Resilience
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)

    # Backends
    models: ModelCatalog = Field(default_factory=ModelCatalog)
    executables: dict[str, str] = Field(default_factory=dict)

    # Permissions
    default_autonomy_level: str = "read-only"

    # Paths
    state_dir: str = ".multi_ai"
    audit_file: str = "audit.jsonl"

    def get_executable(self, backend: str, default: str) -> str:
        """Get the executable for a backend, honouring overrides."""
        return self.executables.get(backend, default)

    def audit_path(self, project_root: Path) -> Path:
        """Path of the audit trail file for a project."""
        return project_root / self.state_dir / self.audit_file


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_settings_from_yaml(yaml_path: Path) -> Settings:
    """Load settings from a YAML file."""
    with open(yaml_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return Settings.model_validate(data or {})


def get_default_config() -> dict[str, Any]:
    """Get default configuration as a dictionary."""
    return Settings().model_dump()
