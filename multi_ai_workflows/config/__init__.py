"""Configuration module for multi-AI workflows."""

from multi_ai_workflows.config.settings import (
    BackendModels,
    ResilienceConfig,
    Settings,
    get_settings,
    load_settings_from_yaml,
)

__all__ = [
    "BackendModels",
    "ResilienceConfig",
    "Settings",
    "get_settings",
    "load_settings_from_yaml",
]
