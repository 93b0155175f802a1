"""Configuration module for yearlists."""

from .settings import (
    DatabaseSettings,
    ListSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "ListSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
