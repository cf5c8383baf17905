"""Configuration module for Cadence."""

from .settings import (
    DatabaseSettings,
    ObservabilitySettings,
    ServerSettings,
    Settings,
    SyncSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "ObservabilitySettings",
    "ServerSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
]
