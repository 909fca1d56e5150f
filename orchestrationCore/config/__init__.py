"""Configuration loading."""

from .settings import (
    DispatchSettings,
    ModelRoutingSettings,
    ObservabilitySettings,
    RecoverySettings,
    Settings,
    ValidationSettings,
    get_settings,
)
from .project_root import get_package_root, resolve_config_path

__all__ = [
    "DispatchSettings",
    "ModelRoutingSettings",
    "ObservabilitySettings",
    "RecoverySettings",
    "Settings",
    "ValidationSettings",
    "get_settings",
    "get_package_root",
    "resolve_config_path",
]
