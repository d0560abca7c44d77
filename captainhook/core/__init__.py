"""Core modules for captainhook."""

from .config_loader import ConfigLoadError, load_config, validate_config_file
from .models import (
    CaptainHookConfig,
    GitHook,
    HookConfiguration,
    HookStatus,
    InstallReport,
    UnrecognizedEventError,
)

__all__ = [
    # Models
    "CaptainHookConfig",
    "GitHook",
    "HookConfiguration",
    "HookStatus",
    "InstallReport",
    "UnrecognizedEventError",
    # Loaders
    "ConfigLoadError",
    "load_config",
    "validate_config_file",
]
