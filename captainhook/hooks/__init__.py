"""Git hooks installation and management."""

from .install import (
    HookInstaller,
    HookInstallerError,
    PartialFailureError,
    TargetNotWritableError,
    check_hooks_status,
    install,
    install_report,
    uninstall,
)
from .templates import GENERATED_MARKER, is_generated, render_hook

__all__ = [
    "GENERATED_MARKER",
    "HookInstaller",
    "HookInstallerError",
    "PartialFailureError",
    "TargetNotWritableError",
    "check_hooks_status",
    "install",
    "install_report",
    "is_generated",
    "render_hook",
    "uninstall",
]
