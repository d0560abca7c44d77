"""
captainhook - Git hooks from configuration

Installs generated Git hook scripts that run configured commands, and
removes them again when they are no longer configured. Commands can also
be run against the staged changes only.
"""

from .__version__ import __version__
from .core.models import GitHook, HookConfiguration, UnrecognizedEventError
from .git.staging import run_on_staged
from .hooks.install import (
    PartialFailureError,
    TargetNotWritableError,
    install,
    uninstall,
)

__all__ = [
    "__version__",
    "GitHook",
    "HookConfiguration",
    "PartialFailureError",
    "TargetNotWritableError",
    "UnrecognizedEventError",
    "install",
    "run_on_staged",
    "uninstall",
]
