"""
captainhook - Core Data Models
Hook events, hook configuration and install results.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Union


# =============================================================================
# Exceptions
# =============================================================================

class UnrecognizedEventError(ValueError):
    """Configuration names a hook event Git does not know about."""

    def __init__(self, names: List[str]):
        self.names = sorted(names)
        super().__init__(
            f"Unrecognized hook event(s): {', '.join(self.names)}. "
            "Run 'captainhook hooks' to list supported events."
        )


# =============================================================================
# Enums
# =============================================================================

class GitHook(str, Enum):
    """
    The hook events documented by Git.

    See https://git-scm.com/docs/githooks
    """
    APPLYPATCH_MSG = "applypatch-msg"
    PRE_APPLYPATCH = "pre-applypatch"
    POST_APPLYPATCH = "post-applypatch"
    PRE_COMMIT = "pre-commit"
    PRE_MERGE_COMMIT = "pre-merge-commit"
    PREPARE_COMMIT_MSG = "prepare-commit-msg"
    COMMIT_MSG = "commit-msg"
    POST_COMMIT = "post-commit"
    PRE_REBASE = "pre-rebase"
    POST_CHECKOUT = "post-checkout"
    POST_MERGE = "post-merge"
    PRE_PUSH = "pre-push"
    PRE_RECEIVE = "pre-receive"
    UPDATE = "update"
    POST_RECEIVE = "post-receive"
    POST_UPDATE = "post-update"
    PUSH_TO_CHECKOUT = "push-to-checkout"
    PRE_AUTO_GC = "pre-auto-gc"
    POST_REWRITE = "post-rewrite"
    SENDEMAIL_VALIDATE = "sendemail-validate"

    @property
    def hook_name(self) -> str:
        """File name Git looks for in the hooks directory."""
        return self.value

    @classmethod
    def from_name(cls, name: Union[str, "GitHook"]) -> "GitHook":
        """Looks up an event by its Git name, raising UnrecognizedEventError."""
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise UnrecognizedEventError([str(name)]) from None


# =============================================================================
# Hook Configuration
# =============================================================================

@dataclass(frozen=True)
class HookConfiguration:
    """
    Immutable mapping from hook event to the command it runs.

    Events without a command are not part of the configuration: their
    hooks are not installed, and previously generated ones are removed.
    """
    commands: Mapping[GitHook, str] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only private copy
        object.__setattr__(self, "commands", MappingProxyType(dict(self.commands)))

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[Union[str, GitHook], Optional[str]],
    ) -> "HookConfiguration":
        """
        Validates and builds a configuration from user-supplied values.

        Args:
            mapping: Event name (or GitHook) -> command. None, empty and
                     whitespace-only commands mean "absent".

        Returns:
            HookConfiguration

        Raises:
            UnrecognizedEventError: If any key is not a Git hook event.
                                    All bad names are reported at once.
            TypeError: If a command is not a string.
        """
        unknown = [
            str(name) for name in mapping
            if not isinstance(name, GitHook) and name not in _HOOK_NAMES
        ]
        if unknown:
            raise UnrecognizedEventError(unknown)

        commands: Dict[GitHook, str] = {}
        for name, command in mapping.items():
            if command is None:
                continue
            if not isinstance(command, str):
                raise TypeError(
                    f"Command for '{name}' must be a string, got {type(command).__name__}"
                )
            if not command.strip():
                continue
            commands[GitHook.from_name(name)] = command

        return cls(commands)

    def get(self, hook: GitHook) -> Optional[str]:
        return self.commands.get(hook)

    def __contains__(self, hook: object) -> bool:
        return hook in self.commands

    def __iter__(self) -> Iterator[GitHook]:
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)


_HOOK_NAMES = frozenset(hook.value for hook in GitHook)


@dataclass(frozen=True)
class CaptainHookConfig:
    """Everything read from a .captainhook.yaml file."""
    hooks: HookConfiguration = field(default_factory=HookConfiguration)
    file_mode: int = 0o755
    backup: bool = True
    source_file: str = "unknown"


# =============================================================================
# Results
# =============================================================================

@dataclass
class InstallReport:
    """What a single install pass did to the hooks directory."""
    target: Path
    installed: FrozenSet[GitHook] = frozenset()
    removed: FrozenSet[GitHook] = frozenset()
    overwritten: FrozenSet[GitHook] = frozenset()
    preserved: FrozenSet[GitHook] = frozenset()
    restored: FrozenSet[GitHook] = frozenset()
    backups: Dict[GitHook, Path] = field(default_factory=dict)

    def action_for(self, hook: GitHook) -> Optional[str]:
        """Short label for the CLI summary table."""
        if hook in self.overwritten:
            return "overwritten"
        if hook in self.installed:
            return "installed"
        if hook in self.restored:
            return "restored"
        if hook in self.removed:
            return "removed"
        if hook in self.preserved:
            return "preserved"
        return None


@dataclass
class HookStatus:
    """State of one hook file on disk."""
    hook: GitHook
    exists: bool = False
    generated: bool = False
    executable: bool = False
    has_backup: bool = False
    error: Optional[str] = None
