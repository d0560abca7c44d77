"""Git repository helpers."""

from .repository import (
    GitError,
    GitRepository,
    NotGitRepositoryError,
    StatusEntry,
    find_hooks_dir,
)
from .staging import (
    Snapshot,
    StagingError,
    StagingHelper,
    run_on_staged,
)

__all__ = [
    "GitError",
    "GitRepository",
    "NotGitRepositoryError",
    "Snapshot",
    "StagingError",
    "StagingHelper",
    "StatusEntry",
    "find_hooks_dir",
    "run_on_staged",
]
