"""
captainhook - Git Repository
Locates the directory Git reads hooks from and wraps the few git commands
the staging workflow needs.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class GitError(Exception):
    """Error running a git command."""
    pass


class NotGitRepositoryError(GitError):
    """Directory is not inside a git repository."""
    pass


@dataclass(frozen=True)
class StatusEntry:
    """One line of `git status --porcelain`."""
    index: str
    worktree: str
    path: str


# =============================================================================
# Repository
# =============================================================================

class GitRepository:
    """
    Thin wrapper around the git CLI for one working tree.

    Paths that do not change for the lifetime of a repository are cached.
    """

    def __init__(self, repo_path: Optional[Path] = None):
        """
        Args:
            repo_path: Any directory inside the working tree (default: cwd)
        """
        self.repo_path = Path(repo_path or Path.cwd())
        self._hooks_dir: Optional[Path] = None
        self._top_level: Optional[Path] = None

    @property
    def has_git(self) -> bool:
        return shutil.which("git") is not None

    def top_level_directory(self) -> Path:
        """Root of the working tree (`git rev-parse --show-toplevel`)."""
        if self._top_level is None:
            if self.has_git:
                output = self._run_git_command(["git", "rev-parse", "--show-toplevel"])
                self._top_level = Path(output.strip())
            else:
                self._top_level = self._find_dot_git().parent
        return self._top_level

    def hooks_directory(self, create: bool = True) -> Path:
        """
        Returns the absolute hooks directory.

        `git rev-parse --git-path hooks` honors core.hooksPath, linked
        worktrees and submodules. Without git on PATH the .git entry is
        read directly.

        Args:
            create: Create the directory if it does not exist yet

        Raises:
            NotGitRepositoryError: Not inside a repository
            GitError: git failed for another reason
        """
        if self._hooks_dir is None:
            if self.has_git:
                hooks_dir = self.git_path("hooks")
            else:
                logger.debug("git not found on PATH, reading .git directly")
                hooks_dir = self._common_dir_from_filesystem() / "hooks"
            self._hooks_dir = hooks_dir.resolve()

        if create and not self._hooks_dir.exists():
            self._hooks_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created hooks directory %s", self._hooks_dir)

        return self._hooks_dir

    def git_path(self, name: str) -> Path:
        """Absolute location of `name` inside the git dir (`git rev-parse --git-path`)."""
        output = self._run_git_command(["git", "rev-parse", "--git-path", name])
        path = Path(output.strip())
        if not path.is_absolute():
            path = self.repo_path / path
        return path

    def git(self, *args: str, check: bool = True) -> str:
        """Runs `git <args>` in repo_path and returns stdout."""
        return self._run_git_command(["git", *args], check=check)

    def ls_files(self, *options: str) -> List[Path]:
        """
        Absolute paths reported by `git ls-files <options>`.

        ls-files prints paths relative to the current directory, so they
        are resolved against repo_path.
        """
        output = self._run_git_command(["git", "ls-files", "-z", *options])
        return [self.repo_path / name for name in output.split("\0") if name]

    def status(self, *options: str) -> List[StatusEntry]:
        """
        Parses `git status --porcelain`.

        Paths are relative to the top-level directory. For renames only the
        new path is kept.
        """
        output = self._run_git_command(["git", "status", "--porcelain", "-z", *options])
        entries = []
        fields = output.split("\0")
        i = 0
        while i < len(fields):
            field = fields[i]
            i += 1
            if len(field) < 4:
                continue
            index, worktree, path = field[0], field[1], field[3:]
            if index in "RC":
                # -z puts the original path in the next field
                i += 1
            entries.append(StatusEntry(index=index, worktree=worktree, path=path))
        return entries

    def _find_dot_git(self) -> Path:
        for directory in [self.repo_path, *self.repo_path.resolve().parents]:
            candidate = directory / ".git"
            if candidate.exists():
                return candidate
        raise NotGitRepositoryError(f"Not a git repository: {self.repo_path}")

    def _common_dir_from_filesystem(self) -> Path:
        dot_git = self._find_dot_git()

        if dot_git.is_dir():
            return dot_git

        # Worktrees and submodules: .git is a file pointing at the real git dir
        content = dot_git.read_text(encoding="utf-8").strip()
        if not content.startswith("gitdir:"):
            raise NotGitRepositoryError(f"Unrecognized .git file: {dot_git}")

        git_dir = Path(content.split(":", 1)[1].strip())
        if not git_dir.is_absolute():
            git_dir = dot_git.parent / git_dir

        # Linked worktrees share hooks with the main repository
        commondir_file = git_dir / "commondir"
        if commondir_file.is_file():
            common_dir = Path(commondir_file.read_text(encoding="utf-8").strip())
            if not common_dir.is_absolute():
                common_dir = git_dir / common_dir
            return common_dir

        return git_dir

    def _run_git_command(self, cmd: List[str], check: bool = True) -> str:
        """
        Runs a git command in repo_path and returns stdout.

        Args:
            cmd: Full command line, starting with "git"
            check: Raise on a non-zero exit code

        Raises:
            NotGitRepositoryError: git says this is not a repository
            GitError: Any other failure
        """
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            raise GitError("git not found on PATH")
        except OSError as e:
            raise GitError(f"Failed to run git: {e}")

        if check and result.returncode != 0:
            stderr = result.stderr.strip()
            if "not a git repository" in stderr.lower():
                raise NotGitRepositoryError(f"Not a git repository: {self.repo_path}")
            raise GitError(f"git command failed: {' '.join(cmd)}\nStderr: {stderr}")

        return result.stdout


# =============================================================================
# Helper Functions
# =============================================================================

def find_hooks_dir(repo_path: Optional[Path] = None, create: bool = True) -> Path:
    """Resolves the hooks directory for the repository containing repo_path."""
    return GitRepository(repo_path).hooks_directory(create=create)
