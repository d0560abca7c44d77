"""
captainhook - Staging
Runs a command against exactly what is about to be committed.

Unstaged and untracked changes are stashed before the command runs, so a
formatter or linter only ever sees the staged version of each file. When
the command succeeds, the staged files it rewrote are staged again and
the stashed changes are merged back on top. When it fails, or merging
goes wrong, the working tree and index are restored from the stash.
"""

import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from captainhook.git.repository import GitError, GitRepository

logger = logging.getLogger(__name__)

BACKUP_STASH_MESSAGE = "captainhook backup"
UNSTAGED_PATCH_FILE_NAME = "captainhook_unstaged.patch"
UNTRACKED_PATCH_FILE_NAME = "captainhook_untracked.patch"

# Stashing resets the working tree, which drops an in-progress merge
MERGE_STATUS_FILES = ("MERGE_HEAD", "MERGE_MODE", "MERGE_MSG")

# Newline separated list of staged paths, relative to the top level
STAGED_FILES_ENV = "CAPTAINHOOK_STAGED_FILES"

APPLY_OPTIONS = ("-v", "--whitespace=nowarn", "--recount", "--unidiff-zero")


# =============================================================================
# Exceptions
# =============================================================================

class StagingError(GitError):
    """The staging snapshot could not be saved, found or merged back."""
    pass


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class Snapshot:
    """Everything needed to merge back or restore stashed changes."""
    staged_files: Tuple[str, ...]
    stash_commit: str
    unstaged_patch: Path
    untracked_patch: Path


@dataclass
class MergeStatus:
    """Contents of the MERGE_* files that existed at save time."""
    files: Dict[Path, bytes] = field(default_factory=dict)


# =============================================================================
# Helper Functions
# =============================================================================

def max_command_length() -> int:
    """Conservative command line limit for the current platform."""
    if sys.platform == "darwin":
        return 262144
    if sys.platform == "win32":
        return 8191
    return 131072


def chunk_paths(paths: Sequence[str], max_length: int) -> List[List[str]]:
    """Splits paths into groups whose joined length stays under max_length."""
    chunks: List[List[str]] = []
    current: List[str] = []
    length = 0

    for path in paths:
        if current and length + len(path) + 1 > max_length:
            chunks.append(current)
            current = []
            length = 0
        current.append(path)
        length += len(path) + 1

    if current:
        chunks.append(current)
    return chunks


# =============================================================================
# Staging Helper Class
# =============================================================================

class StagingHelper:
    """
    Saves, merges back and restores the changes that are not staged.

    Every git command runs from the top-level directory, so the relative
    paths git prints can be used as they are.
    """

    def __init__(self, repository: GitRepository):
        self.repository = GitRepository(repository.top_level_directory())

    @property
    def top_level(self) -> Path:
        return self.repository.repo_path

    def staged_files(self) -> List[str]:
        """Added, copied, modified and renamed files in the index."""
        output = self.repository.git(
            "diff", "--staged", "--diff-filter=ACMR", "--name-only", "-z"
        )
        return [name for name in output.split("\0") if name]

    def is_staging_empty(self) -> bool:
        return not self.staged_files()

    def save_snapshot(self, staged_files: Optional[Sequence[str]] = None) -> Snapshot:
        """
        Stashes unstaged and untracked changes, keeping the index.

        Both kinds of change are also written out as patches, which are
        what apply_modifications merges back.

        Raises:
            StagingError: The stash entry could not be found after pushing
            GitError: A git command failed
        """
        if staged_files is None:
            staged_files = self.staged_files()

        previous = self._newest_stash_commit()
        merge_status = self.save_merge_status()
        self.repository.git(
            "stash", "push", "--include-untracked", "--keep-index",
            f"--message={BACKUP_STASH_MESSAGE}",
        )
        self.restore_merge_status(merge_status)

        stash_commit = self.find_stash_commit()
        if stash_commit == previous:
            raise StagingError("git stash did not record anything")
        unstaged_patch = self.repository.git_path(UNSTAGED_PATCH_FILE_NAME)
        untracked_patch = self.repository.git_path(UNTRACKED_PATCH_FILE_NAME)

        self.repository.git(
            "diff", "--binary", "--unified=0", "--no-color", "--no-ext-diff",
            "--patch", f"--output={unstaged_patch}", stash_commit, "-R",
        )

        # The third parent only exists when there were untracked files
        untracked_commit = f"{stash_commit}^3"
        if self._rev_exists(untracked_commit):
            self.repository.git(
                "show", "--binary", "--unified=0", "--no-color", "--no-ext-diff",
                "--patch", "--format=%b", f"--output={untracked_patch}", untracked_commit,
            )
        else:
            untracked_patch.write_bytes(b"")

        logger.debug("Saved snapshot %s", stash_commit)
        return Snapshot(
            staged_files=tuple(staged_files),
            stash_commit=stash_commit,
            unstaged_patch=unstaged_patch,
            untracked_patch=untracked_patch,
        )

    def apply_modifications(self, snapshot: Snapshot) -> None:
        """
        Stages what the command changed and merges the snapshot back.

        Raises:
            StagingError: The unstaged changes do not apply, even with --3way
            GitError: A git command failed
        """
        self.stage_modifications(snapshot.staged_files)

        if not self.repository.status():
            return

        self.merge_snapshot(snapshot)

    def stage_modifications(self, staged_files: Sequence[str]) -> None:
        """Re-adds the originally staged files if anything was modified."""
        if not self.repository.ls_files("--modified"):
            return

        for chunk in chunk_paths(staged_files, max_command_length()):
            self.repository.git("add", "--", *chunk)
        logger.info("Staged modifications to %d file(s)", len(staged_files))

    def merge_snapshot(self, snapshot: Snapshot) -> None:
        if not self.merge_unstaged_patch(snapshot.unstaged_patch, three_way=False):
            logger.debug("Unstaged changes do not apply cleanly, retrying with --3way")
            if not self.merge_unstaged_patch(snapshot.unstaged_patch, three_way=True):
                raise StagingError("Unstaged changes could not be merged back")

        self.merge_untracked_patch(snapshot.untracked_patch)

    def merge_unstaged_patch(self, patch: Path, three_way: bool) -> bool:
        """Applies the unstaged patch to the working tree, returning success."""
        if patch.stat().st_size == 0:
            return True

        options = list(APPLY_OPTIONS)
        if three_way:
            options.append("--3way")

        try:
            self.repository.git("apply", *options, str(patch))
        except GitError as e:
            logger.debug("git apply failed: %s", e)
            return False
        return True

    def merge_untracked_patch(self, patch: Path) -> None:
        if not patch.read_bytes().strip():
            return
        self.repository.git("apply", *APPLY_OPTIONS, str(patch))

    def restore_snapshot(self, snapshot: Snapshot) -> None:
        """
        Puts the index and working tree back as they were before save_snapshot.

        Raises:
            GitError: A git command failed; the stash entry is still there
        """
        merge_status = self.save_merge_status()
        self.repository.git("reset", "--hard", "HEAD")

        # reset leaves untracked files alone, and stash apply refuses to overwrite them
        for name in self._untracked_files(snapshot.stash_commit):
            path = self.top_level / name
            if path.is_file() or path.is_symlink():
                path.unlink()

        self.repository.git("stash", "apply", "--quiet", "--index", snapshot.stash_commit)
        self.restore_merge_status(merge_status)
        logger.info("Restored the working tree from %s", snapshot.stash_commit)

    def delete_snapshot(self, snapshot: Snapshot) -> None:
        for patch in (snapshot.unstaged_patch, snapshot.untracked_patch):
            if patch.exists():
                patch.unlink()
        self.repository.git("stash", "drop", "--quiet", self.find_stash_name(snapshot.stash_commit))

    def save_merge_status(self) -> MergeStatus:
        status = MergeStatus()
        for name in MERGE_STATUS_FILES:
            path = self.repository.git_path(name)
            if path.is_file():
                status.files[path] = path.read_bytes()
        return status

    def restore_merge_status(self, status: MergeStatus) -> None:
        for path, content in status.files.items():
            path.write_bytes(content)

    def find_stash_commit(self) -> str:
        """Commit of the newest stash entry pushed by save_snapshot."""
        for _, commit, subject in self._stash_entries():
            if subject.endswith(BACKUP_STASH_MESSAGE):
                return commit
        raise StagingError(f"No stash entry named '{BACKUP_STASH_MESSAGE}'")

    def find_stash_name(self, stash_commit: str) -> str:
        """Reflog name (stash@{n}) of a stash commit; n shifts as stashes are pushed."""
        for name, commit, _ in self._stash_entries():
            if commit == stash_commit:
                return name
        raise StagingError(f"Stash entry {stash_commit} no longer exists")

    def run_command(self, command: Sequence[str], staged_files: Sequence[str], append_files: bool = False) -> int:
        """Runs command from the top-level directory and returns its exit code."""
        env = dict(os.environ)
        env[STAGED_FILES_ENV] = "\n".join(staged_files)

        args = list(command)
        if append_files:
            args.extend(staged_files)

        logger.info("Running %s on %d staged file(s)", " ".join(command), len(staged_files))
        return subprocess.run(args, cwd=self.top_level, env=env, check=False).returncode

    def _stash_entries(self) -> List[Tuple[str, str, str]]:
        output = self.repository.git("stash", "list", "--format=%gd %H %gs")
        entries = []
        for line in output.splitlines():
            parts = line.split(" ", 2)
            if len(parts) == 3:
                entries.append((parts[0], parts[1], parts[2]))
        return entries

    def _newest_stash_commit(self) -> Optional[str]:
        entries = self._stash_entries()
        return entries[0][1] if entries else None

    def _rev_exists(self, rev: str) -> bool:
        output = self.repository.git("rev-parse", "--verify", "--quiet", rev, check=False)
        return bool(output.strip())

    def _untracked_files(self, stash_commit: str) -> List[str]:
        untracked_commit = f"{stash_commit}^3"
        if not self._rev_exists(untracked_commit):
            return []
        output = self.repository.git("ls-tree", "-r", "-z", "--name-only", untracked_commit)
        return [name for name in output.split("\0") if name]


# =============================================================================
# Running Commands
# =============================================================================

def run_on_staged(
    command: Sequence[str],
    repo_path: Optional[Path] = None,
    append_files: bool = False,
) -> int:
    """
    Runs command against the staged changes only.

    Args:
        command: Program and arguments, run from the top-level directory
        repo_path: Any directory inside the repository (default: cwd)
        append_files: Pass the staged paths as extra arguments

    Returns:
        The command's exit code, or 0 when nothing is staged

    Raises:
        GitError: Saving, merging or restoring failed. The stash entry
                  "captainhook backup" is kept so nothing is lost.
        OSError: The command could not be started
    """
    helper = StagingHelper(GitRepository(repo_path))

    staged_files = helper.staged_files()
    if not staged_files:
        logger.warning("Not running %s because the staging area is empty", " ".join(command))
        return 0

    snapshot = helper.save_snapshot(staged_files)

    try:
        returncode = helper.run_command(command, snapshot.staged_files, append_files)
    except OSError:
        helper.restore_snapshot(snapshot)
        helper.delete_snapshot(snapshot)
        raise

    if returncode == 0:
        try:
            helper.apply_modifications(snapshot)
        except GitError as e:
            logger.error("Could not merge changes back (%s), restoring the working tree", e)
            helper.restore_snapshot(snapshot)
            raise
    else:
        logger.warning("%s exited with %d, restoring the working tree", command[0], returncode)
        helper.restore_snapshot(snapshot)

    helper.delete_snapshot(snapshot)
    return returncode
