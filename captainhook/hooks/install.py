"""
captainhook - Git Hooks Installer
Installs, removes and inspects generated git hooks.
"""

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union

from ..core.models import (
    GitHook,
    HookConfiguration,
    HookStatus,
    InstallReport,
)
from .templates import is_generated, render_hook

logger = logging.getLogger(__name__)


DEFAULT_FILE_MODE = 0o755
BACKUP_SUFFIX = "captainhook-backup"

ConfigLike = Union[HookConfiguration, Mapping[Union[str, GitHook], Optional[str]]]


# =============================================================================
# Exceptions
# =============================================================================

class HookInstallerError(Exception):
    """Exception raised when hook installation fails."""
    pass


class TargetNotWritableError(HookInstallerError):
    """The hooks directory is missing or cannot be written to."""

    def __init__(self, target: Path, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Hooks directory not writable: {target} ({reason})")


class PartialFailureError(HookInstallerError):
    """
    Some hook files could not be written or removed.

    Nothing is rolled back: `report` describes what did succeed, and
    `failed` maps each failing event to the underlying OSError.
    """

    def __init__(self, failed: Dict[GitHook, OSError], report: InstallReport):
        self.failed = dict(failed)
        self.report = report
        details = "; ".join(
            f"{hook.hook_name}: {error}" for hook, error in self.failed.items()
        )
        super().__init__(f"{len(self.failed)} hook(s) failed: {details}")

    @property
    def installed(self) -> FrozenSet[GitHook]:
        return self.report.installed


# =============================================================================
# Hook Installer Class
# =============================================================================

class HookInstaller:
    """Writes and removes captainhook scripts in one hooks directory."""

    def __init__(
        self,
        hooks_dir: Path,
        file_mode: int = DEFAULT_FILE_MODE,
        backup: bool = True,
    ):
        """
        Args:
            hooks_dir: Directory Git reads hooks from
            file_mode: Permission bits for generated hooks. Owner read,
                       write and execute are always added so the next
                       install can rewrite the file.
            backup: Copy hand-written hooks aside before overwriting them
        """
        self.hooks_dir = Path(hooks_dir)
        self.file_mode = file_mode | stat.S_IRWXU
        self.backup = backup

    def check_target(self) -> None:
        """Raises TargetNotWritableError unless hooks_dir is a writable directory."""
        if not self.hooks_dir.exists():
            raise TargetNotWritableError(self.hooks_dir, "directory does not exist")
        if not self.hooks_dir.is_dir():
            raise TargetNotWritableError(self.hooks_dir, "not a directory")
        if not os.access(self.hooks_dir, os.W_OK | os.X_OK):
            raise TargetNotWritableError(self.hooks_dir, "permission denied")

    def apply(self, config: HookConfiguration) -> InstallReport:
        """
        Brings the hooks directory in line with `config` in a single pass.

        Configured events get a freshly rendered script. Events missing from
        `config` lose their generated script, if any; hand-written files
        are left alone.

        Raises:
            TargetNotWritableError: Before touching any file
            PartialFailureError: After the pass, if any event failed
        """
        self.check_target()

        installed = set()
        removed = set()
        overwritten = set()
        preserved = set()
        backups: Dict[GitHook, Path] = {}
        failed: Dict[GitHook, OSError] = {}

        for hook in GitHook:
            command = config.get(hook)
            try:
                if command is not None:
                    was_foreign, backup_path = self.install_hook(hook, command)
                    installed.add(hook)
                    if was_foreign:
                        overwritten.add(hook)
                    if backup_path is not None:
                        backups[hook] = backup_path
                else:
                    action = self.remove_hook(hook)
                    if action == "removed":
                        removed.add(hook)
                    elif action == "preserved":
                        preserved.add(hook)
            except OSError as e:
                logger.error("Failed to update %s hook: %s", hook.hook_name, e)
                failed[hook] = e

        report = InstallReport(
            target=self.hooks_dir,
            installed=frozenset(installed),
            removed=frozenset(removed),
            overwritten=frozenset(overwritten),
            preserved=frozenset(preserved),
            backups=backups,
        )

        if failed:
            raise PartialFailureError(failed, report)

        return report

    def install_hook(self, hook: GitHook, command: str) -> Tuple[bool, Optional[Path]]:
        """
        Writes one hook script.

        Returns:
            (was_foreign, backup_path): whether a hand-written hook was
            replaced, and where it was copied to (None without backup)

        Raises:
            OSError: The script could not be written or made executable.
                     A backup taken during this call is moved back first.
        """
        hook_path = self.hooks_dir / hook.hook_name
        was_foreign = False
        backup_path = None

        existing = self._read_existing(hook_path)
        if existing is not None and not is_generated(existing):
            was_foreign = True
            if self.backup:
                backup_path = self._create_backup(hook_path)
                logger.warning(
                    "Overwriting hand-written %s hook (backup: %s)",
                    hook.hook_name, backup_path.name,
                )
            else:
                logger.warning("Overwriting hand-written %s hook", hook.hook_name)

        try:
            # Never write through a symlink into someone else's file
            if hook_path.is_symlink():
                hook_path.unlink()

            with open(hook_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(render_hook(hook, command))
            self.make_executable(hook_path)
        except OSError:
            if backup_path is not None:
                # A failed run leaves the hand-written hook in place and no backup
                backup_path.replace(hook_path)
                logger.debug("Restored %s hook from %s", hook.hook_name, backup_path.name)
            raise

        logger.info("Installed %s hook: %s", hook.hook_name, command)
        return was_foreign, backup_path

    def remove_hook(self, hook: GitHook) -> Optional[str]:
        """
        Deletes a generated hook.

        Returns:
            "removed", "preserved" for a hand-written hook, or None when
            there is no file
        """
        hook_path = self.hooks_dir / hook.hook_name

        if hook_path.is_dir() and not hook_path.is_symlink():
            return "preserved"

        existing = self._read_existing(hook_path)
        if existing is None:
            return None

        if not is_generated(existing):
            logger.debug("Leaving hand-written %s hook untouched", hook.hook_name)
            return "preserved"

        hook_path.unlink()
        logger.info("Removed %s hook", hook.hook_name)
        return "removed"

    def make_executable(self, hook_path: Path) -> None:
        if os.name == "nt":
            logger.debug("No POSIX permissions on this platform, skipping chmod of %s", hook_path)
            return
        hook_path.chmod(self.file_mode)

    def _read_existing(self, hook_path: Path) -> Optional[str]:
        if hook_path.is_symlink() and not hook_path.exists():
            # Dangling link, never one of ours
            return ""
        if not hook_path.exists():
            return None
        return hook_path.read_text(encoding="utf-8", errors="replace")

    def _create_backup(self, hook_path: Path) -> Path:
        """Copies an existing hook to the next free backup slot."""
        backup_num = 1
        while True:
            backup_path = hook_path.parent / f"{hook_path.name}.{BACKUP_SUFFIX}.{backup_num}"
            if not backup_path.exists() and not backup_path.is_symlink():
                shutil.copy2(hook_path, backup_path, follow_symlinks=False)
                return backup_path
            backup_num += 1

    def _find_latest_backup(self, hook: GitHook) -> Optional[Path]:
        backups = [
            path for path in self.hooks_dir.glob(f"{hook.hook_name}.{BACKUP_SUFFIX}.*")
            if path.name.rsplit(".", 1)[-1].isdigit()
        ]
        if not backups:
            return None

        backups.sort(key=lambda p: int(p.name.rsplit(".", 1)[-1]))
        return backups[-1]

    def uninstall(self, restore_backups: bool = True) -> InstallReport:
        """
        Removes every generated hook.

        Args:
            restore_backups: Put back the latest hand-written hook that an
                             install displaced
        """
        self.check_target()

        removed = set()
        restored = set()
        preserved = set()
        failed: Dict[GitHook, OSError] = {}

        for hook in GitHook:
            try:
                action = self.remove_hook(hook)
                if action == "preserved":
                    preserved.add(hook)
                if action != "removed":
                    continue

                removed.add(hook)
                if restore_backups:
                    backup = self._find_latest_backup(hook)
                    if backup is not None:
                        backup.replace(self.hooks_dir / hook.hook_name)
                        restored.add(hook)
                        logger.info("Restored %s hook from %s", hook.hook_name, backup.name)
            except OSError as e:
                logger.error("Failed to remove %s hook: %s", hook.hook_name, e)
                failed[hook] = e

        report = InstallReport(
            target=self.hooks_dir,
            removed=frozenset(removed),
            restored=frozenset(restored),
            preserved=frozenset(preserved),
        )

        if failed:
            raise PartialFailureError(failed, report)

        return report

    def status(self) -> Dict[GitHook, HookStatus]:
        """Returns the on-disk state of every hook event."""
        statuses: Dict[GitHook, HookStatus] = {}

        for hook in GitHook:
            hook_path = self.hooks_dir / hook.hook_name
            hook_status = HookStatus(
                hook=hook,
                has_backup=self._find_latest_backup(hook) is not None,
            )

            if hook_path.exists():
                hook_status.exists = True
                try:
                    hook_status.generated = is_generated(
                        hook_path.read_text(encoding="utf-8", errors="replace")
                    )
                    hook_status.executable = os.access(hook_path, os.X_OK)
                except OSError as e:
                    hook_status.error = str(e)

            statuses[hook] = hook_status

        return statuses


# =============================================================================
# Helper Functions
# =============================================================================

def install_report(
    target: Path,
    config: ConfigLike,
    *,
    file_mode: int = DEFAULT_FILE_MODE,
    backup: bool = True,
) -> InstallReport:
    """
    Installs hooks and returns everything the pass did.

    Plain mappings are validated before the hooks directory is touched, so
    an unknown event name never results in a partial install.

    Raises:
        UnrecognizedEventError, TargetNotWritableError, PartialFailureError
    """
    if not isinstance(config, HookConfiguration):
        config = HookConfiguration.from_mapping(config)

    installer = HookInstaller(Path(target), file_mode=file_mode, backup=backup)
    return installer.apply(config)


def install(
    target: Path,
    config: ConfigLike,
    *,
    file_mode: int = DEFAULT_FILE_MODE,
    backup: bool = True,
) -> FrozenSet[GitHook]:
    """
    Installs hooks into `target` and returns the events installed.

    Same as install_report(), reduced to the installed set.
    """
    return install_report(target, config, file_mode=file_mode, backup=backup).installed


def uninstall(target: Path, restore_backups: bool = True) -> InstallReport:
    """Removes captainhook scripts from `target`."""
    return HookInstaller(Path(target)).uninstall(restore_backups=restore_backups)


def check_hooks_status(target: Path) -> Dict[GitHook, HookStatus]:
    return HookInstaller(Path(target)).status()


def print_install_summary(report: InstallReport, failed: Optional[Mapping[GitHook, OSError]] = None):
    """Prints the install summary (CLI helper)."""
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=f"Hooks in {report.target}")

    table.add_column("Hook", style="cyan")
    table.add_column("Action", style="green")
    table.add_column("Detail")

    failed = failed or {}
    for hook in GitHook:
        if hook in failed:
            table.add_row(hook.hook_name, "[red]failed[/red]", str(failed[hook]))
            continue

        action = report.action_for(hook)
        if action is None:
            continue

        detail = ""
        if hook in report.backups:
            detail = f"backup: {report.backups[hook].name}"
        elif action == "preserved":
            detail = "hand-written, not managed"
        table.add_row(hook.hook_name, action, detail)

    console.print(table)


def print_status(hooks_dir: Path, statuses: Mapping[GitHook, HookStatus], show_all: bool = False):
    """Prints hook status (CLI helper)."""
    from rich.console import Console
    from rich.table import Table

    console = Console()
    console.print(f"\nHooks dir: {hooks_dir}\n")

    table = Table(title="Hook Status")
    table.add_column("Hook", style="cyan")
    table.add_column("Installed", style="yellow")
    table.add_column("Generated", style="green")
    table.add_column("Executable", style="magenta")
    table.add_column("Backup", style="blue")

    def mark(value: bool) -> str:
        return "yes" if value else "no"

    for hook, hook_status in statuses.items():
        if not show_all and not (hook_status.exists or hook_status.has_backup):
            continue
        table.add_row(
            hook.hook_name,
            mark(hook_status.exists),
            mark(hook_status.generated),
            mark(hook_status.executable),
            mark(hook_status.has_backup),
        )

    console.print(table)
