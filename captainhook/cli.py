"""
captainhook - Command Line Interface
Entry point for all captainhook commands.
"""

import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from captainhook.__version__ import __version__
from captainhook.config import DEFAULT_CONFIG_FILENAME, EXAMPLE_CONFIG_FILE
from captainhook.core.config_loader import (
    ConfigLoadError,
    find_config_file,
    load_config,
    validate_config_file,
)
from captainhook.core.models import GitHook, HookConfiguration, UnrecognizedEventError
from captainhook.git.repository import GitError, GitRepository
from captainhook.git.staging import run_on_staged
from captainhook.hooks.install import (
    DEFAULT_FILE_MODE,
    PartialFailureError,
    TargetNotWritableError,
    check_hooks_status,
    install_report,
    print_install_summary,
    print_status,
    uninstall as uninstall_hooks,
)


# =============================================================================
# Typer App Setup
# =============================================================================

app = typer.Typer(
    name="captainhook",
    help="Git hooks from configuration",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def setup_logging(verbose: bool) -> None:
    """Routes library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False)],
        force=True,
    )


# =============================================================================
# Global Options
# =============================================================================

def version_callback(value: bool):
    if value:
        console.print(f"captainhook version {__version__}", style="bold cyan")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show the captainhook version"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Debug logging"
    ),
):
    """
    Git hooks from configuration

    Writes hook scripts that run your commands when Git events fire.
    """
    setup_logging(verbose)


def parse_hook_options(hook_options: List[str]) -> Dict[str, str]:
    """
    Parses repeated --hook EVENT=COMMAND options.

    An empty command (`--hook pre-push=`) disables that event.
    """
    overrides: Dict[str, str] = {}
    for option in hook_options:
        if "=" not in option:
            raise typer.BadParameter(
                f"Expected EVENT=COMMAND, got '{option}'",
                param_hint="--hook",
            )
        event, command = option.split("=", 1)
        overrides[event.strip()] = command
    return overrides


# =============================================================================
# Command: install
# =============================================================================

@app.command()
def install(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Configuration file (default: {DEFAULT_CONFIG_FILENAME} at the repository root)"
    ),
    hook: Optional[List[str]] = typer.Option(
        None,
        "--hook",
        help="EVENT=COMMAND, overrides the configuration file (repeatable)"
    ),
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        help="Any directory inside the repository"
    ),
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Do not back up hand-written hooks before overwriting them"
    ),
):
    """
    Installs the configured git hooks

    Examples:

    \b
    # Install from .captainhook.yaml
    captainhook install

    \b
    # Override or add a hook
    captainhook install --hook pre-push="make test"

    \b
    # Drop a hook configured in the file
    captainhook install --hook pre-push=
    """
    try:
        overrides = parse_hook_options(hook or [])

        repository = GitRepository(repo)

        config_path = config_file or find_config_file(repository.top_level_directory())
        commands: Dict[str, Optional[str]] = {}
        file_mode = DEFAULT_FILE_MODE
        backup = True

        if config_path.exists():
            config = load_config(config_path)
            commands.update({h.hook_name: cmd for h, cmd in config.hooks.commands.items()})
            file_mode = config.file_mode
            backup = config.backup
        elif config_file is not None or not overrides:
            console.print(f"Configuration file not found: {config_path}", style="red")
            console.print("   Run 'captainhook init' or pass --hook EVENT=COMMAND")
            raise typer.Exit(1)

        commands.update(overrides)
        hook_config = HookConfiguration.from_mapping(commands)

        report = install_report(
            repository.hooks_directory(),
            hook_config,
            file_mode=file_mode,
            backup=backup and not no_backup,
        )
        print_install_summary(report)

    except PartialFailureError as e:
        print_install_summary(e.report, failed=e.failed)
        console.print(f"{e}", style="red")
        raise typer.Exit(1)

    except (
        ConfigLoadError,
        UnrecognizedEventError,
        TargetNotWritableError,
        GitError,
    ) as e:
        console.print(f"{e}", style="red")
        raise typer.Exit(1)


# =============================================================================
# Command: uninstall
# =============================================================================

@app.command()
def uninstall(
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        help="Any directory inside the repository"
    ),
    no_restore: bool = typer.Option(
        False,
        "--no-restore",
        help="Do not restore hand-written hooks that install backed up"
    ),
):
    """
    Removes every hook captainhook generated

    Hand-written hooks are never removed.
    """
    try:
        hooks_dir = GitRepository(repo).hooks_directory(create=False)
        if not hooks_dir.exists():
            console.print("No hooks directory, nothing to remove")
            return

        report = uninstall_hooks(hooks_dir, restore_backups=not no_restore)
        print_install_summary(report)

    except PartialFailureError as e:
        print_install_summary(e.report, failed=e.failed)
        console.print(f"{e}", style="red")
        raise typer.Exit(1)

    except (TargetNotWritableError, GitError) as e:
        console.print(f"{e}", style="red")
        raise typer.Exit(1)


# =============================================================================
# Command: status
# =============================================================================

@app.command()
def status(
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        help="Any directory inside the repository"
    ),
    show_all: bool = typer.Option(
        False,
        "--all",
        help="Also list events without a hook file"
    ),
):
    """
    Shows the state of the hooks directory
    """
    try:
        hooks_dir = GitRepository(repo).hooks_directory(create=False)
    except GitError as e:
        console.print(f"{e}", style="red")
        raise typer.Exit(1)

    if not hooks_dir.exists():
        console.print(f"Hooks directory does not exist yet: {hooks_dir}")
        return

    print_status(hooks_dir, check_hooks_status(hooks_dir), show_all=show_all)


# =============================================================================
# Command: staging
# =============================================================================

@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def staging(
    command: List[str] = typer.Argument(
        ...,
        help="Command to run, after --"
    ),
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        help="Any directory inside the repository"
    ),
    append_files: bool = typer.Option(
        False,
        "--files",
        help="Pass the staged paths to the command as extra arguments"
    ),
):
    """
    Runs a command on the staged changes only

    Unstaged and untracked changes are put aside while the command runs.
    Files it rewrites are staged again. If it fails, everything is put back
    as it was. The staged paths are also available in $CAPTAINHOOK_STAGED_FILES.

    Examples:

    \b
    # Format what is about to be committed
    captainhook staging -- ./gradlew spotlessApply

    \b
    # Lint just the staged files
    captainhook staging --files -- flake8
    """
    try:
        returncode = run_on_staged(command, repo_path=repo, append_files=append_files)
    except (GitError, OSError) as e:
        console.print(f"{e}", style="red")
        raise typer.Exit(1)

    raise typer.Exit(returncode)


# =============================================================================
# Command: hooks
# =============================================================================

@app.command("hooks")
def list_hooks():
    """
    Lists the hook events that can be configured
    """
    table = Table(show_header=True, title="Git hook events")
    table.add_column("Event", style="cyan", no_wrap=True)

    for git_hook in GitHook:
        table.add_row(git_hook.hook_name)

    console.print(table)


# =============================================================================
# Command: validate
# =============================================================================

@app.command()
def validate(
    config_file: Path = typer.Argument(
        Path(DEFAULT_CONFIG_FILENAME),
        help="Configuration file to validate"
    ),
):
    """
    Validates a configuration file without touching any hook
    """
    result = validate_config_file(config_file)

    for warning in result["warnings"]:
        console.print(f"  warning: {warning}", style="yellow")

    if result["valid"]:
        console.print(f"{config_file}: valid ({result['total_hooks']} hooks)", style="green")
        return

    console.print(f"{config_file}: {len(result['errors'])} error(s)\n", style="red")
    for error in result["errors"]:
        console.print(f"  - {error}", style="red")
    raise typer.Exit(1)


# =============================================================================
# Command: init
# =============================================================================

@app.command()
def init(
    repo: Path = typer.Option(
        Path("."),
        "--repo",
        help="Any directory inside the repository"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite an existing configuration file"
    ),
):
    """
    Writes an example configuration file at the repository root
    """
    try:
        config_path = find_config_file(GitRepository(repo).top_level_directory())
    except GitError as e:
        console.print(f"{e}", style="red")
        raise typer.Exit(1)

    if config_path.exists() and not force:
        console.print(f"{config_path} already exists (use --force to overwrite)", style="yellow")
        raise typer.Exit(1)

    try:
        shutil.copyfile(EXAMPLE_CONFIG_FILE, config_path)
    except OSError as e:
        console.print(f"Cannot write {config_path}: {e}", style="red")
        raise typer.Exit(1)

    console.print(f"Wrote {config_path}", style="green")


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    app()


if __name__ == "__main__":
    main()
