"""Tests for the hook installer."""

import logging
import os
import stat

import pytest

from captainhook.core.models import GitHook, HookConfiguration, UnrecognizedEventError
from captainhook.hooks.install import (
    HookInstaller,
    PartialFailureError,
    TargetNotWritableError,
    check_hooks_status,
    install,
    install_report,
    uninstall,
)
from captainhook.hooks.templates import GENERATED_MARKER, render_hook


posix_only = pytest.mark.skipif(os.name == "nt", reason="no POSIX permissions")

HAND_WRITTEN = "#!/bin/sh\necho 'my own hook'\n"


def listing(directory):
    return sorted(p.name for p in directory.iterdir())


def test_install_writes_rendered_script(hooks_dir):
    installed = install(hooks_dir, {"pre-commit": "run-tests"})

    assert installed == frozenset({GitHook.PRE_COMMIT})
    assert listing(hooks_dir) == ["pre-commit"]
    content = (hooks_dir / "pre-commit").read_text(encoding="utf-8")
    assert content == render_hook(GitHook.PRE_COMMIT, "run-tests")
    assert content.startswith("#!/bin/sh\n")
    assert GENERATED_MARKER in content
    assert "run-tests" in content


def test_install_is_idempotent(hooks_dir):
    config = HookConfiguration.from_mapping({"pre-commit": "run-tests", "pre-push": "run-lint"})

    first = install(hooks_dir, config)
    first_bytes = {name: (hooks_dir / name).read_bytes() for name in listing(hooks_dir)}

    second = install(hooks_dir, config)
    second_bytes = {name: (hooks_dir / name).read_bytes() for name in listing(hooks_dir)}

    assert first == second == frozenset({GitHook.PRE_COMMIT, GitHook.PRE_PUSH})
    assert first_bytes == second_bytes


def test_selective_overwrite_removes_generated_hook(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests"})
    report = install_report(hooks_dir, {"pre-push": "run-lint"})

    assert report.installed == frozenset({GitHook.PRE_PUSH})
    assert report.removed == frozenset({GitHook.PRE_COMMIT})
    assert listing(hooks_dir) == ["pre-push"]


def test_different_command_overwrites_generated_hook(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests"})
    report = install_report(hooks_dir, {"pre-commit": "run-other-tests"})

    content = (hooks_dir / "pre-commit").read_text(encoding="utf-8")
    assert "run-other-tests" in content
    assert "run-tests\n" not in content
    assert report.overwritten == frozenset()
    assert report.backups == {}


def test_foreign_hook_preserved_when_not_configured(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)

    report = install_report(hooks_dir, {"pre-push": "run-lint"})

    assert (hooks_dir / "pre-commit").read_text() == HAND_WRITTEN
    assert report.preserved == frozenset({GitHook.PRE_COMMIT})
    assert report.removed == frozenset()


def test_foreign_hook_overwritten_with_warning(hooks_dir, caplog):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)
    caplog.set_level(logging.WARNING, logger="captainhook")

    report = install_report(hooks_dir, {"pre-commit": "run-tests"})

    assert GENERATED_MARKER in (hooks_dir / "pre-commit").read_text(encoding="utf-8")
    assert report.overwritten == frozenset({GitHook.PRE_COMMIT})
    assert any(
        record.levelno == logging.WARNING and "pre-commit" in record.getMessage()
        for record in caplog.records
    )

    backup = report.backups[GitHook.PRE_COMMIT]
    assert backup.name == "pre-commit.captainhook-backup.1"
    assert backup.read_text() == HAND_WRITTEN


def test_foreign_hook_overwritten_without_backup(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)

    report = install_report(hooks_dir, {"pre-commit": "run-tests"}, backup=False)

    assert report.overwritten == frozenset({GitHook.PRE_COMMIT})
    assert listing(hooks_dir) == ["pre-commit"]


def test_backups_do_not_collide(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)
    install(hooks_dir, {"pre-commit": "run-tests"})
    (hooks_dir / "pre-commit").write_text("#!/bin/sh\necho second\n")
    report = install_report(hooks_dir, {"pre-commit": "run-tests"})

    assert report.backups[GitHook.PRE_COMMIT].name == "pre-commit.captainhook-backup.2"


@posix_only
def test_installed_hooks_are_executable(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests", "commit-msg": "check-msg \"$1\""})

    for name in ("pre-commit", "commit-msg"):
        mode = (hooks_dir / name).stat().st_mode
        assert stat.S_ISREG(mode)
        assert mode & stat.S_IXUSR
        assert stat.S_IMODE(mode) == 0o755


@posix_only
def test_file_mode_always_keeps_owner_execute(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests"}, file_mode=0o644)

    mode = stat.S_IMODE((hooks_dir / "pre-commit").stat().st_mode)
    assert mode == 0o744


@posix_only
def test_read_only_file_mode_can_be_reinstalled(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests"}, file_mode=0o555)
    installed = install(hooks_dir, {"pre-commit": "run-other-tests"}, file_mode=0o555)

    assert installed == frozenset({GitHook.PRE_COMMIT})
    assert "run-other-tests" in (hooks_dir / "pre-commit").read_text(encoding="utf-8")
    assert stat.S_IMODE((hooks_dir / "pre-commit").stat().st_mode) == 0o755


def test_failed_overwrite_restores_hand_written_hook(hooks_dir, monkeypatch):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)

    def refuse_chmod(self, hook_path):
        raise PermissionError(13, "Permission denied", str(hook_path))

    monkeypatch.setattr(HookInstaller, "make_executable", refuse_chmod)

    for _ in range(2):
        with pytest.raises(PartialFailureError) as exc_info:
            install(hooks_dir, {"pre-commit": "run-tests"})
        assert exc_info.value.report.backups == {}

    assert listing(hooks_dir) == ["pre-commit"]
    assert (hooks_dir / "pre-commit").read_text() == HAND_WRITTEN


@posix_only
def test_symlinked_hook_is_replaced_not_followed(hooks_dir, tmp_path):
    shared = tmp_path / "shared-hook"
    shared.write_text(HAND_WRITTEN)
    (hooks_dir / "pre-commit").symlink_to(shared)

    install(hooks_dir, {"pre-commit": "run-tests"}, backup=False)

    assert shared.read_text() == HAND_WRITTEN
    assert not (hooks_dir / "pre-commit").is_symlink()


def test_partial_failure_reports_failed_events(hooks_dir):
    # A directory where the file should go cannot be written, even by root
    (hooks_dir / "pre-commit").mkdir()

    with pytest.raises(PartialFailureError) as exc_info:
        install(hooks_dir, {"pre-commit": "run-tests", "pre-push": "run-lint"})

    error = exc_info.value
    assert set(error.failed) == {GitHook.PRE_COMMIT}
    assert isinstance(error.failed[GitHook.PRE_COMMIT], OSError)
    assert error.installed == frozenset({GitHook.PRE_PUSH})
    assert GENERATED_MARKER in (hooks_dir / "pre-push").read_text(encoding="utf-8")


@posix_only
@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores file permissions")
def test_partial_failure_on_read_only_hook(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests"})
    (hooks_dir / "pre-commit").chmod(0o444)

    with pytest.raises(PartialFailureError) as exc_info:
        install(hooks_dir, {"pre-commit": "run-other-tests", "pre-push": "run-lint"})

    assert set(exc_info.value.failed) == {GitHook.PRE_COMMIT}
    assert (hooks_dir / "pre-push").exists()


@posix_only
@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores file permissions")
def test_repeated_failures_on_read_only_hand_written_hook_leave_no_backups(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)
    (hooks_dir / "pre-commit").chmod(0o444)

    for _ in range(2):
        with pytest.raises(PartialFailureError):
            install(hooks_dir, {"pre-commit": "run-tests"})

    assert listing(hooks_dir) == ["pre-commit"]
    assert (hooks_dir / "pre-commit").read_text() == HAND_WRITTEN


def test_unrecognized_event_rejected_before_writes(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)
    before = {name: (hooks_dir / name).read_bytes() for name in listing(hooks_dir)}

    with pytest.raises(UnrecognizedEventError) as exc_info:
        install(hooks_dir, {"pre-push": "run-lint", "prepare-commit-msg-typo": "x"})

    assert exc_info.value.names == ["prepare-commit-msg-typo"]
    after = {name: (hooks_dir / name).read_bytes() for name in listing(hooks_dir)}
    assert after == before


def test_missing_target_is_not_writable(tmp_path):
    with pytest.raises(TargetNotWritableError) as exc_info:
        install(tmp_path / "missing", {"pre-commit": "run-tests"})

    assert exc_info.value.target == tmp_path / "missing"


def test_file_target_is_not_writable(tmp_path):
    target = tmp_path / "hooks"
    target.write_text("")

    with pytest.raises(TargetNotWritableError):
        install(target, {"pre-commit": "run-tests"})


def test_empty_command_means_absent(hooks_dir):
    install(hooks_dir, {"pre-commit": "run-tests"})

    installed = install(hooks_dir, {"pre-commit": "   ", "pre-push": None})

    assert installed == frozenset()
    assert listing(hooks_dir) == []


def test_empty_configuration_installs_nothing(hooks_dir):
    assert install(hooks_dir, HookConfiguration()) == frozenset()
    assert listing(hooks_dir) == []


def test_uninstall_removes_generated_and_restores_backup(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)
    (hooks_dir / "post-merge").write_text(HAND_WRITTEN)
    install(hooks_dir, {"pre-commit": "run-tests", "pre-push": "run-lint"})

    report = uninstall(hooks_dir)

    assert report.removed == frozenset({GitHook.PRE_COMMIT, GitHook.PRE_PUSH})
    assert report.restored == frozenset({GitHook.PRE_COMMIT})
    assert report.preserved == frozenset({GitHook.POST_MERGE})
    assert (hooks_dir / "pre-commit").read_text() == HAND_WRITTEN
    assert listing(hooks_dir) == ["post-merge", "pre-commit"]


def test_uninstall_without_restore_keeps_backup(hooks_dir):
    (hooks_dir / "pre-commit").write_text(HAND_WRITTEN)
    install(hooks_dir, {"pre-commit": "run-tests"})

    report = uninstall(hooks_dir, restore_backups=False)

    assert report.restored == frozenset()
    assert listing(hooks_dir) == ["pre-commit.captainhook-backup.1"]


def test_status_reports_each_hook(hooks_dir):
    (hooks_dir / "post-merge").write_text(HAND_WRITTEN)
    install(hooks_dir, {"pre-commit": "run-tests"})

    statuses = check_hooks_status(hooks_dir)

    assert len(statuses) == len(GitHook)
    assert statuses[GitHook.PRE_COMMIT].exists
    assert statuses[GitHook.PRE_COMMIT].generated
    assert statuses[GitHook.POST_MERGE].exists
    assert not statuses[GitHook.POST_MERGE].generated
    assert not statuses[GitHook.PRE_PUSH].exists


def test_installer_uses_given_directory(hooks_dir):
    installer = HookInstaller(hooks_dir)
    installer.apply(HookConfiguration.from_mapping({GitHook.PRE_PUSH: "run-lint"}))

    assert listing(hooks_dir) == ["pre-push"]
