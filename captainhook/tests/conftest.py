"""Pytest configuration and fixtures."""

import shutil
import subprocess

import pytest


@pytest.fixture
def hooks_dir(tmp_path):
    """Empty hooks directory outside of any repository."""
    directory = tmp_path / "hooks"
    directory.mkdir()
    return directory


@pytest.fixture
def temp_git_repo(tmp_path):
    """Creates a temporary git repository."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")

    repo_dir = tmp_path / "test_repo"
    repo_dir.mkdir()

    subprocess.run(["git", "init"], cwd=repo_dir, check=True, capture_output=True)
    subprocess.run(
        ["git", "config", "user.email", "test@example.com"],
        cwd=repo_dir,
        check=True
    )
    subprocess.run(
        ["git", "config", "user.name", "Test User"],
        cwd=repo_dir,
        check=True
    )

    return repo_dir
