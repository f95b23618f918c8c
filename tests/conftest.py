"""
Pytest configuration and shared fixtures.

Provides real git repositories (local, bare remote, clones) built in tmp_path,
an isolated git/threadsync configuration environment, and a recording command
event sink.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from threadsync.core.config import clear_cache
from threadsync.core.process import CommandEvent

THREADSYNC_ENV_VARS = (
    "THREADSYNC_WAIT_TIME",
    "THREADSYNC_COMMAND_TIMEOUT",
    "THREADSYNC_LOG_CAPACITY",
)


def git(cwd: Path, *args: str) -> str:
    """Run git synchronously for test setup and return trimmed stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def configure_user(repo: Path, name: str = "Test User", email: str = "test@example.com") -> None:
    git(repo, "config", "user.name", name)
    git(repo, "config", "user.email", email)


def commit_file(repo: Path, name: str, content: str, message: str | None = None) -> None:
    (repo / name).write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-m", message or f"Update {name}")


# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """
    Keep the host's git and threadsync configuration out of every test.

    - global/system gitconfig are replaced by an empty file
    - XDG_CONFIG_HOME points into tmp_path
    - THREADSYNC_* overrides are removed and the config cache is cleared
    """
    home_config = tmp_path / "gitconfig"
    home_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in THREADSYNC_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def events() -> list[CommandEvent]:
    return []


@pytest.fixture
def recording_sink(events: list[CommandEvent]):
    """CommandRunner sink that appends every event to ``events``."""
    return events.append


# ==============================================================================
# Repository Fixtures
# ==============================================================================


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A local repository with one commit and no remote."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init")
    configure_user(repo)
    commit_file(repo, "feeds.json", "[]\n", "Initial commit")
    return repo


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """An empty bare repository to act as ``origin``."""
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "--bare", str(remote))
    return remote


@pytest.fixture
def seeded_remote(tmp_path: Path, bare_remote: Path) -> Path:
    """A bare remote holding one commit on its default branch."""
    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init")
    configure_user(seed, "Seeder", "seed@example.com")
    commit_file(seed, "feeds.json", "[]\n", "Initial commit")
    git(seed, "remote", "add", "origin", str(bare_remote))
    git(seed, "push", "-u", "origin", "HEAD")
    return bare_remote


@pytest.fixture
def make_clone(tmp_path: Path, seeded_remote: Path):
    """Factory creating independent working clones of ``seeded_remote``."""

    def _make(name: str) -> Path:
        target = tmp_path / name
        git(tmp_path, "clone", str(seeded_remote), str(target))
        configure_user(target, name.title(), f"{name}@example.com")
        return target

    return _make
