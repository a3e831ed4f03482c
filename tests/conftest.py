"""Shared fixtures for the marlintool tests."""

import signal

import pytest

from marlintool_testing import commit_file, git


@pytest.fixture
def git_identity(monkeypatch):
    """Give git a committer identity and isolate it from the user's config."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "marlintool tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "marlintool tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@example.com")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", "/dev/null")


@pytest.fixture
def upstream_repo(tmp_path, git_identity):
    """An upstream repository with a 'main' and a 'stable' branch.

    'stable' branches off after the first commit and has one commit of its
    own; 'main' has one more commit that 'stable' does not.
    """
    repo = tmp_path / "upstream" / "Firmware"
    repo.mkdir(parents=True)
    git("init", "-q", "-b", "main", cwd=repo)
    base = commit_file(repo, "Marlin/Configuration.h", "#define BASE 1\n", "base")
    git("branch", "stable", cwd=repo)
    main_only = commit_file(repo, "Marlin/Marlin.ino", "// main\n", "main only")
    git("checkout", "-q", "stable", cwd=repo)
    stable_only = commit_file(repo, "Marlin/stable.txt", "stable\n", "stable only")
    git("checkout", "-q", "main", cwd=repo)
    return {
        "path": repo,
        "url": str(repo),
        "base": base,
        "main_only": main_only,
        "stable_only": stable_only,
    }


@pytest.fixture(autouse=True)
def no_cache_dir_override(monkeypatch):
    """Keep a MARLINTOOL_CACHE_DIR from the caller's shell out of the tests."""
    monkeypatch.delenv("MARLINTOOL_CACHE_DIR", raising=False)


@pytest.fixture(autouse=True)
def restore_sigterm_handler():
    """main() installs a SIGTERM handler, put the previous one back."""
    previous = signal.getsignal(signal.SIGTERM)
    yield
    signal.signal(signal.SIGTERM, previous)
