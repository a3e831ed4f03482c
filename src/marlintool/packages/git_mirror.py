"""Git mirror cache.

Repositories are kept in the cache root as bare mirrors. The first request
for a URL clones the mirror; later requests only fetch what changed. Every
consumer then gets a fresh working clone made from the local mirror into the
scratch space, so no state leaks from one run to the next and the network is
only touched by the mirror update.

    get_mirror(url)          network: clone --bare (first time) or fetch --prune
    checkout(mirror, branch) local only: clone [--branch B --single-branch]
"""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from .cache import Cache, CacheCorruptionError, repo_name_from_url
from .package import IGitBackend, PackageError
from .scratch import ScratchSpace

# Refs kept in a mirror: every branch and tag, under their upstream names
MIRROR_REFSPECS = ("+refs/heads/*:refs/heads/*", "+refs/tags/*:refs/tags/*")


class GitError(PackageError):
    """Raised when a git command fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class GitClient(IGitBackend):
    """Runs the git executable."""

    def __init__(self, git: str = "git", verbose: bool = False):
        """Initialize git client.

        Args:
            git: Git executable
            verbose: Whether to pass git's own output through to the terminal
        """
        self.git = git
        self.verbose = verbose

    def run(self, args: List[str], cwd: Optional[Path] = None, capture: bool = False) -> str:
        """Run a git command.

        Args:
            args: Arguments after the git executable
            cwd: Working directory
            capture: Always capture stdout (for commands whose output is parsed)

        Returns:
            Captured stdout, stripped ('' when not captured)

        Raises:
            GitError: If git exits with a non-zero status or cannot be started
        """
        cmd = [self.git, *args]
        logging.debug(f"Running: {' '.join(cmd)}")
        quiet = capture or not self.verbose

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdout=subprocess.PIPE if quiet else None,
                stderr=subprocess.PIPE if not self.verbose else None,
                text=True,
            )
        except FileNotFoundError as e:
            raise GitError(f"git executable not found: {self.git}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            message = f"'git {' '.join(args)}' failed with exit code {result.returncode}"
            if stderr:
                message += f"\n{stderr}"
            raise GitError(message, returncode=result.returncode, stderr=stderr)

        return (result.stdout or "").strip()

    def clone_mirror(self, url: str, dest: Path) -> None:
        # Branches and tags only, no refs/pull/*
        self.run(["clone", "--bare", url, str(dest)])

    def fetch_prune(self, mirror: Path) -> None:
        # A bare clone has no remote.origin.fetch, so the refspecs are explicit
        self.run(["fetch", "--prune", "origin", *MIRROR_REFSPECS], cwd=mirror)

    def is_bare_repository(self, path: Path) -> bool:
        if not path.is_dir():
            return False
        try:
            output = self.run(["rev-parse", "--is-bare-repository"], cwd=path, capture=True)
        except GitError:
            return False
        if output != "true":
            return False
        # rev-parse also succeeds inside a plain directory nested in some other
        # repository, so make sure the git dir really is this directory.
        git_dir = self.run(["rev-parse", "--absolute-git-dir"], cwd=path, capture=True)
        return Path(git_dir).resolve() == path.resolve()

    def clone_local(self, source: Path, dest: Path, branch: Optional[str] = None) -> None:
        args = ["clone"]
        if branch:
            args += ["--branch", branch, "--single-branch"]
        args += [str(source), str(dest)]
        self.run(args)

    def current_branch(self, checkout: Path) -> str:
        return self.run(["rev-parse", "--abbrev-ref", "HEAD"], cwd=checkout, capture=True)

    def fetch_and_reset(self, checkout: Path) -> str:
        branch = self.current_branch(checkout)
        if branch == "HEAD":
            raise GitError(f"{checkout} has a detached HEAD, cannot reset to an upstream branch")
        self.run(["fetch", "origin"], cwd=checkout)
        self.run(["checkout", branch], cwd=checkout)
        self.run(["reset", "--hard", f"origin/{branch}"], cwd=checkout)
        return branch


class GitMirrorCache:
    """Maps repository URLs to bare mirrors in the cache root."""

    def __init__(
        self,
        cache: Cache,
        scratch: ScratchSpace,
        git: IGitBackend,
        strict_update: bool = False,
    ):
        """Initialize mirror cache.

        Args:
            cache: Cache root
            scratch: Acquired scratch space for working clones
            git: Git backend
            strict_update: If True, a failed mirror update is fatal. If False,
                the stale mirror is used and a warning is logged.
        """
        self.cache = cache
        self.scratch = scratch
        self.git = git
        self.strict_update = strict_update

    def get_mirror(self, url: str) -> Path:
        """Create or update the mirror of a repository.

        Args:
            url: Repository URL

        Returns:
            Path to the bare mirror

        Raises:
            CacheCorruptionError: If the mirror path exists but is not a bare repository
            GitError: If the initial clone fails, or an update fails in strict mode
        """
        repo_name = repo_name_from_url(url)
        mirror_path = self.cache.get_mirror_path(repo_name)

        if mirror_path.exists():
            if not self.git.is_bare_repository(mirror_path):
                raise CacheCorruptionError(
                    f"Cache entry {mirror_path} exists but is not a bare git repository. "
                    + "Purge the cache and try again."
                )
            logging.info(f"    Updating repository from {url}...")
            try:
                self.git.fetch_prune(mirror_path)
            except GitError as e:
                if self.strict_update:
                    raise GitError(f"Failed to update mirror of {url}: {e}", e.returncode, e.stderr) from e
                logging.warning(f"    Could not update mirror of {url}, using cached copy: {e}")
            return mirror_path

        logging.info(f"    Cloning repository from {url}...")
        self.cache.ensure_root()
        staging = Path(tempfile.mkdtemp(prefix=f".{repo_name}.", suffix=".partial", dir=str(self.cache.cache_root)))
        try:
            self.git.clone_mirror(url, staging / repo_name)
            os.replace(staging / repo_name, mirror_path)
        except GitError as e:
            raise GitError(f"Failed to clone {url}: {e}", e.returncode, e.stderr) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        return mirror_path

    def checkout(self, mirror_path: Path, branch: Optional[str] = None) -> Path:
        """Make a fresh working clone of a mirror in the scratch space.

        Args:
            mirror_path: Local bare mirror
            branch: If non-empty, clone only this branch and check it out

        Returns:
            Path to the working clone. The caller owns it and must move or
            discard it before the scratch space is released.
        """
        logging.info("    Copying from cache...")
        work_dir = self.scratch.make_dir(f"{mirror_path.name}-")
        clone_path = work_dir / mirror_path.name
        self.git.clone_local(mirror_path, clone_path, branch or None)
        return clone_path

    def get_working_clone(self, url: str, branch: Optional[str] = None) -> Path:
        """Update the mirror of ``url`` and return a fresh working clone of it."""
        logging.info(f"  Getting {repo_name_from_url(url)}...")
        return self.checkout(self.get_mirror(url), branch)
