"""
Git repository management and operations.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union
from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import CommitSummary, GitRepositoryError, RemoteInfo


logger = logging.getLogger(__name__)


def _default_timeout() -> int:
    raw = os.environ.get("LOCKSTEP_SYNC_GIT_TIMEOUT", "")
    try:
        value = int(raw)
        return value if value > 0 else 300
    except ValueError:
        return 300


DEFAULT_GIT_TIMEOUT = _default_timeout()


class GitManager:
    """Manages Git operations for a single working tree."""

    def __init__(self, repo_path: Optional[Path] = None, timeout: Optional[int] = None) -> None:
        """Initialize Git manager with optional repository path."""
        self.repo_path = Path(repo_path or Path.cwd())
        self.timeout = timeout or DEFAULT_GIT_TIMEOUT
        self._repo: Optional[Repo] = None

    # --- Path normalization helpers ---
    def _to_repo_relative_str(self, p: Union[str, Path]) -> str:
        """Return a POSIX-style path relative to the working tree root.

        Absolute paths inside the working tree are made relative; relative
        paths only get their separators normalized.
        """
        pp = Path(p)
        if not pp.is_absolute():
            return pp.as_posix()
        try:
            base = Path(self.repo.working_dir).resolve()
            return pp.resolve().relative_to(base).as_posix()
        except ValueError:
            logger.debug(f"Path '{pp}' not under repo root '{self.repo_path}'; passing as-is")
            return pp.as_posix()

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._open_repository()
        return self._repo

    def _open_repository(self) -> Repo:
        # No upward search: a missing submodule checkout must not resolve to its parent.
        try:
            repo = Repo(self.repo_path)
            logger.debug(f"Opened Git repository at: {self.repo_path}")
            return repo
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise GitRepositoryError(f"No Git repository found at {self.repo_path}") from e

    @property
    def name(self) -> str:
        return self.repo_path.name

    def path_exists(self) -> bool:
        """Return True if the working tree directory exists."""
        return self.repo_path.exists()

    # --- Branches ---
    def list_local_branches(self) -> List[str]:
        """List local branch names (full names, including slashes)."""
        try:
            return [h.name for h in self.repo.heads]
        except GitRepositoryError:
            raise
        except Exception as e:
            logger.error(f"Error listing local branches in {self.repo_path}: {e}")
            raise GitRepositoryError(f"Failed to list branches in {self.repo_path}: {e}")

    def branch_exists(self, branch_name: str) -> bool:
        """Check if a local branch exists."""
        return branch_name in self.list_local_branches()

    def get_current_branch(self) -> str:
        """Get the current branch name."""
        try:
            return self.repo.active_branch.name
        except GitRepositoryError:
            raise
        except Exception as e:
            logger.error(f"Error getting current branch: {e}")
            raise GitRepositoryError(f"Could not determine current branch: {e}")

    def checkout_branch(self, ref: str) -> None:
        """Checkout a branch or any other commit-ish."""
        try:
            self.repo.git.checkout(ref)
            logger.info(f"Checked out {ref} in {self.repo_path}")
        except GitCommandError as e:
            logger.error(f"Error checking out {ref} in {self.repo_path}: {e}")
            raise GitRepositoryError(f"Failed to checkout {ref}: {e}")

    def checkout_new_branch(self, branch_name: str, start_point: Optional[str] = None) -> None:
        """Create a local branch (optionally from start_point) and switch to it."""
        args = ["-b", branch_name]
        if start_point:
            args.append(start_point)
        try:
            self.repo.git.checkout(*args)
            logger.info(f"Created branch {branch_name} from {start_point or 'HEAD'} in {self.repo_path}")
        except GitCommandError as e:
            logger.error(f"Error creating branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to create branch {branch_name}: {e}")

    # --- Remote synchronization ---
    def pull(self, remote_name: str, branch_name: str) -> None:
        """Pull branch_name from remote_name into the current branch."""
        try:
            self.repo.git.pull(remote_name, branch_name, kill_after_timeout=self.timeout)
            logger.info(f"Pulled {remote_name}/{branch_name} in {self.repo_path}")
        except GitCommandError as e:
            logger.error(f"Failed to pull {remote_name}/{branch_name} in {self.repo_path}: {e}")
            raise GitRepositoryError(f"Failed to pull {remote_name}/{branch_name}: {e}")

    def push(self, remote_name: str, branch_name: str) -> None:
        """Push a local branch to remote_name."""
        try:
            self.repo.git.push(remote_name, branch_name, kill_after_timeout=self.timeout)
            logger.info(f"Pushed {branch_name} to {remote_name} from {self.repo_path}")
        except GitCommandError as e:
            logger.error(f"Failed to push {branch_name} to {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to push {branch_name} to {remote_name}: {e}")

    def fetch_remote(self, remote_name: str = "origin") -> None:
        """Fetch updates from a remote."""
        try:
            self.repo.git.fetch(remote_name, "--prune", kill_after_timeout=self.timeout)
            logger.info(f"Fetched updates from {remote_name} in {self.repo_path}")
        except GitCommandError as e:
            logger.error(f"Failed to fetch from {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to fetch from {remote_name}: {e}")

    def fetch_from(self, source: Union[str, Path], branch_name: str) -> None:
        """Fetch a branch from another repository (path or URL) into FETCH_HEAD."""
        try:
            self.repo.git.fetch(str(source), branch_name, kill_after_timeout=self.timeout)
            logger.debug(f"Fetched {branch_name} from {source} into {self.repo_path}")
        except GitCommandError as e:
            logger.error(f"Failed to fetch {branch_name} from {source}: {e}")
            raise GitRepositoryError(f"Failed to fetch {branch_name} from {source}: {e}")

    def fast_forward_to(self, commitish: str) -> None:
        """Fast-forward the current branch to commitish; never creates a merge commit."""
        try:
            self.repo.git.merge("--ff-only", commitish)
            logger.info(f"Fast-forwarded {self.repo_path} to {commitish[:8]}")
        except GitCommandError as e:
            logger.error(f"Failed to fast-forward to {commitish}: {e}")
            raise GitRepositoryError(f"Failed to fast-forward to {commitish}: {e}")

    def branch_ahead_behind(self, branch_name: str, remote_name: str = "origin") -> Tuple[int, int]:
        """Return (ahead, behind) counts of local branch vs remote/branch.

        If the remote ref does not exist, returns (0, 0).
        """
        remote_ref = f"{remote_name}/{branch_name}"
        try:
            output = self.repo.git.rev_list("--left-right", "--count", f"{remote_ref}...{branch_name}")
        except GitCommandError:
            logger.debug(f"No comparable remote ref {remote_ref} in {self.repo_path}")
            return 0, 0
        left_right = output.strip().split()
        if len(left_right) != 2:
            return 0, 0
        behind = int(left_right[0])
        ahead = int(left_right[1])
        return ahead, behind

    def get_remotes(self) -> List[RemoteInfo]:
        """Return configured remotes with their fetch URL."""
        try:
            return [RemoteInfo(name=r.name, url=r.url) for r in self.repo.remotes]
        except GitRepositoryError:
            raise
        except Exception as e:
            logger.error(f"Error listing remotes in {self.repo_path}: {e}")
            raise GitRepositoryError(f"Failed to list remotes: {e}")

    def set_remote_url(self, remote_name: str, url: str) -> None:
        """Point an existing remote at a new URL."""
        try:
            self.repo.git.remote("set-url", remote_name, url)
            logger.info(f"Remote {remote_name} of {self.repo_path} set to {url}")
        except GitCommandError as e:
            logger.error(f"Failed to set remote {remote_name} url: {e}")
            raise GitRepositoryError(f"Failed to set url of remote {remote_name}: {e}")

    def add_remote(self, remote_name: str, url: str) -> None:
        try:
            self.repo.git.remote("add", remote_name, url)
            logger.info(f"Remote {remote_name} added to {self.repo_path} ({url})")
        except GitCommandError as e:
            logger.error(f"Failed to add remote {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to add remote {remote_name}: {e}")

    # --- Index and history ---
    def add_paths(self, paths: List[Union[str, Path]]) -> None:
        """Stage the given paths (gitlinks included)."""
        try:
            for p in paths:
                # The '--' ensures pathspec is not interpreted as an option
                self.repo.git.add("--", self._to_repo_relative_str(p))
        except GitCommandError as e:
            logger.error(f"Failed to add paths {paths} in {self.repo_path}: {e}")
            raise GitRepositoryError(f"Failed to stage paths: {e}")

    def commit(self, message: str) -> str:
        """Commit the index and return the new HEAD sha."""
        try:
            self.repo.git.commit("-m", message)
            sha = self.get_head_commit()
            logger.info(f"Committed {sha[:8]} in {self.repo_path}")
            return sha
        except GitCommandError as e:
            logger.error(f"Failed to commit in {self.repo_path}: {e}")
            raise GitRepositoryError(f"Failed to commit: {e}")

    def get_head_commit(self) -> str:
        """Return the full sha of HEAD."""
        try:
            return self.repo.git.rev_parse("HEAD").strip()
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to resolve HEAD in {self.repo_path}: {e}")

    def get_submodule_pointer(self, submodule_path: Union[str, Path], ref: str = "HEAD") -> Optional[str]:
        """Return the gitlink commit SHA recorded for a submodule path at ref.

        Returns None when the tree has no gitlink entry for the path.
        """
        rel = self._to_repo_relative_str(submodule_path)
        try:
            output = self.repo.git.ls_tree(ref, "--", rel)
        except GitCommandError as e:
            raise GitRepositoryError(f"Failed to read tree entry {ref}:{rel}: {e}")
        line = output.strip()
        if not line:
            return None
        # Expected format: "160000 commit <sha>\t<path>"
        parts = line.split()
        if len(parts) >= 3 and parts[1] == "commit":
            return parts[2]
        return None

    def get_commit_log(self, from_commit: str, to_commit: str) -> List[CommitSummary]:
        """Return commits in from_commit..to_commit, oldest first."""
        try:
            commits = list(self.repo.iter_commits(f"{from_commit}..{to_commit}"))
        except GitCommandError as e:
            logger.error(f"Error reading log {from_commit}..{to_commit}: {e}")
            raise GitRepositoryError(f"Failed to read commit log: {e}")
        commits.reverse()
        return [CommitSummary(hash=c.hexsha, title=c.summary.strip()) for c in commits]

    def has_staged_changes(self) -> bool:
        try:
            return bool(self.repo.git.diff("--cached", "--name-only").strip())
        except GitCommandError:
            return False


GitFactory = Callable[[Path], GitManager]


class GitManagerCache:
    """Hands out one GitManager per working tree path for the duration of a run."""

    def __init__(self, factory: Optional[GitFactory] = None) -> None:
        self._factory: GitFactory = factory or GitManager
        self._managers: Dict[Path, GitManager] = {}

    def get(self, repo_path: Union[str, Path]) -> GitManager:
        """Get a cached GitManager for the path, creating it if necessary."""
        key = Path(repo_path)
        gm = self._managers.get(key)
        if gm is None:
            gm = self._factory(key)
            self._managers[key] = gm
        return gm
