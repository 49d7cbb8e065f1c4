"""Local git operations: worktrees, branches, commits and remote detection."""

from __future__ import annotations

import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from urllib.parse import urlsplit

_GITHUB_HOST = "github.com"
_SSH_USER = "git"
_SSH_PREFIX = f"{_SSH_USER}@{_GITHUB_HOST}:"


class GitError(Exception):
    """A git operation failed."""


def _describe(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        if exc.returncode < 0:
            return f"signal {-exc.returncode}"
        return f"exit status {exc.returncode}"
    return str(exc)


def parse_github_path(path: str) -> tuple[str, str]:
    """Split an ``owner/repo[.git]`` path into owner and repository name."""
    if path.startswith("/"):
        path = path[1:]
    if path.endswith(".git"):
        path = path[: -len(".git")]
    parts = path.split("/")
    if len(parts) < 2:
        raise GitError(f"invalid GitHub path format: {path}")
    return parts[0], parts[1]


def parse_remote_url(remote_url: str) -> tuple[str, str]:
    """Return the GitHub owner and repository named by a remote URL."""
    if remote_url.startswith(_SSH_PREFIX):
        return parse_github_path(remote_url[len(_SSH_PREFIX) :])
    try:
        parsed = urlsplit(remote_url)
    except ValueError as exc:
        raise GitError(f"failed to parse remote URL: {exc}") from exc
    host = parsed.netloc.rpartition("@")[2]
    if host != _GITHUB_HOST:
        raise GitError(f"not a GitHub repository: {remote_url}")
    return parse_github_path(parsed.path)


class LocalGit(ABC):
    """Operations on the local git repository."""

    @abstractmethod
    def check_worktree_exists(self, branch: str) -> bool:
        """Return whether a worktree exists for the branch."""

    @abstractmethod
    def create_worktree(self, branch: str, path: str) -> None:
        """Create a worktree for the branch at the path."""

    @abstractmethod
    def change_directory(self, path: str) -> None:
        """Make the path the working directory."""

    @abstractmethod
    def commit_and_push(self, message: str) -> None:
        """Commit all changes and push them to the remote branch."""

    @abstractmethod
    def worktree_path(self, branch: str) -> str:
        """Return where the worktree for the branch lives."""

    @abstractmethod
    def is_git_repository(self) -> bool:
        """Return whether the working directory is inside a git repository."""

    @abstractmethod
    def github_repository(self) -> tuple[str, str]:
        """Return the GitHub owner and repository of the origin remote."""

    @abstractmethod
    def create_branch(self, branch_name: str) -> None:
        """Create a branch and switch to it."""

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Write content to a file, creating its directory if needed."""

    @abstractmethod
    def push_branch_upstream(self, branch_name: str) -> None:
        """Push a new branch to origin and track it."""

    @abstractmethod
    def branch_exists(self, branch_name: str) -> bool:
        """Return whether a local branch of that name exists."""


@dataclass(frozen=True)
class GitRunner(LocalGit):
    """Runs the git command in the current directory."""

    command: tuple[str, ...] = ("git",)

    def _output(self, *args: str) -> str:
        completed = subprocess.run(
            [*self.command, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=True,
        )
        return completed.stdout.decode()

    def _run(self, *args: str) -> None:
        subprocess.run(
            [*self.command, *args],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )

    def check_worktree_exists(self, branch: str) -> bool:
        try:
            output = self._output("worktree", "list", "--porcelain")
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to list worktrees: {_describe(exc)}") from exc
        return any(
            line.startswith("branch ") and branch in line
            for line in output.split("\n")
        )

    def create_worktree(self, branch: str, path: str) -> None:
        try:
            self._run("worktree", "add", path, branch)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(
                f"failed to create worktree for branch {branch} at {path}: "
                f"{_describe(exc)}"
            ) from exc

    def change_directory(self, path: str) -> None:
        try:
            os.chdir(path)
        except OSError as exc:
            raise GitError(f"failed to change directory to {path}: {exc}") from exc

    def commit_and_push(self, message: str) -> None:
        try:
            self._run("add", ".")
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to add changes: {_describe(exc)}") from exc

        try:
            status = self._output("status", "--porcelain")
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to check git status: {_describe(exc)}") from exc
        if not status.strip():
            return

        try:
            self._run("commit", "-m", message)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to commit changes: {_describe(exc)}") from exc

        try:
            branch_name = self._output("branch", "--show-current").strip()
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to get current branch: {_describe(exc)}") from exc

        try:
            self._run("push", "-u", "origin", branch_name)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to push changes: {_describe(exc)}") from exc

    def worktree_path(self, branch: str) -> str:
        try:
            root = self._output("rev-parse", "--show-toplevel").strip()
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(
                f"failed to get repository root: {_describe(exc)}"
            ) from exc
        name = os.path.basename(root)
        return os.path.normpath(
            os.path.join(os.path.dirname(root), f"{name}-{branch}")
        )

    def is_git_repository(self) -> bool:
        try:
            self._run("rev-parse", "--is-inside-work-tree")
        except (OSError, subprocess.SubprocessError):
            return False
        return True

    def github_repository(self) -> tuple[str, str]:
        try:
            remote_url = self._output("remote", "get-url", "origin").strip()
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(
                f"failed to get remote origin URL: {_describe(exc)}"
            ) from exc
        return parse_remote_url(remote_url)

    def create_branch(self, branch_name: str) -> None:
        try:
            self._run("checkout", "-b", branch_name)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(
                f"failed to create and switch to branch {branch_name}: "
                f"{_describe(exc)}"
            ) from exc

    def write_file(self, path: str, content: str) -> None:
        directory = os.path.dirname(path) or "."
        try:
            os.makedirs(directory, mode=0o755, exist_ok=True)
        except OSError as exc:
            raise GitError(f"failed to create directory {directory}: {exc}") from exc
        try:
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(content)
        except OSError as exc:
            raise GitError(f"failed to write file {path}: {exc}") from exc

    def push_branch_upstream(self, branch_name: str) -> None:
        try:
            self._run("push", "-u", "origin", branch_name)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(
                f"failed to push branch {branch_name} upstream: {_describe(exc)}"
            ) from exc

    def branch_exists(self, branch_name: str) -> bool:
        try:
            output = self._output("branch", "--list", branch_name)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitError(f"failed to list branches: {_describe(exc)}") from exc
        return bool(output.strip())


@dataclass
class FakeLocalGit(LocalGit):
    """Keeps repository state in memory, with switches to simulate failures."""

    worktrees: dict[str, str] = field(default_factory=dict)
    current_dir: str = "/fake/repo"
    commits: list[str] = field(default_factory=list)
    is_git_repo: bool = True
    github_owner: str = "owner"
    github_repo: str = "repo"
    created_branches: list[str] = field(default_factory=list)
    written_files: dict[str, str] = field(default_factory=dict)
    pushed_branches: list[str] = field(default_factory=list)

    fail_create_branch: bool = False
    fail_write_file: bool = False
    fail_commit_and_push: bool = False
    fail_push_branch_upstream: bool = False
    fail_github_repository: bool = False

    def check_worktree_exists(self, branch: str) -> bool:
        return branch in self.worktrees

    def create_worktree(self, branch: str, path: str) -> None:
        self.worktrees[branch] = path

    def change_directory(self, path: str) -> None:
        self.current_dir = path

    def commit_and_push(self, message: str) -> None:
        if self.fail_commit_and_push:
            raise GitError("fake commit and push failure")
        self.commits.append(message)

    def worktree_path(self, branch: str) -> str:
        return self.worktrees.get(branch, f"/fake/repo-{branch}")

    def is_git_repository(self) -> bool:
        return self.is_git_repo

    def github_repository(self) -> tuple[str, str]:
        if self.fail_github_repository:
            raise GitError("fake get github repository failure")
        return self.github_owner, self.github_repo

    def create_branch(self, branch_name: str) -> None:
        if self.fail_create_branch:
            raise GitError("fake create branch failure")
        self.created_branches.append(branch_name)

    def write_file(self, path: str, content: str) -> None:
        if self.fail_write_file:
            raise GitError("fake write file failure")
        self.written_files[path] = content

    def push_branch_upstream(self, branch_name: str) -> None:
        if self.fail_push_branch_upstream:
            raise GitError("fake push branch upstream failure")
        self.pushed_branches.append(branch_name)

    def branch_exists(self, branch_name: str) -> bool:
        return branch_name in self.created_branches