"""Pull request operations against GitHub, via the gh tool or in memory."""

from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class GitHubError(Exception):
    """A GitHub operation failed."""


def _describe(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        if exc.returncode < 0:
            return f"signal {-exc.returncode}"
        return f"exit status {exc.returncode}"
    return str(exc)


class GitHub(ABC):
    """Operations on pull requests of the current repository."""

    @abstractmethod
    def pr_info(self, pr_number: int) -> str:
        """Return pull request information, including comments."""

    @abstractmethod
    def post_comment(self, pr_number: int, body: str) -> None:
        """Post a comment to a pull request."""

    @abstractmethod
    def create_pr(self, title: str, description: str) -> None:
        """Open a pull request for the current branch."""


@dataclass(frozen=True)
class GitHubCLI(GitHub):
    """Talks to GitHub through the gh command-line tool."""

    command: tuple[str, ...] = ("gh",)

    def _run(self, *args: str, capture: bool) -> str:
        completed = subprocess.run(
            [*self.command, *args],
            stdout=subprocess.PIPE if capture else subprocess.DEVNULL,
            stderr=subprocess.PIPE if capture else subprocess.DEVNULL,
            check=True,
        )
        return completed.stdout.decode() if capture else ""

    def pr_info(self, pr_number: int) -> str:
        try:
            return self._run(
                "pr",
                "view",
                str(pr_number),
                "--json",
                "title,body,headRefName,comments",
                capture=True,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitHubError(
                f"failed to get PR info for #{pr_number}: {_describe(exc)}"
            ) from exc

    def post_comment(self, pr_number: int, body: str) -> None:
        try:
            self._run("pr", "comment", str(pr_number), "--body", body, capture=False)
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitHubError(
                f"failed to post comment to PR #{pr_number}: {_describe(exc)}"
            ) from exc

    def create_pr(self, title: str, description: str) -> None:
        try:
            self._run(
                "pr", "create", "--title", title, "--body", description, capture=False
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise GitHubError(
                f"failed to create PR with title '{title}': {_describe(exc)}"
            ) from exc


@dataclass(frozen=True)
class CreatedPR:
    """A pull request that was opened."""

    title: str
    description: str


@dataclass
class FakeGitHub(GitHub):
    """Keeps pull requests and comments in memory."""

    pr_data: dict[int, str] = field(default_factory=dict)
    comments: dict[int, list[str]] = field(default_factory=dict)
    created_prs: list[CreatedPR] = field(default_factory=list)
    fail_create_pr: bool = False

    def set_pr_info(self, pr_number: int, info: str) -> None:
        self.pr_data[pr_number] = info

    def pr_info(self, pr_number: int) -> str:
        try:
            return self.pr_data[pr_number]
        except KeyError:
            raise GitHubError(f"PR #{pr_number} not found") from None

    def post_comment(self, pr_number: int, body: str) -> None:
        self.comments.setdefault(pr_number, []).append(body)

    def create_pr(self, title: str, description: str) -> None:
        if self.fail_create_pr:
            raise GitHubError("fake create PR failure")
        self.created_prs.append(CreatedPR(title=title, description=description))

    def comments_for(self, pr_number: int) -> list[str]:
        """Return the comments posted to a pull request, oldest first."""
        return list(self.comments.get(pr_number, []))