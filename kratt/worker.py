"""Processing pull requests and starting new work branches with an agent."""

from __future__ import annotations

import re
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field

from kratt.execution import CommandError, CommandRunner
from kratt.git import GitError, LocalGit
from kratt.github import GitHub, GitHubError

DEFAULT_DEADLINE = 30 * 60.0
COMMIT_MESSAGE = "Automated changes from kratt worker"

_BRANCH_PATTERNS = (
    re.compile(r'"headRefName":\s*"([^"]+)"'),
    re.compile(r"branch:\s*([^\s]+)", re.IGNORECASE),
    re.compile(r"head:\s*([^\s]+)", re.IGNORECASE),
)


class WorkerError(Exception):
    """A step of processing a pull request or starting a branch failed."""


_FAILURES = (CommandError, GitError, GitHubError, WorkerError)


@contextmanager
def _failing_as(message: str) -> Iterator[None]:
    try:
        yield
    except _FAILURES as exc:
        raise WorkerError(f"{message}: {exc}") from exc


def extract_branch(pr_info: str) -> str:
    """Return the head branch named in pull request information."""
    for pattern in _BRANCH_PATTERNS:
        match = pattern.search(pr_info)
        if match:
            return match.group(1)
    raise WorkerError("could not extract branch name from PR info")


def _section(title: str, output: bytes, error: BaseException | None) -> str:
    parts = [f"### {title} Results\n"]
    if error is not None:
        parts.append(f"❌ **Failed**\n```\n{error}\n```\n")
    else:
        parts.append("✅ **Passed**\n")
    if output:
        parts.append(f"```\n{output.decode(errors='replace')}\n```\n")
    return "".join(parts)


def format_results_comment(
    lint_output: bytes,
    lint_error: BaseException | None,
    test_output: bytes,
    test_error: BaseException | None,
) -> str:
    """Render lint and test results as a Markdown comment."""
    return (
        "## Kratt Worker Results\n\n"
        + _section("Lint", lint_output, lint_error)
        + "\n"
        + _section("Test", test_output, test_error)
    )


def _split(command: Sequence[str], name: str) -> tuple[str, tuple[str, ...]]:
    if not command:
        raise WorkerError(f"{name} command is empty")
    return command[0], tuple(command[1:])


@dataclass(kw_only=True)
class Worker:
    """Runs an agent on pull requests and reports lint and test results."""

    git: LocalGit
    github: GitHub
    runner: CommandRunner
    instructions: str = ""
    agent_command: Sequence[str] = field(default_factory=list)
    lint_command: Sequence[str] = field(default_factory=list)
    test_command: Sequence[str] = field(default_factory=list)
    deadline: float = DEFAULT_DEADLINE

    def generate_prompt(self, pr_info: str) -> str:
        """Build the agent prompt from the instructions and the PR information."""
        return f"{self.instructions}\n\n<pull-request>\n{pr_info}\n</pull-request>"

    def _capture(
        self, command: Sequence[str], name: str, timeout: float
    ) -> tuple[bytes, CommandError | None]:
        program, args = _split(command, name)
        try:
            return self.runner.run_with_output(program, *args, timeout=timeout), None
        except CommandError as exc:
            return exc.output, exc

    def process_pr(self, pr_number: int) -> None:
        """Run the agent on a pull request, report results and push changes."""
        with _failing_as("failed to get PR info"):
            pr_info = self.github.pr_info(pr_number)

        with _failing_as("failed to extract branch from PR info"):
            branch = extract_branch(pr_info)

        with _failing_as("failed to check worktree existence"):
            exists = self.git.check_worktree_exists(branch)

        if not exists:
            with _failing_as("failed to get worktree path"):
                path = self.git.worktree_path(branch)
            with _failing_as("failed to create worktree"):
                self.git.create_worktree(branch, path)

        with _failing_as("failed to get worktree path"):
            path = self.git.worktree_path(branch)
        with _failing_as("failed to change directory"):
            self.git.change_directory(path)

        prompt = self.generate_prompt(pr_info)

        expires = time.monotonic() + self.deadline

        def remaining() -> float:
            return max(expires - time.monotonic(), 0.0)

        with _failing_as("failed to run agent"):
            program, args = _split(self.agent_command, "agent")
            self.runner.run_with_stdin(prompt, program, *args, timeout=remaining())

        lint_output, lint_error = self._capture(self.lint_command, "lint", remaining())
        test_output, test_error = self._capture(self.test_command, "test", remaining())

        body = format_results_comment(lint_output, lint_error, test_output, test_error)
        with _failing_as("failed to post comment"):
            self.github.post_comment(pr_number, body)

        with _failing_as("failed to commit and push"):
            self.git.commit_and_push(COMMIT_MESSAGE)

    def start(self, branch_name: str, instruction: str) -> None:
        """Create a branch holding the instructions and open a pull request for it."""
        with _failing_as("failed to create branch"):
            self.git.create_branch(branch_name)

        instructions_path = f"docs/{branch_name}-instructions.md"
        with _failing_as("failed to write instructions file"):
            self.git.write_file(instructions_path, instruction)

        with _failing_as("failed to commit instructions file"):
            self.git.commit_and_push(f"Add instructions for {branch_name}")

        with _failing_as("failed to push branch upstream"):
            self.git.push_branch_upstream(branch_name)

        title = f"Implement {branch_name}"
        description = (
            f"Study docs/{branch_name}-instructions.md and make a list of necessary "
            f"implementation steps in docs/{branch_name}-implementation-status.md"
        )
        with _failing_as("failed to create pull request"):
            self.github.create_pr(title, description)