"""The kratt command line: automated pull request processing."""

from __future__ import annotations

import argparse
import csv
import re
import sys
from collections.abc import Sequence

from kratt.execution import ExecRunner
from kratt.git import GitError, GitRunner
from kratt.github import GitHubCLI
from kratt.worker import DEFAULT_DEADLINE, Worker, WorkerError

DEFAULT_AGENT = ("amp", "--stdin")
DEFAULT_LINT = ("go", "fmt", "./...")
DEFAULT_TEST = ("go", "test", "./...")

REVIEW_INSTRUCTIONS = (
    "You are an AI assistant helping with code review. Please analyze the pull "
    "request and make any necessary improvements to the code."
)
IMPLEMENTATION_INSTRUCTIONS = (
    "You are an AI assistant helping with implementation. Please analyze the "
    "instructions and implement the requested feature."
)

_INVALID_BRANCH_CHARS = re.compile(r"[~^:?*\[\]\t\n\f\r \\]")
_PR_NUMBER = re.compile(r"[+-]?[0-9]+")

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")


class _CommandFailed(Exception):
    """A subcommand could not complete."""


def is_valid_branch_name(name: str) -> bool:
    """Return whether a name is acceptable as a new branch name."""
    if _INVALID_BRANCH_CHARS.search(name):
        return False
    if not name or name[0] in "./" or name[-1] in "./":
        return False
    return ".." not in name


def parse_duration(text: str) -> float:
    """Parse a duration such as ``30m`` or ``1h15m30s`` into seconds."""
    rest = text
    sign = 1.0
    if rest[:1] in ("+", "-") and rest:
        sign = -1.0 if rest[0] == "-" else 1.0
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise ValueError(f'invalid duration "{text}"')
    total = 0.0
    position = 0
    while position < len(rest):
        match = _COMPONENT.match(rest, position)
        if match is None:
            raise ValueError(f'invalid duration "{text}"')
        total += float(match.group(1)) * _UNITS[match.group(2)]
        position = match.end()
    return sign * total


def _duration_argument(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


class _StringSlice(argparse.Action):
    """Comma separated values; the first use replaces the default, later ones add."""

    def __call__(self, parser, namespace, values, option_string=None):
        try:
            items = next(csv.reader([values]))
        except StopIteration:
            items = []
        except csv.Error as exc:
            raise argparse.ArgumentError(self, str(exc)) from exc
        current = getattr(namespace, self.dest, None)
        if current is None or isinstance(current, tuple):
            setattr(namespace, self.dest, list(items))
        else:
            setattr(namespace, self.dest, [*current, *items])


def _add_global_options(parser: argparse.ArgumentParser, *, suppress: bool) -> None:
    def default(value):
        return argparse.SUPPRESS if suppress else value

    parser.add_argument(
        "--timeout",
        type=_duration_argument,
        default=default(DEFAULT_DEADLINE),
        help="Maximum time for agent execution (default 30m)",
    )
    parser.add_argument(
        "--instructions",
        default=default(""),
        help="Path to file containing agent instructions",
    )
    parser.add_argument(
        "--agent",
        action=_StringSlice,
        default=default(DEFAULT_AGENT),
        help="Command to run the AI agent",
    )
    parser.add_argument(
        "--lint",
        action=_StringSlice,
        default=default(DEFAULT_LINT),
        help="Command to run linting",
    )
    parser.add_argument(
        "--test",
        action=_StringSlice,
        default=default(DEFAULT_TEST),
        help="Command to run tests",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=default(False),
        help="Enable verbose output",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the kratt command."""
    root = argparse.ArgumentParser(
        prog="kratt",
        description=(
            "Kratt provides a command-line interface for running automated PR "
            "processing with AI agents."
        ),
        allow_abbrev=False,
    )
    _add_global_options(root, suppress=False)
    root.set_defaults(handler=None, help_parser=root)
    commands = root.add_subparsers(title="commands", metavar="<command>")

    worker = commands.add_parser(
        "worker",
        help="Worker commands for processing pull requests",
        description="Commands for running the automated PR processing worker.",
        allow_abbrev=False,
    )
    _add_global_options(worker, suppress=True)
    worker.set_defaults(handler=None, help_parser=worker)
    worker_commands = worker.add_subparsers(title="commands", metavar="<command>")

    run = worker_commands.add_parser(
        "run",
        help="Process a specific pull request",
        description=(
            "Runs the worker to process a specific pull request in the current "
            "repository."
        ),
        allow_abbrev=False,
    )
    _add_global_options(run, suppress=True)
    run.add_argument("pr_number", metavar="<pr-number>")
    run.set_defaults(handler=_worker_run, help_parser=run)

    start = worker_commands.add_parser(
        "start",
        help="Create a new branch with instructions and open a pull request",
        description=(
            "Creates a new branch with instructions and opens a pull request for "
            "implementation."
        ),
        allow_abbrev=False,
    )
    _add_global_options(start, suppress=True)
    start.add_argument("branch_name", metavar="<branch-name>")
    start.add_argument("instruction", metavar="<instructions>")
    start.set_defaults(handler=_worker_start, help_parser=start)

    return root


def _repository(git: GitRunner) -> tuple[str, str]:
    try:
        inside = git.is_git_repository()
    except GitError as exc:
        raise _CommandFailed(f"error checking git repository: {exc}") from exc
    if not inside:
        raise _CommandFailed("current directory is not a git repository")
    try:
        return git.github_repository()
    except GitError as exc:
        raise _CommandFailed(
            f"no GitHub remote found in current repository: {exc}"
        ) from exc


def _make_worker(options: argparse.Namespace, git: GitRunner, instructions: str):
    return Worker(
        git=git,
        github=GitHubCLI(),
        runner=ExecRunner(),
        instructions=instructions,
        agent_command=list(options.agent),
        lint_command=list(options.lint),
        test_command=list(options.test),
        deadline=options.timeout,
    )


def _read_instructions(path: str) -> str:
    try:
        handle = open(path, encoding="utf-8")
    except OSError as exc:
        raise _CommandFailed(f"failed to open instructions file: {exc}") from exc
    with handle:
        try:
            return handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise _CommandFailed(f"failed to read instructions file: {exc}") from exc


def _worker_run(options: argparse.Namespace) -> None:
    text = options.pr_number
    if not _PR_NUMBER.fullmatch(text) or int(text) <= 0:
        raise _CommandFailed("invalid pull request number: must be a positive integer")
    pr_number = int(text)

    git = GitRunner()
    owner, repo = _repository(git)
    if options.verbose:
        print(f"Processing PR #{pr_number} in repository {owner}/{repo}")

    if options.instructions:
        instructions = _read_instructions(options.instructions)
    else:
        instructions = REVIEW_INSTRUCTIONS

    worker = _make_worker(options, git, instructions)
    try:
        worker.process_pr(pr_number)
    except WorkerError as exc:
        raise _CommandFailed(f"failed to process PR #{pr_number}: {exc}") from exc

    if options.verbose:
        print(f"Successfully processed PR #{pr_number}")


def _worker_start(options: argparse.Namespace) -> None:
    branch_name = options.branch_name
    if not is_valid_branch_name(branch_name):
        raise _CommandFailed("invalid branch name: must not contain invalid characters")

    git = GitRunner()
    owner, repo = _repository(git)
    if options.verbose:
        print(f"Creating branch {branch_name} in repository {owner}/{repo}")

    try:
        exists = git.branch_exists(branch_name)
    except GitError as exc:
        raise _CommandFailed(f"error checking if branch exists: {exc}") from exc
    if exists:
        raise _CommandFailed(f"branch already exists: {branch_name}")

    worker = _make_worker(options, git, IMPLEMENTATION_INSTRUCTIONS)
    try:
        worker.start(branch_name, options.instruction)
    except WorkerError as exc:
        raise _CommandFailed(f"failed to start branch {branch_name}: {exc}") from exc

    if options.verbose:
        print(f"Successfully created branch {branch_name} and opened pull request")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the kratt command and return its exit status."""
    parser = build_parser()
    options = parser.parse_args(argv)
    if options.handler is None:
        options.help_parser.print_help()
        return 0
    try:
        options.handler(options)
    except _CommandFailed as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())