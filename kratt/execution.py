"""Running external commands, for real or against canned responses."""

from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import MappingProxyType

DEFAULT_FAKE_OUTPUT = b"fake output"


class CommandError(Exception):
    """An external command could not be run or finished unsuccessfully.

    ``output`` holds whatever the command printed before it failed.
    """

    def __init__(self, message: str, output: bytes = b"") -> None:
        super().__init__(message)
        self.output = output


def _describe(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        if exc.returncode < 0:
            return f"signal {-exc.returncode}"
        return f"exit status {exc.returncode}"
    if isinstance(exc, subprocess.TimeoutExpired):
        return f"timed out after {exc.timeout:g}s"
    return str(exc)


def _render(command: str, args: tuple[str, ...]) -> str:
    return f"{command} [{' '.join(args)}]"


class CommandRunner(ABC):
    """Something that can start external commands."""

    @abstractmethod
    def run_with_stdin(
        self, stdin: str, command: str, *args: str, timeout: float | None = None
    ) -> None:
        """Run a command feeding ``stdin`` to it; raise CommandError on failure."""

    @abstractmethod
    def run_with_output(
        self, command: str, *args: str, timeout: float | None = None
    ) -> bytes:
        """Run a command and return its interleaved stdout and stderr."""


class ExecRunner(CommandRunner):
    """Runs commands as real child processes."""

    def run_with_stdin(
        self, stdin: str, command: str, *args: str, timeout: float | None = None
    ) -> None:
        try:
            subprocess.run(
                [command, *args],
                input=stdin.encode(),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=True,
                timeout=timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise CommandError(
                f"failed to run command {_render(command, args)}: {_describe(exc)}"
            ) from exc

    def run_with_output(
        self, command: str, *args: str, timeout: float | None = None
    ) -> bytes:
        try:
            completed = subprocess.run(
                [command, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=True,
                timeout=timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            output = getattr(exc, "output", None) or b""
            raise CommandError(
                f"command {_render(command, args)} failed: {_describe(exc)}",
                output=output,
            ) from exc
        return completed.stdout


class FakeCommandRunner(CommandRunner):
    """Records the commands it is asked to run and replays configured results.

    Commands are keyed by the command name and its arguments joined by spaces.
    """

    def __init__(self) -> None:
        self._stdin_inputs: dict[str, str] = {}
        self._responses: dict[str, bytes] = {}
        self._errors: dict[str, Exception] = {}

    @staticmethod
    def _key(command: str, args: tuple[str, ...]) -> str:
        return f"{command} {' '.join(args)}"

    @property
    def stdin_inputs(self) -> Mapping[str, str]:
        """The stdin text each command received, keyed by command line."""
        return MappingProxyType(self._stdin_inputs)

    def set_response(
        self, command_pattern: str, output: bytes, error: Exception | None = None
    ) -> None:
        """Configure the output and optional failure for a command line."""
        self._responses[command_pattern] = output
        if error is not None:
            self._errors[command_pattern] = error

    def run_with_stdin(
        self, stdin: str, command: str, *args: str, timeout: float | None = None
    ) -> None:
        key = self._key(command, args)
        self._stdin_inputs[key] = stdin
        error = self._errors.get(key)
        if error is not None:
            raise error

    def run_with_output(
        self, command: str, *args: str, timeout: float | None = None
    ) -> bytes:
        key = self._key(command, args)
        if key not in self._responses:
            return DEFAULT_FAKE_OUTPUT
        output = self._responses[key]
        error = self._errors.get(key)
        if error is not None:
            raise CommandError(str(error), output=output) from error
        return output