"""External command execution.

Every storage step in a provisioning run is a single external program
invocation. ``CommandRunner`` runs it to completion (blocking, no timeout,
no shell) and hands back the raw exit status and captured output;
``run_checked`` turns a non-zero exit into the caller's error type.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Sequence, Type

from disk_provisioner.logging import LoggerFactory
from disk_provisioner.storage.exceptions import (
    CommandError,
    ParseError,
    ToolExecutionError,
)


log = LoggerFactory.for_commands()


@dataclass(frozen=True)
class CommandResult:
    program: str
    args: tuple[str, ...] = ()
    returncode: int = 0
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return " ".join([self.program, *self.args])

    def stdout_text(self) -> str:
        return _decode(self.stdout, f"{self.command_line} (stdout)")

    def stderr_text(self) -> str:
        return _decode(self.stderr, f"{self.command_line} (stderr)")


def _decode(data: bytes, source: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as error:
        raise ParseError(source, f"invalid UTF-8 at byte {error.start}") from error


class CommandRunner:
    """Runs external programs to completion and captures their output."""

    def run(self, program: str, args: Sequence[str] = ()) -> CommandResult:
        args = tuple(str(arg) for arg in args)
        command = [program, *args]
        log.debug(f"Running command: {' '.join(command)}")
        try:
            completed = subprocess.run(command, capture_output=True, check=False)
        except (FileNotFoundError, PermissionError) as error:
            log.error(f"Cannot execute {program}: {error}")
            raise ToolExecutionError(" ".join(command), str(error)) from error

        result = CommandResult(
            program=program,
            args=args,
            returncode=completed.returncode,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b"",
        )
        output_log = log.bind(tags=["command", "output"])
        if result.stdout:
            output_log.debug(f"stdout: {result.stdout.decode('utf-8', 'replace').strip()}")
        if result.stderr:
            output_log.debug(f"stderr: {result.stderr.decode('utf-8', 'replace').strip()}")
        log.debug(f"Command completed with return code {result.returncode}")
        return result


def failure_message(result: CommandResult) -> str:
    """Diagnostic text of a failed command: stderr, else stdout."""
    return (result.stderr_text().strip() or result.stdout_text().strip())


def run_checked(
    runner: CommandRunner,
    program: str,
    args: Sequence[str] = (),
    error_cls: Type[CommandError] = CommandError,
) -> CommandResult:
    """Run a command and raise ``error_cls`` if it exits non-zero."""
    result = runner.run(program, args)
    if not result.success:
        raise error_cls(result.command_line, failure_message(result), result.returncode)
    return result
