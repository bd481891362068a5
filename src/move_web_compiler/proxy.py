"""Command proxy for the Sui CLI.

Accepts one command line such as `sui client publish --path /tmp/x --gas-budget
100000000`, checks that it starts with `sui` and has at least one argument,
runs the CLI with the remaining arguments and captures both output streams.
For deploys the published package id is read from the console output.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from collections.abc import Callable, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass

from move_web_compiler.constants import (
    DEFAULT_SUI_BIN,
    HEX_ADDRESS_PREFIX,
    PACKAGE_ID_MARKERS,
    SUI_COMMAND_TOKEN,
)
from move_web_compiler.errors import CommandValidationError, NonZeroExitError, SpawnError
from move_web_compiler.logging import EventLog
from move_web_compiler.schema import CommandResponseJson

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpawnOutput:
    exit_status: int
    stdout: bytes
    stderr: bytes


# (executable, args) -> SpawnOutput; raises OSError (or ValueError for arguments the
# OS cannot take) if the process cannot start
Spawner = Callable[[str, Sequence[str]], SpawnOutput]


def subprocess_spawn(executable: str, args: Sequence[str]) -> SpawnOutput:
    proc = subprocess.run([executable, *args], check=False, capture_output=True)
    return SpawnOutput(exit_status=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def extract_package_id(stdout: str) -> str | None:
    """Return the first `0x...` token found on a line carrying a package id label."""
    for line in stdout.splitlines():
        if not any(marker in line for marker in PACKAGE_ID_MARKERS):
            continue
        for token in line.split():
            if token.startswith(HEX_ADDRESS_PREFIX):
                return token
    return None


@dataclass(frozen=True)
class CommandResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_status: int | None = None
    extracted_identifier: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def spawned(self) -> bool:
        return self.exit_status is not None


class CommandProxy:
    def __init__(
        self,
        executable: str = DEFAULT_SUI_BIN,
        spawn: Spawner = subprocess_spawn,
        *,
        event_log: EventLog | None = None,
    ) -> None:
        self.executable = executable
        self.spawn = spawn
        self.event_log = event_log

    @staticmethod
    def parse(command: str) -> list[str]:
        """
        Split a command line and return the arguments after the `sui` token.

        Raises:
            CommandValidationError: If the command does not start with `sui`,
                has no arguments or contains a NUL character.
        """
        if "\0" in command:
            raise CommandValidationError(command, "command contains a NUL character")
        parts = command.split()
        if len(parts) < 2 or parts[0] != SUI_COMMAND_TOKEN:
            raise CommandValidationError(command, f"command must start with '{SUI_COMMAND_TOKEN}' and have arguments")
        return parts[1:]

    def run(self, command: str, *, extract_identifier: bool = False) -> CommandResult:
        try:
            args = self.parse(command)
        except CommandValidationError as e:
            logger.warning(f"Rejected command {command!r}: {e.message}")
            return self._finish(command, CommandResult(success=False, error=e.message, error_kind=e.kind))

        logger.info(f"Running: {self.executable} {' '.join(args)}")
        try:
            out = self.spawn(self.executable, args)
        except (OSError, ValueError) as e:
            # ValueError: text subprocess cannot encode for exec, e.g. lone surrogates
            err = SpawnError(self.executable, str(e))
            logger.error(err.message)
            return self._finish(command, CommandResult(success=False, error=err.message, error_kind=err.kind))

        stdout = out.stdout.decode("utf-8", errors="replace")
        stderr = out.stderr.decode("utf-8", errors="replace")
        success = out.exit_status == 0
        logger.info(f"Command finished with status {out.exit_status} ({'success' if success else 'failure'})")

        identifier = extract_package_id(stdout) if extract_identifier else None
        if success:
            result = CommandResult(
                success=True,
                stdout=stdout,
                stderr=stderr,
                exit_status=out.exit_status,
                extracted_identifier=identifier,
            )
        else:
            err = NonZeroExitError(out.exit_status, stderr)
            logger.warning(err.message)
            result = CommandResult(
                success=False,
                stdout=stdout,
                stderr=stderr,
                exit_status=out.exit_status,
                extracted_identifier=identifier,
                error=err.stderr,
                error_kind=err.kind,
            )
        return self._finish(command, result)

    def deploy(self, command: str) -> CommandResult:
        return self.run(command, extract_identifier=True)

    def test(self, command: str) -> CommandResult:
        return self.run(command)

    async def run_async(
        self, command: str, executor: Executor | None = None, *, extract_identifier: bool = False
    ) -> CommandResult:
        """Run `run()` on `executor` so the event loop stays free while the CLI runs."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            executor, lambda: self.run(command, extract_identifier=extract_identifier)
        )

    def _finish(self, command: str, result: CommandResult) -> CommandResult:
        if self.event_log is not None:
            self.event_log.event(
                "command_finished",
                command=command,
                success=result.success,
                exit_status=result.exit_status,
                error_kind=result.error_kind,
                extracted_identifier=result.extracted_identifier,
            )
        return result


def render_deploy_response(result: CommandResult) -> CommandResponseJson:
    return {
        "success": result.success,
        "extracted_identifier": result.extracted_identifier,
        "output": f"stdout: {result.stdout}\nstderr: {result.stderr}" if result.spawned else None,
        "error": result.error,
        "error_kind": result.error_kind,
    }


def render_test_response(result: CommandResult) -> CommandResponseJson:
    return {
        "success": result.success,
        "output": f"# Output:\n{result.stdout}\n\n# Errors/Warnings:\n{result.stderr}" if result.spawned else None,
        "error": result.error,
        "error_kind": result.error_kind,
    }
