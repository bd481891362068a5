"""Error type definitions.

Every failure the compile pipeline and command proxy can report has its own
type so callers can tell them apart. Errors carry a `kind` (the class name),
a human-readable message and optional structured data. The `kind` is what
HTTP responses report as `error_kind`.
"""

from __future__ import annotations

from typing import Any


class CompilerServiceError(Exception):
    """Base class for move-web-compiler errors."""

    def __init__(self, message: str, data: dict[str, Any] | None = None):
        self.message = message
        self.data = data or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class WorkspaceError(CompilerServiceError):
    """Workspace directory or file could not be created."""


class ManifestError(CompilerServiceError):
    """Address configuration fragment is malformed."""


class BuildError(CompilerServiceError):
    """The toolchain rejected the package. `diagnostics` is the toolchain text verbatim."""

    def __init__(self, diagnostics: str, data: dict[str, Any] | None = None):
        self.diagnostics = diagnostics
        super().__init__(f"Build failed: {diagnostics}", data)


class DecodeError(CompilerServiceError):
    """An encoded module could not be decoded back to raw bytes."""

    def __init__(self, module_name: str, reason: str):
        super().__init__(
            f"Cannot decode bytecode for {module_name}: {reason}",
            data={"module": module_name, "reason": reason},
        )


class CommandValidationError(CompilerServiceError):
    """Proxy command was rejected before any process was spawned."""

    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Invalid command: {reason}",
            data={"command": command, "reason": reason},
        )


class SpawnError(CompilerServiceError):
    """The external CLI process could not be started."""

    def __init__(self, executable: str, reason: str):
        super().__init__(
            f"Failed to start {executable}: {reason}",
            data={"executable": executable, "reason": reason},
        )


class NonZeroExitError(CompilerServiceError):
    """The external CLI process ran but exited with a failure status."""

    def __init__(self, exit_status: int, stderr: str):
        self.exit_status = exit_status
        self.stderr = stderr
        super().__init__(
            f"Command exited with status {exit_status}",
            data={"exit_status": exit_status},
        )


class ToolchainError(CompilerServiceError):
    """Raised by toolchain collaborators; the build driver wraps it into BuildError."""

    def __init__(self, diagnostics: str, data: dict[str, Any] | None = None):
        self.diagnostics = diagnostics
        super().__init__(diagnostics, data)


class BytecodeFormatError(CompilerServiceError):
    """A binary module could not be parsed."""


class BinaryNotFoundError(FileNotFoundError):
    """Raised when a required binary is not found."""

    pass


class BinaryNotExecutableError(PermissionError):
    """Raised when a binary exists but is not executable."""

    pass
