"""Build driver: one timed, un-retried call into the toolchain."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from move_web_compiler.errors import BuildError, ToolchainError
from move_web_compiler.toolchain import CompiledPackage, Toolchain

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@dataclass(frozen=True)
class BuildOutcome:
    package: CompiledPackage
    elapsed_ms: int


class BuildDriver:
    def __init__(self, toolchain: Toolchain) -> None:
        self.toolchain = toolchain

    def build(self, workspace_path: Path) -> BuildOutcome:
        """
        Build the package at `workspace_path`.

        Failures are reported immediately as BuildError with the toolchain's
        diagnostics untouched; retrying is up to the caller.
        """
        logger.info(f"Building package at {workspace_path}")
        start = time.monotonic()
        try:
            package = self.toolchain.build(workspace_path)
        except ToolchainError as e:
            elapsed = _elapsed_ms(start)
            logger.info(f"Build of {workspace_path} failed after {elapsed}ms")
            raise BuildError(e.diagnostics, data={**e.data, "elapsed_ms": elapsed}) from e
        except Exception as e:
            elapsed = _elapsed_ms(start)
            logger.exception(f"Toolchain crashed while building {workspace_path}")
            raise BuildError(f"{type(e).__name__}: {e}", data={"elapsed_ms": elapsed}) from e

        elapsed = _elapsed_ms(start)
        logger.info(f"Build of {workspace_path} succeeded in {elapsed}ms")
        return BuildOutcome(package=package, elapsed_ms=elapsed)
