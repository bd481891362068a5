"""Compile pipeline: workspace -> build -> artifact extraction -> CompileResult."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path

from move_web_compiler.config import Settings
from move_web_compiler.constants import DEFAULT_SOURCE_FILE_NAME
from move_web_compiler.driver import BuildDriver
from move_web_compiler.errors import BuildError, CompilerServiceError, WorkspaceError
from move_web_compiler.extractor import ArtifactExtractor, ModuleRecord, NamePatternClassifier
from move_web_compiler.logging import EventLog
from move_web_compiler.schema import CompileResponseJson
from move_web_compiler.toolchain import SuiCliToolchain, Toolchain
from move_web_compiler.workspace import WorkspaceBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileRequest:
    source_code: str
    file_name: str = DEFAULT_SOURCE_FILE_NAME
    # None: default addresses, "": no address section, otherwise used verbatim
    address_config: str | None = None


@dataclass(frozen=True)
class CompileResult:
    success: bool
    modules: tuple[ModuleRecord, ...] = ()
    encoded_modules: tuple[str, ...] = ()
    module_names: tuple[str, ...] = ()
    module_sizes: tuple[int, ...] = ()
    warnings: tuple[str, ...] = ()
    elapsed_ms: int = 0
    error: str | None = None
    error_kind: str | None = None
    workspace_path: Path | None = None

    @classmethod
    def failure(cls, err: CompilerServiceError, *, elapsed_ms: int = 0) -> CompileResult:
        return cls(success=False, elapsed_ms=elapsed_ms, error=err.message, error_kind=err.kind)

    def to_dict(self) -> CompileResponseJson:
        return {
            "success": self.success,
            "encoded_modules": list(self.encoded_modules),
            "module_names": list(self.module_names),
            "module_sizes": list(self.module_sizes),
            "elapsed_ms": self.elapsed_ms,
            "error": self.error,
            "warnings": list(self.warnings),
            "workspace_path": str(self.workspace_path) if self.workspace_path else None,
        }


class CompileService:
    """
    Runs one compile request end to end.

    `compile()` never raises for workspace or build failures; they come back
    as a failed CompileResult. It is blocking: async callers go through
    `compile_async()` with a worker pool.
    """

    def __init__(
        self,
        builder: WorkspaceBuilder,
        driver: BuildDriver,
        extractor: ArtifactExtractor,
        *,
        event_log: EventLog | None = None,
    ) -> None:
        self.builder = builder
        self.driver = driver
        self.extractor = extractor
        self.event_log = event_log

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        toolchain: Toolchain | None = None,
        event_log: EventLog | None = None,
    ) -> CompileService:
        if event_log is None and settings.event_log_dir:
            event_log = EventLog(base_dir=settings.event_log_dir)
        classifier = NamePatternClassifier(
            prefixes=settings.user_module_prefixes,
            substrings=settings.user_module_substrings,
        )
        return cls(
            builder=WorkspaceBuilder(settings.workspace_root),
            driver=BuildDriver(toolchain or SuiCliToolchain(settings.sui_bin)),
            extractor=ArtifactExtractor(classifier, include_unpublished=settings.include_unpublished),
            event_log=event_log,
        )

    def compile(self, request: CompileRequest) -> CompileResult:
        try:
            workspace = self.builder.create(
                request.source_code,
                request.file_name or DEFAULT_SOURCE_FILE_NAME,
                request.address_config,
            )
        except WorkspaceError as e:
            logger.error(f"Workspace creation failed: {e.message}")
            return self._finish(CompileResult.failure(e))

        try:
            outcome = self.driver.build(workspace.path)
            extraction = self.extractor.extract(outcome.package, workspace.bytecode_dir)
        except BuildError as e:
            logger.info(f"Compile failed for {workspace.path}")
            return self._finish(CompileResult.failure(e, elapsed_ms=int(e.data.get("elapsed_ms", 0))))
        except WorkspaceError as e:
            logger.error(f"Artifact extraction failed: {e.message}")
            return self._finish(CompileResult.failure(e))

        return self._finish(
            CompileResult(
                success=True,
                modules=extraction.records,
                encoded_modules=extraction.encoded_modules,
                module_names=extraction.module_names,
                module_sizes=extraction.module_sizes,
                warnings=extraction.warnings,
                elapsed_ms=outcome.elapsed_ms + extraction.elapsed_ms,
                workspace_path=workspace.path,
            )
        )

    async def compile_async(self, request: CompileRequest, executor: Executor | None = None) -> CompileResult:
        """Run `compile()` on `executor` so the event loop stays free during the build."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, self.compile, request)

    def _finish(self, result: CompileResult) -> CompileResult:
        if self.event_log is not None:
            self.event_log.event(
                "compile_finished",
                success=result.success,
                modules=len(result.encoded_modules),
                elapsed_ms=result.elapsed_ms,
                workspace_path=str(result.workspace_path) if result.workspace_path else None,
                error_kind=result.error_kind,
            )
        return result
