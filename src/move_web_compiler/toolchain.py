"""Compiler toolchain collaborators.

A toolchain turns a workspace directory into a `CompiledPackage`: the ordered
compiled units (root package first, then dependencies) and their base64
payloads. `SuiCliToolchain` drives `sui move build` and reads the modules it
leaves under `build/<package>/bytecode_modules`.
"""

from __future__ import annotations

import base64
import logging
import re
import subprocess
import tomllib
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from move_web_compiler.bytecode import ModuleSummary, read_module_summary
from move_web_compiler.constants import (
    BYTECODE_EXTENSION,
    DEFAULT_SUI_BIN,
    MANIFEST_FILE_NAME,
    MANIFEST_PACKAGE_NAME,
    SOURCES_DIR_NAME,
)
from move_web_compiler.errors import BytecodeFormatError, ToolchainError
from move_web_compiler.utils import sanitize_file_name, short_address

logger = logging.getLogger(__name__)

# `module examples::hello {` / `module 0x0::hello;`
_MODULE_DECL_RE = re.compile(r"\bmodule\s+([A-Za-z_]\w*|0x[0-9a-fA-F]+)\s*::\s*([A-Za-z_]\w*)")


@dataclass(frozen=True)
class CompiledUnit:
    """One compiled module as reported by the toolchain. Read-only to the pipeline."""

    name: str
    qualified_name: str
    module: ModuleSummary
    bytecode: bytes
    package: str
    is_dependency: bool = False


class CompiledPackage(Protocol):
    def all_compiled_units(self) -> Sequence[CompiledUnit]: ...

    def get_package_base64(self, include_unpublished: bool) -> list[str]: ...


class Toolchain(Protocol):
    def build(self, workspace_path: Path) -> CompiledPackage: ...


def _is_unpublished_dependency(unit: CompiledUnit) -> bool:
    return unit.is_dependency and short_address(unit.module.address) == "0x0"


@dataclass(frozen=True)
class BuiltPackage:
    root_units: tuple[CompiledUnit, ...]
    dependency_units: tuple[CompiledUnit, ...] = ()

    def all_compiled_units(self) -> list[CompiledUnit]:
        return [*self.root_units, *self.dependency_units]

    def get_package_base64(self, include_unpublished: bool) -> list[str]:
        """
        Base64 payloads in publish order.

        With `include_unpublished`, modules of dependencies that have no on-chain
        address yet are emitted ahead of the root package modules.
        """
        units: list[CompiledUnit] = []
        if include_unpublished:
            units.extend(u for u in self.all_compiled_units() if _is_unpublished_dependency(u))
        units.extend(self.root_units)
        return [base64.b64encode(u.bytecode).decode("ascii") for u in units]


def dependency_order(units: Sequence[CompiledUnit]) -> list[CompiledUnit]:
    """
    Order units so every module comes after the modules it references.

    Ties are broken by module name so the order is deterministic. Units with
    identical identity are all kept.

    Raises:
        ToolchainError: If the modules reference each other in a cycle.
    """
    index_by_key: dict[tuple[str, str], int] = {}
    for i, u in enumerate(units):
        index_by_key.setdefault((u.module.address, u.module.name), i)

    pending: dict[int, set[int]] = {}
    for i, u in enumerate(units):
        deps = {index_by_key[d] for d in u.module.dependencies if d in index_by_key}
        deps.discard(i)
        pending[i] = deps

    ordered: list[CompiledUnit] = []
    while pending:
        ready = sorted((i for i, deps in pending.items() if not deps), key=lambda i: (units[i].name, i))
        if not ready:
            stuck = sorted(units[i].name for i in pending)
            raise ToolchainError(f"Cyclic module dependencies among: {', '.join(stuck)}")
        for i in ready:
            ordered.append(units[i])
            del pending[i]
        for deps in pending.values():
            deps.difference_update(ready)
    return ordered


def named_addresses_from_sources(sources_dir: Path) -> dict[str, str]:
    """Map module name -> address name as declared in `module <addr>::<name>` headers."""
    out: dict[str, str] = {}
    if not sources_dir.is_dir():
        return out
    for path in sorted(sources_dir.rglob("*.move")):
        text = path.read_text(encoding="utf-8", errors="replace")
        for addr, name in _MODULE_DECL_RE.findall(text):
            out.setdefault(name, addr)
    return out


def find_built_bytecode_dir(workspace_path: Path) -> Path | None:
    """Find the bytecode_modules directory from `sui move build` output.

    The build output is at build/<package_name>/bytecode_modules, where package_name
    comes from Move.toml.
    """
    pkg_name = MANIFEST_PACKAGE_NAME
    toml_path = workspace_path / MANIFEST_FILE_NAME
    if toml_path.is_file():
        try:
            with open(toml_path, "rb") as f:
                raw_name = tomllib.load(f).get("package", {}).get("name", pkg_name)
        except tomllib.TOMLDecodeError as e:
            logger.warning(f"Cannot read package name from {toml_path}: {e}")
            raw_name = pkg_name
        # Sanitize before using the name in a path
        pkg_name = sanitize_file_name(raw_name) or MANIFEST_PACKAGE_NAME

    bytecode_dir = workspace_path / "build" / pkg_name / "bytecode_modules"
    if bytecode_dir.is_dir():
        return bytecode_dir

    # Fall back to any package directory under build/
    build_dir = workspace_path / "build"
    if build_dir.is_dir():
        for pkg_dir in sorted(build_dir.iterdir()):
            cand = pkg_dir / "bytecode_modules"
            if cand.is_dir():
                return cand
    return None


def load_compiled_unit(
    path: Path,
    *,
    package: str,
    named_addresses: dict[str, str] | None = None,
    is_dependency: bool = False,
) -> CompiledUnit:
    data = path.read_bytes()
    try:
        summary = read_module_summary(data)
    except BytecodeFormatError as e:
        logger.warning(f"Cannot summarise {path}: {e}; reporting it with zero counts")
        summary = ModuleSummary(address="0x0", name=path.stem)
    namespace = (named_addresses or {}).get(summary.name) or short_address(summary.address)
    return CompiledUnit(
        name=summary.name,
        qualified_name=f"{namespace}::{summary.name}",
        module=summary,
        bytecode=data,
        package=package,
        is_dependency=is_dependency,
    )


def _diagnostics(stderr: str, stdout: str) -> str:
    # sui move build writes some errors (e.g. dependency resolution) to stdout
    parts = [s.strip() for s in (stderr, stdout) if s and s.strip()]
    return "\n".join(parts) or "sui move build failed without output"


class SuiCliToolchain:
    """Builds a workspace with the Sui CLI."""

    def __init__(self, sui_bin: str = DEFAULT_SUI_BIN, *, extra_args: Sequence[str] = ()) -> None:
        self.sui_bin = sui_bin
        self.extra_args = tuple(extra_args)

    def build(self, workspace_path: Path) -> BuiltPackage:
        cmd = [self.sui_bin, "move", "build", "--path", str(workspace_path), *self.extra_args]
        logger.info(f"Running: {' '.join(cmd)}")
        try:
            proc = subprocess.run(cmd, check=False, capture_output=True, text=True, errors="replace")
        except OSError as e:
            raise ToolchainError(f"Failed to run {self.sui_bin}: {e}") from e
        if proc.returncode != 0:
            raise ToolchainError(_diagnostics(proc.stderr, proc.stdout), data={"exit_status": proc.returncode})

        bytecode_dir = find_built_bytecode_dir(workspace_path)
        if bytecode_dir is None:
            raise ToolchainError(f"Build succeeded but no bytecode_modules directory was found in {workspace_path}")

        named = named_addresses_from_sources(workspace_path / SOURCES_DIR_NAME)
        package_name = bytecode_dir.parent.name
        root = [
            load_compiled_unit(p, package=package_name, named_addresses=named)
            for p in sorted(bytecode_dir.glob(f"*{BYTECODE_EXTENSION}"))
        ]

        deps: list[CompiledUnit] = []
        dep_root = bytecode_dir / "dependencies"
        if dep_root.is_dir():
            for dep_dir in sorted(p for p in dep_root.iterdir() if p.is_dir()):
                deps.extend(
                    load_compiled_unit(p, package=dep_dir.name, is_dependency=True)
                    for p in sorted(dep_dir.glob(f"*{BYTECODE_EXTENSION}"))
                )

        dep_packages = sorted({u.package for u in deps})
        logger.info(
            f"Loaded {len(root)} module(s) of {package_name} and {len(deps)} dependency module(s)"
            f" from {', '.join(dep_packages) or 'no packages'}"
        )
        return BuiltPackage(root_units=tuple(dependency_order(root)), dependency_units=tuple(deps))
