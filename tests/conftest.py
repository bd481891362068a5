"""
Shared pytest fixtures and utilities for move-web-compiler tests.

This module provides:
- A builder for small, valid Move binary modules
- Fake toolchain and fake CLI spawner collaborators
- Settings pointed at a temporary workspace root
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from move_web_compiler.bytecode import TableKind, read_module_summary
from move_web_compiler.config import Settings
from move_web_compiler.errors import ToolchainError
from move_web_compiler.proxy import SpawnOutput
from move_web_compiler.toolchain import BuiltPackage, CompiledUnit

HELLO_SOURCE = """module examples::hello {
    public struct Greeting has key { id: UID }

    public fun say(): u64 { 42 }
}
"""

# ---------------------------------------------------------------------------
# Move Module Builder
# ---------------------------------------------------------------------------


def uleb128(n: int) -> bytes:
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def address_bytes(n: int) -> bytes:
    return n.to_bytes(32, "big")


def build_module(
    name: str,
    *,
    address: int = 0,
    functions: Sequence[str] = ("say",),
    structs: Sequence[str] = ("Greeting",),
    deps: Sequence[tuple[int, str]] = (),
    version: int = 6,
) -> bytes:
    """
    Serialize a minimal Move module.

    Identifiers are the module name, dependency names, function names, struct
    names, plus one field name when there are structs. Signatures are always
    `()` and `(u64)`. Each dependency also gets one function handle that must
    not be counted as a definition.
    """
    identifiers = [name, *(d for _, d in deps), *functions, *structs]
    if structs:
        identifiers.append("value")
    addresses: list[int] = [address]
    for addr, _ in deps:
        if addr not in addresses:
            addresses.append(addr)

    module_handles = uleb128(0) + uleb128(0)
    for i, (addr, _) in enumerate(deps, start=1):
        module_handles += uleb128(addresses.index(addr)) + uleb128(i)

    fn_base = 1 + len(deps)
    function_handles = b""
    for i in range(len(functions)):
        function_handles += uleb128(0) + uleb128(fn_base + i) + uleb128(0) + uleb128(0) + uleb128(0)
    for i in range(len(deps)):
        function_handles += uleb128(1 + i) + uleb128(1 + i) + uleb128(0) + uleb128(1) + uleb128(0)

    field_name = len(identifiers) - 1
    struct_defs = b""
    for i in range(len(structs)):
        # datatype handle, declared fields, one `bool` field
        struct_defs += uleb128(i) + b"\x02" + uleb128(1) + uleb128(field_name) + b"\x01"

    signatures = uleb128(0) + uleb128(1) + b"\x03"
    ident_table = b"".join(uleb128(len(s.encode())) + s.encode() for s in identifiers)
    addr_table = b"".join(address_bytes(a) for a in addresses)

    tables = [
        (TableKind.MODULE_HANDLES, module_handles),
        (TableKind.FUNCTION_HANDLES, function_handles),
        (TableKind.SIGNATURES, signatures),
        (TableKind.IDENTIFIERS, ident_table),
        (TableKind.ADDRESS_IDENTIFIERS, addr_table),
        (TableKind.STRUCT_DEFS, struct_defs),
    ]
    tables = [(k, body) for k, body in tables if body]

    directory = uleb128(len(tables))
    contents = b""
    for kind, body in tables:
        directory += bytes([kind]) + uleb128(len(contents)) + uleb128(len(body))
        contents += body

    out = b"\xa1\x1c\xeb\x0b" + version.to_bytes(4, "little") + directory + contents
    if version >= 5:
        out += uleb128(0)
    return out


def make_unit(
    name: str,
    *,
    namespace: str = "examples",
    address: int = 0,
    deps: Sequence[tuple[int, str]] = (),
    package: str = "MoveWebCompile",
    is_dependency: bool = False,
    **module_kwargs,
) -> CompiledUnit:
    data = build_module(name, address=address, deps=deps, **module_kwargs)
    summary = read_module_summary(data)
    return CompiledUnit(
        name=summary.name,
        qualified_name=f"{namespace}::{summary.name}",
        module=summary,
        bytecode=data,
        package=package,
        is_dependency=is_dependency,
    )


# ---------------------------------------------------------------------------
# Fake Collaborators
# ---------------------------------------------------------------------------


class FakeToolchain:
    """Returns a fixed package (or raises) and records every workspace it was asked to build."""

    def __init__(self, package: BuiltPackage | None = None, error: Exception | None = None) -> None:
        self.package = package if package is not None else BuiltPackage(root_units=(make_unit("hello"),))
        self.error = error
        self.calls: list[Path] = []

    def build(self, workspace_path: Path) -> BuiltPackage:
        self.calls.append(workspace_path)
        if self.error is not None:
            raise self.error
        return self.package


class FakeSpawner:
    """Stands in for `subprocess_spawn`; records (executable, args) per call."""

    def __init__(
        self,
        exit_status: int = 0,
        stdout: bytes = b"",
        stderr: bytes = b"",
        error: Exception | None = None,
    ) -> None:
        self.output = SpawnOutput(exit_status=exit_status, stdout=stdout, stderr=stderr)
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []

    def __call__(self, executable: str, args: Sequence[str]) -> SpawnOutput:
        self.calls.append((executable, list(args)))
        if self.error is not None:
            raise self.error
        return self.output


def failing_toolchain(diagnostics: str = "error[E01002]: unexpected token") -> FakeToolchain:
    return FakeToolchain(error=ToolchainError(diagnostics, data={"exit_status": 1}))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        workspace_root=tmp_path / "workspaces",
        static_dir=tmp_path / "static",
        worker_threads=2,
    )


@pytest.fixture
def hello_package() -> BuiltPackage:
    return BuiltPackage(root_units=(make_unit("hello"),))
