from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeToolchain, failing_toolchain

from move_web_compiler.driver import BuildDriver
from move_web_compiler.errors import BuildError


def test_build_returns_package_and_timing(tmp_path: Path, hello_package) -> None:
    tc = FakeToolchain(hello_package)
    outcome = BuildDriver(tc).build(tmp_path)

    assert outcome.package is hello_package
    assert outcome.elapsed_ms >= 0
    assert tc.calls == [tmp_path]


def test_toolchain_diagnostics_passed_through_verbatim(tmp_path: Path) -> None:
    diag = "error[E03001]: address with no value\n  ┌─ sources/hello.move:1:8"
    tc = failing_toolchain(diag)

    with pytest.raises(BuildError) as ei:
        BuildDriver(tc).build(tmp_path)

    assert ei.value.diagnostics == diag
    assert ei.value.message == f"Build failed: {diag}"
    assert ei.value.data["exit_status"] == 1
    assert "elapsed_ms" in ei.value.data


def test_no_retry_on_failure(tmp_path: Path) -> None:
    tc = failing_toolchain()
    with pytest.raises(BuildError):
        BuildDriver(tc).build(tmp_path)
    assert len(tc.calls) == 1


def test_unexpected_toolchain_crash_becomes_build_error(tmp_path: Path) -> None:
    tc = FakeToolchain(error=RuntimeError("boom"))
    with pytest.raises(BuildError, match="RuntimeError: boom"):
        BuildDriver(tc).build(tmp_path)
