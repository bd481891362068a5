from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path

import pytest
from conftest import make_unit

from move_web_compiler.errors import WorkspaceError
from move_web_compiler.extractor import ArtifactExtractor, NamePatternClassifier
from move_web_compiler.toolchain import BuiltPackage, CompiledUnit


@dataclass
class StaticPackage:
    """Package whose payload list is given directly, independent of its units."""

    units: list[CompiledUnit]
    payloads: list[str]

    def all_compiled_units(self) -> list[CompiledUnit]:
        return self.units

    def get_package_base64(self, include_unpublished: bool) -> list[str]:
        return self.payloads


def test_single_user_module(tmp_path: Path) -> None:
    unit = make_unit("hello")
    result = ArtifactExtractor().extract(BuiltPackage(root_units=(unit,)), tmp_path / "bytecode")

    assert result.module_names == ("hello",)
    assert result.module_sizes == (80,)
    assert result.encoded_modules == (base64.b64encode(unit.bytecode).decode(),)
    assert (tmp_path / "bytecode" / "hello.mv").read_bytes() == unit.bytecode
    assert result.persisted == (tmp_path / "bytecode" / "hello.mv",)
    assert result.warnings == ()


def test_unclassified_module_gets_placeholder(tmp_path: Path) -> None:
    unit = make_unit("counter", namespace="my_pkg")
    result = ArtifactExtractor().extract(BuiltPackage(root_units=(unit,)), tmp_path / "bytecode")

    assert result.module_names == ("Module_1",)
    assert result.module_sizes == (1024,)
    assert len(result.encoded_modules) == 1
    assert (tmp_path / "bytecode" / "Module_1.mv").read_bytes() == unit.bytecode


def test_every_payload_is_returned(tmp_path: Path) -> None:
    root = make_unit("hello")
    dep = make_unit("helper", namespace="helper_pkg", is_dependency=True)
    pkg = BuiltPackage(root_units=(root,), dependency_units=(dep,))

    result = ArtifactExtractor().extract(pkg, tmp_path / "bytecode")

    assert len(result.encoded_modules) == 2
    assert result.module_names == ("hello", "Module_2")
    assert result.module_sizes == (80, 1024)
    assert len(result.records) == 2


def test_excluding_unpublished_dependencies(tmp_path: Path) -> None:
    root = make_unit("hello")
    dep = make_unit("helper", namespace="helper_pkg", is_dependency=True)
    pkg = BuiltPackage(root_units=(root,), dependency_units=(dep,))

    result = ArtifactExtractor(include_unpublished=False).extract(pkg, tmp_path / "bytecode")

    assert result.encoded_modules == (base64.b64encode(root.bytecode).decode(),)
    assert result.module_names == ("hello",)


def test_placeholder_never_collides_with_real_name(tmp_path: Path) -> None:
    root = make_unit("Module_2")
    dep = make_unit("helper", namespace="helper_pkg", is_dependency=True)
    pkg = BuiltPackage(root_units=(root,), dependency_units=(dep,))

    result = ArtifactExtractor().extract(pkg, tmp_path / "bytecode")

    assert result.module_names == ("Module_2", "Module_2_2")
    assert len(set(result.module_names)) == len(result.module_names)
    assert len(list((tmp_path / "bytecode").iterdir())) == 2


def test_duplicate_real_names_are_disambiguated(tmp_path: Path) -> None:
    a = make_unit("hello", package="A")
    b = make_unit("hello", package="B", address=5)
    result = ArtifactExtractor().extract(BuiltPackage(root_units=(a, b)), tmp_path / "bytecode")

    assert result.module_names == ("hello", "hello_2")


def test_more_names_than_payloads(tmp_path: Path) -> None:
    units = [make_unit("hello"), make_unit("hello_world")]
    payload = base64.b64encode(units[0].bytecode).decode()
    result = ArtifactExtractor().extract(StaticPackage(units, [payload]), tmp_path / "bytecode")

    assert result.encoded_modules == (payload,)
    assert result.module_names == ("hello", "hello_world")
    assert len(result.records) == 1


def test_undecodable_payload_kept_but_not_persisted(tmp_path: Path, caplog) -> None:
    good = make_unit("hello")
    payloads = [base64.b64encode(good.bytecode).decode(), "@@not-base64@@"]
    result = ArtifactExtractor().extract(StaticPackage([good], payloads), tmp_path / "bytecode")

    assert result.encoded_modules == tuple(payloads)
    assert result.module_names == ("hello", "Module_2")
    assert [p.name for p in result.persisted] == ["hello.mv"]
    assert "Cannot decode bytecode for Module_2" in caplog.text


def test_custom_classifier(tmp_path: Path) -> None:
    unit = make_unit("counter", namespace="my_pkg")
    classifier = NamePatternClassifier(prefixes=("my_pkg::",), substrings=())
    result = ArtifactExtractor(classifier).extract(BuiltPackage(root_units=(unit,)), tmp_path / "bytecode")
    assert result.module_names == ("counter",)


def test_existing_bytecode_dir_is_reused(tmp_path: Path) -> None:
    out = tmp_path / "bytecode"
    out.mkdir()
    result = ArtifactExtractor().extract(BuiltPackage(root_units=(make_unit("hello"),)), out)
    assert result.persisted == (out / "hello.mv",)


def test_missing_workspace_raises(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceError):
        ArtifactExtractor().extract(BuiltPackage(root_units=(make_unit("hello"),)), tmp_path / "gone" / "bytecode")


@pytest.mark.parametrize(
    "qualified,expected",
    [
        ("examples::counter", True),
        ("my_pkg::hello_world", True),
        ("0x2::coin", False),
        ("sui::examples", False),
    ],
)
def test_default_classifier(qualified: str, expected: bool) -> None:
    assert NamePatternClassifier()(qualified) is expected
