from __future__ import annotations

import tomllib
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from conftest import HELLO_SOURCE

from move_web_compiler import workspace
from move_web_compiler.constants import DEFAULT_ADDRESS_SECTION, MANIFEST_BASE_TEMPLATE
from move_web_compiler.errors import ManifestError, WorkspaceError
from move_web_compiler.workspace import (
    WorkspaceBuilder,
    parse_address_pair,
    parse_address_pairs,
    render_address_section,
    resolve_address_section,
)


def test_default_address_section(tmp_path: Path) -> None:
    ws = WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, "hello.move", None)

    manifest = ws.manifest_path.read_text()
    assert manifest == MANIFEST_BASE_TEMPLATE + DEFAULT_ADDRESS_SECTION
    parsed = tomllib.loads(manifest)
    assert parsed["package"]["name"] == "MoveWebCompile"
    assert parsed["addresses"] == {"std": "0x1", "sui": "0x2", "examples": "0x0", "hello_world": "0x0"}


def test_blank_address_config_omits_section(tmp_path: Path) -> None:
    ws = WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, "hello.move", "   \n")

    manifest = ws.manifest_path.read_text()
    assert manifest == MANIFEST_BASE_TEMPLATE
    assert "[addresses]" not in manifest


def test_caller_address_config_used_verbatim(tmp_path: Path) -> None:
    fragment = '[addresses]\nmy_pkg = "0x0"\n'
    ws = WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, "hello.move", fragment)

    manifest = ws.manifest_path.read_text()
    assert manifest.endswith(fragment)
    assert manifest.count("[addresses]") == 1


def test_layout(tmp_path: Path) -> None:
    ws = WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, "hello.move")

    assert ws.path.parent == tmp_path
    assert ws.path.name.startswith("move-web-compiler_")
    assert ws.source_path == ws.path / "sources" / "hello.move"
    assert ws.source_path.read_text() == HELLO_SOURCE
    assert ws.manifest_path == ws.path / "Move.toml"
    # bytecode/ only appears after extraction
    assert not ws.bytecode_dir.exists()


def test_creates_missing_root(tmp_path: Path) -> None:
    root = tmp_path / "a" / "b"
    ws = WorkspaceBuilder(root).create(HELLO_SOURCE)
    assert ws.path.parent == root
    assert ws.source_path.name == "main.move"


@pytest.mark.parametrize("name", ["../escape.move", "a/b.move", "", ".hidden", "x\0y"])
def test_unsafe_file_name_rejected(tmp_path: Path, name: str) -> None:
    with pytest.raises(WorkspaceError):
        WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, name)
    assert list(tmp_path.iterdir()) == []


def test_concurrent_creates_get_distinct_paths(tmp_path: Path) -> None:
    builder = WorkspaceBuilder(tmp_path)
    with ThreadPoolExecutor(max_workers=8) as pool:
        workspaces = list(pool.map(lambda i: builder.create(f"// {i}\n", "m.move"), range(32)))

    paths = {ws.path for ws in workspaces}
    assert len(paths) == 32
    for i, ws in enumerate(workspaces):
        assert ws.source_path.read_text() == f"// {i}\n"


def test_id_collision_retries(tmp_path: Path) -> None:
    ids = iter(["fixed", "fixed", "fresh"])
    builder = WorkspaceBuilder(tmp_path, id_factory=lambda *, prefix: f"{prefix}_{next(ids)}")

    first = builder.create(HELLO_SOURCE)
    second = builder.create(HELLO_SOURCE)

    assert first.path.name == "move-web-compiler_fixed"
    assert second.path.name == "move-web-compiler_fresh"


def test_allocation_gives_up_after_repeated_collisions(tmp_path: Path) -> None:
    (tmp_path / "ws_same").mkdir()
    builder = WorkspaceBuilder(tmp_path, prefix="ws", id_factory=lambda *, prefix: f"{prefix}_same")
    with pytest.raises(WorkspaceError, match="unique workspace"):
        builder.create(HELLO_SOURCE)


def test_unwritable_root_raises_workspace_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(WorkspaceError):
        WorkspaceBuilder(blocker / "root").create(HELLO_SOURCE)


def test_unencodable_source_rolls_back(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceError, match="surrogates"):
        WorkspaceBuilder(tmp_path).create("module examples::hello { \ud800 }", "hello.move")
    assert list(tmp_path.iterdir()) == []


def test_unencodable_address_config_rolls_back(tmp_path: Path) -> None:
    with pytest.raises(WorkspaceError):
        WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, "hello.move", "[addresses]\nx = \"\udc00\"\n")
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("fail_on", [1, 2])
def test_write_failure_removes_partial_workspace(tmp_path: Path, monkeypatch, fail_on: int) -> None:
    writes: list[Path] = []

    def flaky_write(path: Path, content: str) -> None:
        writes.append(path)
        if len(writes) == fail_on:
            raise OSError(28, "No space left on device")
        path.write_text(content)

    monkeypatch.setattr(workspace, "atomic_write_text", flaky_write)

    with pytest.raises(WorkspaceError, match="No space left"):
        WorkspaceBuilder(tmp_path).create(HELLO_SOURCE, "hello.move")
    assert len(writes) == fail_on
    assert list(tmp_path.iterdir()) == []


def test_resolve_address_section_states() -> None:
    assert resolve_address_section(None) == DEFAULT_ADDRESS_SECTION
    assert resolve_address_section("") == ""
    assert resolve_address_section("[addresses]\nx = \"0x1\"\n") == "[addresses]\nx = \"0x1\"\n"


def test_parse_address_pairs_skips_malformed() -> None:
    pairs = parse_address_pairs(["my_pkg=0x0", "bad", "also=bad=value,other=0x2", "9x=0x1", "ok=12"])
    assert pairs == [("my_pkg", "0x0"), ("other", "0x2"), ("ok", "12")]


def test_parse_address_pair_raises_manifest_error() -> None:
    with pytest.raises(ManifestError, match="Invalid address value"):
        parse_address_pair("name=not-hex")


def test_render_address_section() -> None:
    text = render_address_section([("my_pkg", "0x0"), ("sui", "0x2")])
    assert tomllib.loads(text) == {"addresses": {"my_pkg": "0x0", "sui": "0x2"}}
