"""Per-request build workspaces.

A workspace is a freshly allocated directory under the configured root:

    <root>/move-web-compiler_<timestamp>_pid<pid>_<rand>/
        Move.toml
        sources/<file_name>

The `bytecode/` directory is created later by the artifact extractor, so a
workspace that holds one has been through a successful build. Workspaces are
never reused or deleted by this package.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from move_web_compiler.constants import (
    BYTECODE_DIR_NAME,
    DEFAULT_ADDRESS_SECTION,
    DEFAULT_SOURCE_FILE_NAME,
    MANIFEST_BASE_TEMPLATE,
    MANIFEST_FILE_NAME,
    SOURCES_DIR_NAME,
    WORKSPACE_ALLOCATION_ATTEMPTS,
    WORKSPACE_PREFIX,
)
from move_web_compiler.errors import ManifestError, WorkspaceError
from move_web_compiler.logging import default_run_id
from move_web_compiler.utils import atomic_write_text, sanitize_file_name

logger = logging.getLogger(__name__)

_ADDRESS_NAME_RE = re.compile(r"^[A-Za-z_]\w*$")
_NUMERIC_ADDRESS_RE = re.compile(r"^(0x[0-9a-fA-F]{1,64}|[0-9]+)$")


@dataclass(frozen=True)
class Workspace:
    path: Path
    manifest_path: Path
    source_path: Path

    @property
    def bytecode_dir(self) -> Path:
        return self.path / BYTECODE_DIR_NAME


def resolve_address_section(address_config: str | None) -> str:
    """
    Pick the manifest address section for a caller's address configuration.

    - None: the default section
    - blank string: no address section at all
    - anything else: the caller's text, unchanged
    """
    if address_config is None:
        return DEFAULT_ADDRESS_SECTION
    if not address_config.strip():
        return ""
    return address_config


def render_manifest(address_config: str | None) -> str:
    return MANIFEST_BASE_TEMPLATE + resolve_address_section(address_config)


def parse_address_pair(item: str) -> tuple[str, str]:
    """
    Parse one `name=address` binding.

    Raises:
        ManifestError: If the binding is not a Move identifier bound to a
            hex or decimal address.
    """
    parts = item.split("=")
    if len(parts) != 2:
        raise ManifestError(f"Expected NAME=ADDRESS, got {item.strip()!r}", data={"binding": item})
    name, addr = parts[0].strip(), parts[1].strip()
    if not _ADDRESS_NAME_RE.match(name):
        raise ManifestError(f"Invalid address name {name!r}", data={"binding": item})
    if not _NUMERIC_ADDRESS_RE.match(addr):
        raise ManifestError(f"Invalid address value {addr!r}", data={"binding": item})
    return name, addr


def parse_address_pairs(pairs: Iterable[str]) -> list[tuple[str, str]]:
    """
    Parse `name=address` pairs (comma-separated values are split too).

    Malformed pairs are skipped with a warning rather than rejected.
    """
    out: list[tuple[str, str]] = []
    for raw in pairs:
        for item in raw.split(","):
            if not item.strip():
                continue
            try:
                out.append(parse_address_pair(item))
            except ManifestError as e:
                logger.warning(f"Ignoring address binding: {e.message}")
    return out


def render_address_section(bindings: Iterable[tuple[str, str]]) -> str:
    lines = ["[addresses]"]
    lines.extend(f'{name} = "{addr}"' for name, addr in bindings)
    return "\n".join(lines) + "\n"


class WorkspaceBuilder:
    """Allocates and populates workspaces under a fixed root directory."""

    def __init__(
        self,
        root: Path,
        *,
        prefix: str = WORKSPACE_PREFIX,
        id_factory: Callable[..., str] = default_run_id,
    ) -> None:
        self.root = root
        self.prefix = prefix
        self.id_factory = id_factory

    def create(
        self,
        source_code: str,
        file_name: str = DEFAULT_SOURCE_FILE_NAME,
        address_config: str | None = None,
    ) -> Workspace:
        """
        Create a workspace holding `source_code` as `sources/<file_name>`.

        Raises:
            WorkspaceError: If the file name is unsafe or any directory/file
                cannot be created. A partially written workspace is removed.
        """
        safe_name = sanitize_file_name(file_name)
        if safe_name is None:
            raise WorkspaceError(f"Invalid source file name: {file_name!r}", data={"file_name": file_name})

        path = self._allocate()
        try:
            sources_dir = path / SOURCES_DIR_NAME
            sources_dir.mkdir()
            source_path = sources_dir / safe_name
            atomic_write_text(source_path, source_code)
            # Manifest last: a directory without one is never a buildable package
            manifest_path = path / MANIFEST_FILE_NAME
            atomic_write_text(manifest_path, render_manifest(address_config))
        except (OSError, UnicodeError) as e:
            # UnicodeError: lone surrogates in caller text cannot be stored as UTF-8
            self._discard(path)
            raise WorkspaceError(f"Failed to populate workspace {path}: {e}", data={"path": str(path)}) from e

        if address_config is None:
            logger.info(f"Created workspace {path} (default addresses)")
        elif not address_config.strip():
            logger.info(f"Created workspace {path} (no address section)")
        else:
            logger.info(f"Created workspace {path} (caller addresses)")
        return Workspace(path=path, manifest_path=manifest_path, source_path=source_path)

    def _allocate(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"Cannot create workspace root {self.root}: {e}", data={"root": str(self.root)}) from e

        for _ in range(WORKSPACE_ALLOCATION_ATTEMPTS):
            candidate = self.root / self.id_factory(prefix=self.prefix)
            try:
                candidate.mkdir()
            except FileExistsError:
                logger.warning(f"Workspace {candidate} already exists, retrying with a new id")
                continue
            except OSError as e:
                raise WorkspaceError(f"Cannot create workspace {candidate}: {e}", data={"path": str(candidate)}) from e
            return candidate

        raise WorkspaceError(
            f"Could not allocate a unique workspace under {self.root} after {WORKSPACE_ALLOCATION_ATTEMPTS} attempts",
            data={"root": str(self.root)},
        )

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning(f"Could not remove partial workspace {path}: {e}")
