"""Artifact extraction: name, size, encode and persist compiled modules.

The toolchain enumerates every compiled unit, dependencies included, and
separately hands out the base64 payloads it would publish. The two lists are
not aligned by construction, so naming works positionally in two passes:

1. Units accepted by the classification policy contribute their declared name
   and a structural size estimate, in enumeration order.
2. Each encoded payload at position `i` takes the i-th real name if there is
   one, otherwise a `Module_<i+1>` placeholder (never equal to a real name)
   with a fixed placeholder size.

Every payload is returned, whatever its classification. Names and sizes only
cover classified modules plus placeholders, so their count can differ from the
payload count. Size estimates are best-effort and may end up attached to a
different module than the payload at the same position when real names are
missing.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from move_web_compiler.bytecode import ModuleSummary
from move_web_compiler.constants import (
    BYTECODE_EXTENSION,
    DEFAULT_USER_MODULE_PREFIXES,
    DEFAULT_USER_MODULE_SUBSTRINGS,
    PLACEHOLDER_MODULE_SIZE,
    PLACEHOLDER_NAME_PREFIX,
    SIZE_WEIGHT_FUNCTION_DEF,
    SIZE_WEIGHT_IDENTIFIER,
    SIZE_WEIGHT_SIGNATURE,
    SIZE_WEIGHT_STRUCT_DEF,
)
from move_web_compiler.errors import DecodeError, WorkspaceError
from move_web_compiler.toolchain import CompiledPackage
from move_web_compiler.utils import atomic_write_bytes, sanitize_file_name

logger = logging.getLogger(__name__)

# Predicate over a unit's qualified name: True for user-authored modules
ModuleClassifier = Callable[[str], bool]


@dataclass(frozen=True)
class NamePatternClassifier:
    """Accepts qualified names starting with any prefix or containing any substring."""

    prefixes: tuple[str, ...] = DEFAULT_USER_MODULE_PREFIXES
    substrings: tuple[str, ...] = DEFAULT_USER_MODULE_SUBSTRINGS

    def __call__(self, qualified_name: str) -> bool:
        return any(qualified_name.startswith(p) for p in self.prefixes) or any(
            s in qualified_name for s in self.substrings
        )


def estimate_module_size(module: ModuleSummary) -> int:
    """
    Approximate a module's size from its declaration counts.

    This is a weighted sum, not the serialized length; identical counts always
    give the same estimate.
    """
    return (
        module.function_defs * SIZE_WEIGHT_FUNCTION_DEF
        + module.struct_defs * SIZE_WEIGHT_STRUCT_DEF
        + module.signatures * SIZE_WEIGHT_SIGNATURE
        + module.identifiers * SIZE_WEIGHT_IDENTIFIER
    )


def _claim(candidate: str, taken: set[str]) -> str:
    name = candidate
    n = 2
    while name in taken:
        name = f"{candidate}_{n}"
        n += 1
    taken.add(name)
    return name


@dataclass(frozen=True)
class ModuleRecord:
    name: str
    size_estimate: int
    encoded_bytes: str


@dataclass(frozen=True)
class Extraction:
    encoded_modules: tuple[str, ...]
    module_names: tuple[str, ...]
    module_sizes: tuple[int, ...]
    # One record per encoded module, carrying the name it was persisted under
    records: tuple[ModuleRecord, ...]
    persisted: tuple[Path, ...]
    elapsed_ms: int
    # Reserved for toolchain diagnostics; nothing populates it yet
    warnings: tuple[str, ...] = ()


class ArtifactExtractor:
    def __init__(
        self,
        classifier: ModuleClassifier | None = None,
        *,
        include_unpublished: bool = True,
    ) -> None:
        self.classifier = classifier or NamePatternClassifier()
        self.include_unpublished = include_unpublished

    def extract(self, package: CompiledPackage, bytecode_dir: Path) -> Extraction:
        """
        Name, size and encode all modules of `package` and write each one to
        `<bytecode_dir>/<name>.mv`.

        Raises:
            WorkspaceError: If the bytecode directory cannot be created.
        """
        start = time.monotonic()
        try:
            bytecode_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise WorkspaceError(f"Cannot create bytecode directory {bytecode_dir}: {e}") from e

        taken: set[str] = set()
        names: list[str] = []
        sizes: list[int] = []
        all_units: list[str] = []

        # Pass 1: real names for user modules
        for unit in package.all_compiled_units():
            all_units.append(unit.qualified_name)
            if self.classifier(unit.qualified_name):
                logger.info(f"Found user module: {unit.qualified_name}")
                names.append(_claim(unit.name, taken))
                sizes.append(estimate_module_size(unit.module))
        logger.debug(f"All modules: {all_units}")
        real_count = len(names)

        encoded = list(package.get_package_base64(self.include_unpublished))
        logger.info(f"Toolchain returned {len(encoded)} encoded module(s)")

        # Pass 2: placeholders for positions without a real name
        records: list[ModuleRecord] = []
        persisted: list[Path] = []
        for idx, payload in enumerate(encoded):
            if idx < real_count:
                name, size = names[idx], sizes[idx]
            else:
                name = _claim(f"{PLACEHOLDER_NAME_PREFIX}{idx + 1}", taken)
                size = PLACEHOLDER_MODULE_SIZE
                names.append(name)
                sizes.append(size)
            records.append(ModuleRecord(name=name, size_estimate=size, encoded_bytes=payload))
            path = self._persist(bytecode_dir, name, payload)
            if path is not None:
                persisted.append(path)

        if real_count == 0:
            logger.warning("No user modules matched the classification policy")
        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(f"Extracted {len(encoded)} module(s) into {bytecode_dir} in {elapsed}ms")
        return Extraction(
            encoded_modules=tuple(encoded),
            module_names=tuple(names),
            module_sizes=tuple(sizes),
            records=tuple(records),
            persisted=tuple(persisted),
            elapsed_ms=elapsed,
        )

    def _persist(self, bytecode_dir: Path, name: str, payload: str) -> Path | None:
        """Write one decoded module; failures are logged and leave the payload in the result."""
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(DecodeError(name, str(e)).message)
            return None

        file_name = sanitize_file_name(f"{name}{BYTECODE_EXTENSION}")
        if file_name is None:
            logger.warning(f"Not persisting module with unsafe name {name!r}")
            return None
        path = bytecode_dir / file_name
        try:
            atomic_write_bytes(path, raw)
        except OSError as e:
            logger.warning(f"Failed to save bytecode for {name}: {e}")
            return None
        logger.info(f"Saved bytecode to {path}")
        return path
