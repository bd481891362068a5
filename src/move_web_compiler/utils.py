"""Shared utility functions for validation, parsing and file handling."""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path
from typing import Any

from move_web_compiler.errors import BinaryNotExecutableError, BinaryNotFoundError

logger = logging.getLogger(__name__)


def safe_parse_int(
    val: Any, default: int, min_val: int = -sys.maxsize, max_val: int = sys.maxsize, name: str = "value"
) -> int:
    """
    Parse an integer setting, falling back to `default` and clamping to bounds.
    """
    if val is None:
        return default
    try:
        i = int(val)
    except (ValueError, TypeError):
        logger.warning(f"Invalid {name}={val!r}, using default {default}")
        return default

    if i < min_val or i > max_val:
        logger.warning(f"{name}={i} out of range [{min_val}, {max_val}], clamping")
        return max(min_val, min(max_val, i))
    return i


def safe_bool(val: Any, default: bool) -> bool:
    """
    Interpret env-style flags such as "1", "yes" or "on" as booleans.
    """
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    if isinstance(val, str):
        return val.strip().lower() in ("true", "1", "yes")
    return bool(val)


def split_csv(val: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    """Split a comma-separated setting, dropping blanks. `None` yields the default."""
    if val is None:
        return default
    return tuple(part.strip() for part in val.split(",") if part.strip())


def sanitize_file_name(name: str) -> str | None:
    """
    Validate a caller-supplied file name before it is joined onto a directory.

    Returns the name unchanged, or None if it could escape the directory or
    would not be a plain file name.
    """
    if not isinstance(name, str):
        return None
    if not name or not name.strip():
        return None
    # Reject names with path separators, parent refs, or null bytes
    if "/" in name or "\\" in name or ".." in name or "\0" in name:
        return None
    if name.startswith("."):
        return None
    if any(ord(c) < 32 for c in name):
        return None
    if len(name) > 255:
        return None
    return name


def short_address(address: str) -> str:
    """Render a hex address without leading zeros (`0x000...02` -> `0x2`)."""
    digits = address[2:] if address.lower().startswith("0x") else address
    return "0x" + (digits.lstrip("0") or "0")


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """
    Write bytes to a file atomically using a temporary file and rename.

    Args:
        path: Destination path. The parent directory must already exist.
        content: Bytes to write.
    """
    tmp = path.with_suffix(path.suffix + f".tmp.{os.getpid()}")
    try:
        tmp.write_bytes(content)
        tmp.replace(path)
    except OSError as e:
        logger.error(f"Atomic write to {path} failed: {e}")
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass
        raise


def atomic_write_text(path: Path, content: str) -> None:
    """
    Write UTF-8 text to a file atomically.

    Args:
        path: Destination path. The parent directory must already exist.
        content: Text to store, encoded as UTF-8.
    """
    atomic_write_bytes(path, content.encode("utf-8"))


def validate_binary(path: Path, *, binary_name: str = "binary") -> Path:
    """
    Check that the Sui CLI (or another tool) is a runnable regular file.

    Args:
        path: Location of the executable.
        binary_name: Label used in raised error messages.

    Returns:
        `path`, unchanged.

    Raises:
        BinaryNotFoundError: When nothing usable sits at `path`.
        BinaryNotExecutableError: When the file lacks the execute bit.
    """
    if not path.exists():
        raise BinaryNotFoundError(f"{binary_name} not found: {path}")
    st = path.stat()
    if not stat.S_ISREG(st.st_mode):
        raise BinaryNotFoundError(f"{binary_name} is not a regular file: {path}")
    if not os.access(path, os.X_OK):
        raise BinaryNotExecutableError(f"{binary_name} is not executable: {path}")
    return path
