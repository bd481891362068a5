"""
Runtime configuration.

Settings are resolved once, at start-up, from the process environment, an
optional `.env` file and the defaults in `constants`. Components receive the
values they need through their constructors; nothing reads the environment at
request time.

Environment variables (all prefixed with `MWC_`):
- MWC_WORKSPACE_ROOT: base directory for per-request workspaces (default: system temp dir)
- MWC_SUI_BIN: Sui CLI executable used for builds and proxied commands
- MWC_HOST / MWC_PORT: HTTP bind address
- MWC_STATIC_DIR: directory served at `/`
- MWC_WORKER_THREADS: size of the pool running builds and CLI commands
- MWC_INCLUDE_UNPUBLISHED: include unpublished dependency modules in the encoded output
- MWC_USER_MODULE_PREFIXES / MWC_USER_MODULE_SUBSTRINGS: comma-separated user module patterns
- MWC_EVENT_LOG_DIR: enable the JSONL event log in this directory
- MWC_LOG_LEVEL: logging level name
"""

from __future__ import annotations

import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from move_web_compiler.constants import (
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    DEFAULT_STATIC_DIR,
    DEFAULT_SUI_BIN,
    DEFAULT_USER_MODULE_PREFIXES,
    DEFAULT_USER_MODULE_SUBSTRINGS,
    DEFAULT_WORKER_THREADS,
    ENV_PREFIX,
)
from move_web_compiler.utils import safe_bool, safe_parse_int, split_csv


def load_dotenv(path: Path) -> dict[str, str]:
    """
    Minimal .env loader:
    - supports KEY=VALUE
    - strips surrounding quotes
    - ignores blank lines and `#` comments
    - does not expand variables
    """
    out: dict[str, str] = {}
    if not path.is_file():
        return out

    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            continue
        if len(v) >= 2 and ((v[0] == v[-1] == '"') or (v[0] == v[-1] == "'")):
            v = v[1:-1]
        out[k] = v
    return out


@dataclass(frozen=True)
class Settings:
    workspace_root: Path
    sui_bin: str = DEFAULT_SUI_BIN
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    static_dir: Path = Path(DEFAULT_STATIC_DIR)
    worker_threads: int = DEFAULT_WORKER_THREADS
    include_unpublished: bool = True
    user_module_prefixes: tuple[str, ...] = DEFAULT_USER_MODULE_PREFIXES
    user_module_substrings: tuple[str, ...] = DEFAULT_USER_MODULE_SUBSTRINGS
    event_log_dir: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str], *, dotenv_path: Path | None = None) -> Settings:
        """Resolve settings; process environment wins over the `.env` file."""
        values: dict[str, str] = {}
        if dotenv_path is not None:
            values.update(load_dotenv(dotenv_path))
        values.update(environ)

        def get(key: str) -> str | None:
            raw = values.get(ENV_PREFIX + key)
            if raw is None or not raw.strip():
                return None
            return raw.strip()

        workspace_root = get("WORKSPACE_ROOT")
        event_log_dir = get("EVENT_LOG_DIR")
        return cls(
            workspace_root=Path(workspace_root) if workspace_root else Path(tempfile.gettempdir()),
            sui_bin=get("SUI_BIN") or DEFAULT_SUI_BIN,
            host=get("HOST") or DEFAULT_HOST,
            port=safe_parse_int(get("PORT"), DEFAULT_PORT, min_val=1, max_val=65535, name="MWC_PORT"),
            static_dir=Path(get("STATIC_DIR") or DEFAULT_STATIC_DIR),
            worker_threads=safe_parse_int(
                get("WORKER_THREADS"), DEFAULT_WORKER_THREADS, min_val=1, max_val=256, name="MWC_WORKER_THREADS"
            ),
            include_unpublished=safe_bool(get("INCLUDE_UNPUBLISHED"), True),
            user_module_prefixes=split_csv(get("USER_MODULE_PREFIXES"), DEFAULT_USER_MODULE_PREFIXES),
            user_module_substrings=split_csv(get("USER_MODULE_SUBSTRINGS"), DEFAULT_USER_MODULE_SUBSTRINGS),
            event_log_dir=Path(event_log_dir) if event_log_dir else None,
            log_level=(get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
