from __future__ import annotations

import json
import logging
import os
import secrets
import socket
import threading
import time
from dataclasses import dataclass
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _now_unix() -> int:
    return int(time.time())


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log format. Unknown level names fall back to INFO."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=LOG_FORMAT)


def default_run_id(*, prefix: str) -> str:
    """
    Generate a unique id using a microsecond timestamp, PID, and a random suffix.
    The random suffix prevents collisions between requests that share a clock tick.
    """
    now = time.time()
    ts = time.strftime("%Y%m%d_%H%M%S", time.gmtime(now))
    micros = int((now % 1) * 1_000_000)
    pid = os.getpid()
    rand = secrets.token_hex(4)  # 8 chars
    return f"{prefix}_{ts}{micros:06d}_pid{pid}_{rand}"


@dataclass(frozen=True)
class EventLogPaths:
    root: Path
    events: Path


class EventLog:
    """
    Append-only service event stream:
    - events.jsonl: JSONL stream of compile/command outcome events
    - .hostname: identity file for the container/host that created the logs
    """

    def __init__(self, *, base_dir: Path) -> None:
        base_dir.mkdir(parents=True, exist_ok=True)
        self.paths = EventLogPaths(root=base_dir, events=base_dir / "events.jsonl")
        self._lock = threading.Lock()

        # Identity file helps tell apart hosts sharing a log volume
        try:
            (base_dir / ".hostname").write_text(socket.gethostname(), encoding="utf-8")
        except OSError:
            pass

    def event(self, name: str, **fields: object) -> None:
        """
        Log an event with consistent schema.

        All events include:
        - `t`: Unix timestamp (seconds)
        - `event`: Event name (string)

        Additional fields are included as provided.
        """
        row = {"t": _now_unix(), "event": name, **fields}
        line = json.dumps(row, sort_keys=True, default=str) + "\n"
        with self._lock, self.paths.events.open("a", encoding="utf-8") as f:
            f.write(line)
