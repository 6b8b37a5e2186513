"""Filesystem NDJSON event sink with concurrency-safe appends.

Events are appended as one JSON line per event to two destinations:

- ``logs/events.ndjson``  -- global event log
- ``logs/runs/<run_id>.ndjson``  -- per-run log

Writes use ``json.dumps(sort_keys=True)`` for deterministic output.  Each
append holds an exclusive ``fcntl.flock`` on the target file; reads hold a
shared lock.  On platforms without ``fcntl`` locking is skipped.
"""

from __future__ import annotations

import json
import os
import re
import sys
from pathlib import Path
from typing import Any

from gridcalc.logging.events import GridcalcEvent

try:
    import fcntl

    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False
    print(
        "[gridcalc] fcntl not available; log file locking disabled",
        file=sys.stderr,
    )

# Run ids become file names; reject anything that could escape the logs dir
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024

_MAX_READ_LIMIT = 2000


class EventSink:
    """Append-only NDJSON log writer with file locking."""

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self._fsync = fsync
        self._tail_bytes = tail_bytes if tail_bytes is not None else _DEFAULT_TAIL_BYTES

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        (self.logs_dir / "runs").mkdir(exist_ok=True)

    @property
    def global_path(self) -> Path:
        return self.logs_dir / "events.ndjson"

    def run_path(self, run_id: str) -> Path | None:
        if not _SAFE_ID_RE.match(run_id):
            return None
        return self.logs_dir / "runs" / f"{run_id}.ndjson"

    def write(self, event: GridcalcEvent, *, run_id: str | None = None) -> None:
        """Append *event* to the global log and, given a run id, the run's log."""
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"

        self._append(self.global_path, line)

        if run_id:
            path = self.run_path(run_id)
            if path is not None:
                self._append(path, line)

    # ------------------------------------------------------------------
    # Query helpers (used by the CLI)
    # ------------------------------------------------------------------

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        run_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Read events from the global log, most-recent-first, with filters.

        Only the tail of the file is read, bounding memory on large logs.
        """
        limit = min(limit, _MAX_READ_LIMIT)
        events = self._read_ndjson(self.global_path)

        if level:
            events = [e for e in events if e.get("level") == level]
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]
        if run_id:
            events = [
                e for e in events
                if e.get("context", {}).get("run_id") == run_id
            ]

        events.reverse()
        return events[:limit]

    def read_run_log(self, run_id: str) -> list[dict[str, Any]]:
        """Read all events for one evaluation run, oldest first."""
        path = self.run_path(run_id)
        if path is None:
            return []
        return self._read_ndjson(path)

    def list_runs(self) -> list[str]:
        """Run ids that have a per-run log, newest first."""
        runs_dir = self.logs_dir / "runs"
        if not runs_dir.exists():
            return []
        return sorted((p.stem for p in runs_dir.glob("*.ndjson")), reverse=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append(self, path: Path, line: str) -> None:
        """Append a single line to *path* under exclusive file lock."""
        path.parent.mkdir(parents=True, exist_ok=True)

        if _HAS_FCNTL:
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_APPEND)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                os.write(fd, line.encode("utf-8"))
                if self._fsync:
                    os.fsync(fd)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)
        else:
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
                if self._fsync:
                    f.flush()
                    os.fsync(f.fileno())

    def _read_ndjson(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []

        events: list[dict[str, Any]] = []
        for line in self._read_tail(path).splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events

    def _read_tail(self, path: Path) -> str:
        """Read up to the last ``self._tail_bytes`` of a file under shared lock."""
        if _HAS_FCNTL:
            fd = os.open(str(path), os.O_RDONLY)
            try:
                fcntl.flock(fd, fcntl.LOCK_SH)
                size = os.fstat(fd).st_size
                if size > self._tail_bytes:
                    os.lseek(fd, size - self._tail_bytes, os.SEEK_SET)
                data = os.read(fd, min(size, self._tail_bytes))
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)
        else:
            with open(path, "rb") as f:
                size = f.seek(0, os.SEEK_END)
                f.seek(max(0, size - self._tail_bytes))
                data = f.read()

        if size > self._tail_bytes:
            # Drop the first (likely partial) line
            idx = data.find(b"\n")
            if idx >= 0:
                data = data[idx + 1:]
        return data.decode("utf-8", errors="replace")
