"""Filesystem NDJSON event sink with concurrency-safe appends.

Events are appended as one JSON line per event.  Two log destinations:

- ``logs/events.ndjson``  -- global event log
- ``logs/projects/<project_id>.ndjson``  -- per-project log

Writes use ``json.dumps(sort_keys=True)`` for deterministic output.

Concurrency safety:

- Each append acquires an exclusive ``fcntl.flock`` on the target file.
- Reads acquire a shared lock.
- On platforms without ``fcntl`` (Windows), locking is skipped.
"""

from __future__ import annotations

import json
import os
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from trainbook.logging.events import StoreEvent

try:
    import fcntl

    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False

# Path-component validation: reject anything that could escape the logs dir
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

# Default tail-read size (2 MB)
_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024

# Default number of newest lines to preserve during global log purge
_DEFAULT_PRESERVE_LINES = 500


class EventSink:
    """Append-only NDJSON log writer with file locking."""

    def __init__(self, workspace_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(workspace_dir) / "logs"
        self._fsync = fsync
        self._tail_bytes = tail_bytes if tail_bytes is not None else _DEFAULT_TAIL_BYTES

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        (self.logs_dir / "projects").mkdir(exist_ok=True)

    def write(self, event: StoreEvent, *, project_id: str | None = None) -> None:
        """Append *event* to the global log and optionally the project log."""
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"

        self._append(self.logs_dir / "events.ndjson", line)

        if project_id and _SAFE_ID_RE.match(project_id):
            self._append(self.logs_dir / "projects" / f"{project_id}.ndjson", line)

    # ------------------------------------------------------------------
    # Query helpers (used by CLI)
    # ------------------------------------------------------------------

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        project_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Read events from the global log, most-recent-first, with filters.

        Uses tail-style reading to bound memory usage on large log files.
        """
        limit = min(limit, 2000)

        events = self._read_ndjson(self.logs_dir / "events.ndjson")

        if level:
            events = [e for e in events if e.get("level") == level]
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]
        if project_id:
            events = [
                e for e in events
                if e.get("context", {}).get("project_id") == project_id
            ]

        events.reverse()
        return events[:limit]

    def read_project_log(self, project_id: str) -> list[dict[str, Any]]:
        """Read all events for a specific project."""
        if not _SAFE_ID_RE.match(project_id):
            return []
        return self._read_ndjson(self.logs_dir / "projects" / f"{project_id}.ndjson")

    def purge_old_logs(
        self,
        max_days: int,
        retained_project_ids: set[str],
        *,
        preserve_lines: int = _DEFAULT_PRESERVE_LINES,
    ) -> int:
        """Delete project logs older than *max_days* and trim the global log.

        Logs of projects in *retained_project_ids* are kept regardless of age.
        The global log keeps at least the newest *preserve_lines* lines.

        Returns the number of files deleted.
        """
        deleted = 0
        cutoff = time.time() - (max_days * 86400)

        projects_dir = self.logs_dir / "projects"
        if projects_dir.exists():
            for f in projects_dir.iterdir():
                if not f.is_file() or f.suffix != ".ndjson":
                    continue
                if f.stem in retained_project_ids:
                    continue
                if f.stat().st_mtime < cutoff:
                    f.unlink()
                    deleted += 1

        self._purge_global_log(cutoff, preserve_lines=preserve_lines)
        return deleted

    def _purge_global_log(self, cutoff: float, *, preserve_lines: int) -> None:
        """Rewrite events.ndjson keeping only recent lines."""
        global_path = self.logs_dir / "events.ndjson"
        all_lines = self._read_raw_lines(global_path)
        if not all_lines:
            return

        kept_lines: list[str] = []
        for line in all_lines:
            try:
                evt = json.loads(line)
                ts = datetime.fromisoformat(evt.get("ts", "").replace("Z", "+00:00")).timestamp()
                if ts >= cutoff:
                    kept_lines.append(line)
            except (json.JSONDecodeError, ValueError):
                # Unparseable lines are kept
                kept_lines.append(line)

        if len(kept_lines) == len(all_lines):
            return

        if len(kept_lines) < preserve_lines:
            kept_lines = all_lines[-preserve_lines:]

        tmp = global_path.with_suffix(".ndjson.tmp")
        tmp.write_text("\n".join(kept_lines) + "\n", encoding="utf-8")

        if _HAS_FCNTL:
            fd = os.open(str(global_path), os.O_RDWR | os.O_CREAT)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                os.replace(str(tmp), str(global_path))
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)
        else:
            os.replace(str(tmp), str(global_path))

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
        """Read an NDJSON file with tail-bounded reading."""
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
                file_size = os.fstat(fd).st_size
                if file_size <= self._tail_bytes:
                    data = os.read(fd, file_size)
                else:
                    os.lseek(fd, file_size - self._tail_bytes, os.SEEK_SET)
                    data = os.read(fd, self._tail_bytes)
                    # Drop the first (likely partial) line
                    idx = data.find(b"\n")
                    if idx >= 0:
                        data = data[idx + 1:]
                return data.decode("utf-8", errors="replace")
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)
        with open(path, "rb") as f:
            size = path.stat().st_size
            if size > self._tail_bytes:
                f.seek(size - self._tail_bytes)
                data = f.read()
                idx = data.find(b"\n")
                if idx >= 0:
                    data = data[idx + 1:]
            else:
                data = f.read()
        return data.decode("utf-8", errors="replace")

    def _read_raw_lines(self, path: Path) -> list[str]:
        """Read all non-empty lines from a file (for purge operations)."""
        if not path.exists():
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except OSError:
            return []
        return [ln for ln in text.splitlines() if ln.strip()]
