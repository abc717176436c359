"""In-memory backlog of relative paths, mainly for tests and development."""

from __future__ import annotations

import threading
from typing import Any, Iterable, Iterator

from overbatch.common import Context, Logger

_PROGRESS_EVERY = 10000


class MemoryBacklogManager:
    """Stores relative paths in memory; reads see a snapshot taken at start."""

    def __init__(self, logger: Logger | None = None) -> None:
        self._lock = threading.RLock()
        self._entries: list[str] = []
        self.logger = logger

    def _log(self, level: str, msg: str, *fields: Any) -> None:
        logger = self.logger
        if logger is not None:
            getattr(logger, level)(msg, *fields)

    def start_writing(self, rel_paths: Iterable[str], ctx: Context | None = None) -> None:
        """Replace the stored entries with the paths from ``rel_paths``."""
        self._log("info", "Starting to write memory backlog")
        with self._lock:
            self._entries.clear()

        count = 0
        iterator = iter(rel_paths)
        while True:
            if ctx is not None and ctx.error() is not None:
                self._log("warn", "Memory backlog writing cancelled", "entries_written", count)
                ctx.check()
            try:
                rel_path = next(iterator)
            except StopIteration:
                break
            with self._lock:
                self._entries.append(rel_path)
            count += 1
            if count % _PROGRESS_EVERY == 0:
                self._log("debug", "Memory backlog writing progress", "entries_written", count)

        self._log("info", "Memory backlog writing completed", "entries_written", count)

    def start_reading(self, ctx: Context | None = None) -> Iterator[str]:
        """Return an iterator over a snapshot of the current entries.

        Iteration stops early once ``ctx`` is cancelled.
        """
        self._log("info", "Starting to read memory backlog")
        with self._lock:
            snapshot = list(self._entries)
        if not snapshot:
            self._log("info", "Memory backlog is empty")
        return self._read(snapshot, ctx)

    def _read(self, snapshot: list[str], ctx: Context | None) -> Iterator[str]:
        count = 0
        for rel_path in snapshot:
            if ctx is not None and ctx.error() is not None:
                self._log("warn", "Memory backlog reading cancelled", "entries_read", count)
                return
            yield rel_path
            count += 1
            if count % _PROGRESS_EVERY == 0:
                self._log("debug", "Memory backlog reading progress", "entries_read", count)
        self._log("info", "Memory backlog reading completed", "entries_read", count)

    def count_rel_paths(self, ctx: Context | None = None) -> int:
        """Return the number of stored entries."""
        self._log("info", "Starting to count memory backlog entries")
        if ctx is not None:
            ctx.check()
        with self._lock:
            count = len(self._entries)
        self._log("info", "Memory backlog counting completed", "total_entries", count)
        return count

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> list[str]:
        """Return a copy of the stored entries."""
        with self._lock:
            return list(self._entries)

    def replace(self, entries: Iterable[str]) -> None:
        """Replace all stored entries with ``entries``."""
        with self._lock:
            self._entries = list(entries)

    def __str__(self) -> str:
        with self._lock:
            return f"MemoryBacklogManager{{entries: {len(self._entries)}}}"