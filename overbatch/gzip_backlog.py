"""Backlog of relative paths stored as a gzip-compressed text file, one path per line."""

from __future__ import annotations

import gzip
import io
import os
from typing import IO, Any, Iterable, Iterator

from overbatch.common import Context, Logger

_PROGRESS_EVERY = 10000
_GZIP_MAGIC = b"\x1f\x8b"
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class BacklogError(Exception):
    """A backlog file could not be created, opened or read."""


class GzipBacklogManager:
    """Writes, reads and counts relative paths in a gzip-compressed backlog file."""

    def __init__(self, file_path: str | os.PathLike[str], logger: Logger | None = None) -> None:
        self.file_path = os.fspath(file_path)
        self.logger = logger

    def _log(self, level: str, msg: str, *fields: Any) -> None:
        logger = self.logger
        if logger is not None:
            getattr(logger, level)(msg, *fields)

    def start_writing(self, rel_paths: Iterable[str], ctx: Context | None = None) -> None:
        """Write every path from ``rel_paths`` to the backlog file, replacing it.

        Raises the context's error if ``ctx`` is cancelled before the input ends.
        """
        self._log("info", "Starting to write backlog file", "file_path", self.file_path)

        directory = os.path.dirname(self.file_path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            self._log("error", "Failed to create backlog directory", "dir", directory, "error", exc)
            raise BacklogError(f"failed to create backlog directory {directory}: {exc}") from exc

        try:
            raw = open(self.file_path, "wb")
        except OSError as exc:
            self._log("error", "Failed to create backlog file", "file_path", self.file_path, "error", exc)
            raise BacklogError(f"failed to create backlog file {self.file_path}: {exc}") from exc

        count = 0
        with raw, gzip.GzipFile(fileobj=raw, mode="wb") as compressed, io.TextIOWrapper(
            compressed, encoding=_ENCODING, errors=_ERRORS, newline="\n"
        ) as writer:
            iterator = iter(rel_paths)
            while True:
                if ctx is not None and ctx.error() is not None:
                    self._log("warn", "Backlog writing cancelled", "entries_written", count)
                    ctx.check()
                try:
                    rel_path = next(iterator)
                except StopIteration:
                    break
                try:
                    writer.write(rel_path + "\n")
                except (OSError, UnicodeError) as exc:
                    self._log("error", "Failed to write backlog entry", "rel_path", rel_path, "error", exc)
                    raise BacklogError(f"failed to write backlog entry {rel_path}: {exc}") from exc
                count += 1
                if count % _PROGRESS_EVERY == 0:
                    self._log("debug", "Backlog writing progress", "entries_written", count)

        self._log(
            "info", "Backlog writing completed", "entries_written", count, "file_path", self.file_path
        )

    def _open(self) -> IO[bytes]:
        """Open the backlog file and check that it starts with a gzip header."""
        if not os.path.exists(self.file_path):
            self._log("error", "Backlog file does not exist", "file_path", self.file_path)
            raise BacklogError(f"backlog file does not exist: {self.file_path}")
        try:
            raw = open(self.file_path, "rb")
        except OSError as exc:
            self._log("error", "Failed to open backlog file", "file_path", self.file_path, "error", exc)
            raise BacklogError(f"failed to open backlog file {self.file_path}: {exc}") from exc
        try:
            header = raw.read(len(_GZIP_MAGIC))
            raw.seek(0)
        except OSError as exc:
            raw.close()
            self._log("error", "Failed to create gzip reader", "file_path", self.file_path, "error", exc)
            raise BacklogError(f"failed to create gzip reader for {self.file_path}: {exc}") from exc
        if header != _GZIP_MAGIC:
            raw.close()
            reason = "unexpected EOF" if len(header) < len(_GZIP_MAGIC) else "invalid header"
            self._log("error", "Failed to create gzip reader", "file_path", self.file_path, "error", reason)
            raise BacklogError(f"failed to create gzip reader for {self.file_path}: {reason}")
        return raw

    @staticmethod
    def _lines(raw: IO[bytes]) -> Iterator[str]:
        """Yield stripped, non-empty lines from the compressed stream."""
        with gzip.GzipFile(fileobj=raw, mode="rb") as compressed, io.TextIOWrapper(
            compressed, encoding=_ENCODING, errors=_ERRORS, newline="\n"
        ) as reader:
            for line in reader:
                rel_path = line.strip()
                if rel_path:
                    yield rel_path

    def start_reading(self, ctx: Context | None = None) -> Iterator[str]:
        """Return an iterator over the paths in the backlog file.

        The file is checked and opened at once; iteration stops early once
        ``ctx`` is cancelled. A read error after opening ends iteration and is logged.
        """
        self._log("info", "Starting to read backlog file", "file_path", self.file_path)
        raw = self._open()
        return self._read(raw, ctx)

    def _read(self, raw: IO[bytes], ctx: Context | None) -> Iterator[str]:
        count = 0
        with raw:
            try:
                for rel_path in self._lines(raw):
                    if ctx is not None and ctx.error() is not None:
                        self._log("warn", "Backlog reading cancelled", "entries_read", count)
                        return
                    yield rel_path
                    count += 1
                    if count % _PROGRESS_EVERY == 0:
                        self._log("debug", "Backlog reading progress", "entries_read", count)
            except (OSError, EOFError) as exc:
                self._log("error", "Failed to read backlog file", "error", exc, "entries_read", count)
                return
        self._log("info", "Backlog reading completed", "entries_read", count, "file_path", self.file_path)

    def count_rel_paths(self, ctx: Context | None = None) -> int:
        """Return the number of non-empty paths in the backlog file."""
        self._log("info", "Starting to count backlog entries", "file_path", self.file_path)
        raw = self._open()
        count = 0
        with raw:
            try:
                for _ in self._lines(raw):
                    if ctx is not None and ctx.error() is not None:
                        self._log("warn", "Backlog counting cancelled", "entries_counted", count)
                        ctx.check()
                    count += 1
                    if count % _PROGRESS_EVERY == 0:
                        self._log("debug", "Backlog counting progress", "entries_counted", count)
            except (OSError, EOFError) as exc:
                self._log(
                    "error",
                    "Failed to scan backlog file during counting",
                    "error",
                    exc,
                    "entries_counted",
                    count,
                )
                raise BacklogError(f"failed to scan backlog file: {exc}") from exc

        self._log("info", "Backlog counting completed", "total_entries", count, "file_path", self.file_path)
        return count