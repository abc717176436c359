"""File system on a local directory tree: walking with filters and overwriting files."""

from __future__ import annotations

import os
import re
import stat
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import IO, Callable, Iterator, Optional, Tuple

from overbatch.common import Context, Logger, NoOpLogger

_COPY_CHUNK = 32 * 1024
_TEMP_PREFIX = "overbatch-download-"

OverwriteCallback = Callable[["FileInfo", str], Tuple[Optional[str], bool]]


@dataclass(frozen=True)
class FileInfo:
    """Metadata of one file or directory below a file system root."""

    name: str
    size: int
    mode: int
    mod_time: datetime
    is_dir: bool
    rel_path: str
    abs_path: str


@dataclass
class WalkOptions:
    """Filters applied while walking a tree.

    ``include`` and ``exclude`` are glob patterns matched against base names;
    a ``max_depth`` of zero or less means no limit.
    """

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    files_only: bool = False
    max_depth: int = 0
    follow_symlinks: bool = False


class FileSystemError(Exception):
    """A file system operation failed."""


class _BadPattern(ValueError):
    pass


def _read_class_char(pattern: str, i: int) -> tuple[str, int]:
    if i >= len(pattern) or pattern[i] in "-]":
        raise _BadPattern(pattern)
    if pattern[i] == "\\":
        i += 1
        if i >= len(pattern):
            raise _BadPattern(pattern)
    return pattern[i], i + 1


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a shell glob (``*``, ``?``, ``[...]``, ``\\`` escapes) to a regex."""
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "\\":
            if i + 1 >= n:
                raise _BadPattern(pattern)
            out.append(re.escape(pattern[i + 1]))
            i += 2
        elif c == "[":
            i += 1
            negate = i < n and pattern[i] == "^"
            if negate:
                i += 1
            parts: list[str] = []
            seen = 0
            while True:
                if i >= n:
                    raise _BadPattern(pattern)
                if pattern[i] == "]" and seen:
                    i += 1
                    break
                lo, i = _read_class_char(pattern, i)
                hi = lo
                if i < n and pattern[i] == "-":
                    hi, i = _read_class_char(pattern, i + 1)
                seen += 1
                if lo <= hi:
                    parts.append(re.escape(lo) if lo == hi else f"{re.escape(lo)}-{re.escape(hi)}")
            if parts:
                out.append(("[^" if negate else "[") + "".join(parts) + "]")
            else:
                out.append("." if negate else "(?!)")
        else:
            out.append(re.escape(c))
            i += 1
    return re.compile("".join(out), re.DOTALL)


def _base_name(path: str) -> str:
    if not path:
        return "."
    separators = "/" + os.sep
    stripped = path.rstrip(separators)
    if not stripped:
        return "/"
    for sep in separators:
        stripped = stripped.rsplit(sep, 1)[-1]
    return stripped


def _to_slash(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path


def _file_info(st: os.stat_result, name: str, rel_path: str, abs_path: str) -> FileInfo:
    return FileInfo(
        name=name,
        size=st.st_size,
        mode=st.st_mode,
        mod_time=datetime.fromtimestamp(st.st_mtime).astimezone(),
        is_dir=stat.S_ISDIR(st.st_mode),
        rel_path=rel_path,
        abs_path=abs_path,
    )


class LocalFileSystem:
    """File system rooted at a directory on the local disk."""

    def __init__(self, root_path: str | os.PathLike[str], logger: Logger | None = None) -> None:
        self.root_path = os.path.normpath(os.fspath(root_path))
        self.logger: Logger = logger if logger is not None else NoOpLogger()

    def close(self) -> None:
        """Release resources; nothing to do for a local directory."""

    def __enter__(self) -> "LocalFileSystem":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def url(self) -> str:
        """The root directory as a ``file://`` URL."""
        abs_path = self.root_path
        if not os.path.isabs(abs_path):
            try:
                abs_path = os.path.abspath(abs_path)
            except OSError:
                abs_path = self.root_path
        url_path = _to_slash(abs_path)
        if url_path.startswith("//"):
            return "file:" + url_path
        if not url_path.startswith("/"):
            return "file:///" + url_path
        return "file://" + url_path

    def walk(self, options: WalkOptions | None = None, ctx: Context | None = None) -> Iterator[FileInfo]:
        """Return an iterator over entries below the root that pass ``options``.

        The root is checked at once and FileSystemError raised if it is missing;
        iteration raises the context's error once ``ctx`` is cancelled.
        """
        options = options if options is not None else WalkOptions()
        self.logger.debug("Starting local filesystem walk", "root_path", self.root_path, "options", options)
        try:
            os.stat(self.root_path)
        except OSError as exc:
            self.logger.error("Root path does not exist", "path", self.root_path, "error", exc)
            raise FileSystemError(f"root path does not exist: {exc}") from exc
        return self._walk(options, ctx)

    def _walk(self, options: WalkOptions, ctx: Context | None) -> Iterator[FileInfo]:
        if ctx is not None:
            ctx.check()
        try:
            root_st = os.lstat(self.root_path)
        except OSError as exc:
            self.logger.warn("Error walking path", "path", self.root_path, "error", exc)
            return

        def root_info() -> os.stat_result:
            return root_st

        stack: list[tuple[str, tuple[str, ...], bool, Callable[[], os.stat_result]]] = [
            (self.root_path, (), stat.S_ISDIR(root_st.st_mode), root_info)
        ]
        while stack:
            path, parts, is_dir, get_info = stack.pop()
            if ctx is not None and ctx.error() is not None:
                self.logger.debug("Walk cancelled by context", "path", path)
                ctx.check()
            descend, info = self._visit(path, parts, is_dir, get_info, options)
            if info is not None:
                yield info
            if not (descend and is_dir):
                continue
            try:
                with os.scandir(path) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                self.logger.warn("Error walking path", "path", path, "error", exc)
                continue
            for entry in reversed(entries):
                try:
                    entry_is_dir = entry.is_dir(follow_symlinks=False)
                except OSError:
                    entry_is_dir = False
                stack.append(
                    (
                        entry.path,
                        parts + (entry.name,),
                        entry_is_dir,
                        lambda e=entry: e.stat(follow_symlinks=False),
                    )
                )

    def _visit(
        self,
        path: str,
        parts: tuple[str, ...],
        is_dir: bool,
        get_info: Callable[[], os.stat_result],
        options: WalkOptions,
    ) -> tuple[bool, FileInfo | None]:
        """Decide whether to descend into ``path`` and what, if anything, to report."""
        if options.files_only and is_dir:
            return True, None

        if options.max_depth > 0:
            depth = max(len(parts) - 1, 0)
            if depth > options.max_depth:
                return False, None

        try:
            st = get_info()
        except OSError as exc:
            self.logger.warn("Failed to get file info", "path", path, "error", exc)
            return True, None

        if not options.follow_symlinks and stat.S_ISLNK(st.st_mode):
            self.logger.debug("Skipping symlink", "path", path)
            return True, None

        if not parts:
            return True, None

        info = _file_info(st, parts[-1], "/".join(parts), path)
        if self.should_include_file(info, options):
            self.logger.debug(
                "Sending file to channel", "rel_path", info.rel_path, "abs_path", info.abs_path, "size", info.size
            )
            return True, info
        self.logger.debug("File filtered out", "rel_path", info.rel_path)
        return True, None

    def overwrite(
        self, remote_rel_path: str, callback: OverwriteCallback, ctx: Context | None = None
    ) -> FileInfo:
        """Copy a file to a temporary place, let ``callback`` process it, and write the result back.

        ``callback`` receives the file's info and the temporary path and returns
        ``(path, auto_remove)``. An empty or None path skips the upload and the
        original info is returned; otherwise the file at ``path`` replaces the
        original, is removed afterwards if ``auto_remove`` is set and it is not
        the temporary copy, and the updated info is returned.
        """
        self.logger.debug("Starting file overwrite", "remote_rel_path", remote_rel_path)
        remote_abs_path = os.path.normpath(os.path.join(self.root_path, remote_rel_path))
        rel_slash = _to_slash(remote_rel_path)

        try:
            st = os.stat(remote_abs_path)
        except OSError as exc:
            self.logger.error("Failed to stat remote file", "path", remote_abs_path, "error", exc)
            raise FileSystemError(f"failed to stat remote file: {exc}") from exc
        original = _file_info(st, _base_name(remote_abs_path), rel_slash, remote_abs_path)

        try:
            fd, tmp_path = tempfile.mkstemp(prefix=_TEMP_PREFIX)
            os.close(fd)
        except OSError as exc:
            self.logger.error("Failed to create temporary file", "error", exc)
            raise FileSystemError(f"failed to create temporary file: {exc}") from exc

        try:
            self._download(remote_abs_path, tmp_path, ctx)
            self.logger.debug(
                "File downloaded to temporary location", "remote_rel_path", remote_rel_path, "tmp_path", tmp_path
            )

            try:
                overwriting_path, auto_remove = callback(original, tmp_path)
            except Exception as exc:
                self.logger.error("Callback returned error", "remote_rel_path", remote_rel_path, "error", exc)
                raise

            if not overwriting_path:
                self.logger.info("File processing skipped intentionally", "remote_rel_path", remote_rel_path)
                return original

            overwriting_path = os.fspath(overwriting_path)
            size = self._upload(overwriting_path, remote_abs_path, ctx)

            try:
                uploaded = os.stat(remote_abs_path)
            except OSError as exc:
                self.logger.error("Failed to stat uploaded file", "path", remote_abs_path, "error", exc)
                raise FileSystemError(f"failed to stat uploaded file: {exc}") from exc
            updated = _file_info(uploaded, _base_name(remote_abs_path), rel_slash, remote_abs_path)

            if auto_remove and overwriting_path != tmp_path:
                self.logger.debug("Removing processed file after upload", "path", overwriting_path)
                try:
                    os.remove(overwriting_path)
                except OSError as exc:
                    self.logger.warn("Failed to remove processed file after upload", "path", overwriting_path, "error", exc)

            self.logger.info("File overwrite completed successfully", "remote_rel_path", remote_rel_path, "size", size)
            return updated
        finally:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                self.logger.warn("Failed to remove temporary file", "path", tmp_path, "error", exc)

    def _download(self, remote_abs_path: str, tmp_path: str, ctx: Context | None) -> None:
        try:
            src = open(remote_abs_path, "rb")
        except OSError as exc:
            self.logger.error("Failed to open source file", "path", remote_abs_path, "error", exc)
            raise FileSystemError(f"failed to open source file: {exc}") from exc
        with src:
            try:
                dst = open(tmp_path, "wb")
            except OSError as exc:
                self.logger.error("Failed to create temporary file for writing", "path", tmp_path, "error", exc)
                raise FileSystemError(f"failed to create temporary file for writing: {exc}") from exc
            with dst:
                try:
                    self._copy(src, dst, ctx)
                except OSError as exc:
                    self.logger.error(
                        "Failed to download file", "remote_abs_path", remote_abs_path, "tmp_path", tmp_path, "error", exc
                    )
                    raise FileSystemError(f"failed to download file: {exc}") from exc

    def _upload(self, overwriting_path: str, remote_abs_path: str, ctx: Context | None) -> int:
        self.logger.debug("Starting upload of processed file", "overwriting_file_path", overwriting_path)
        try:
            os.stat(overwriting_path)
        except OSError as exc:
            self.logger.error("Failed to stat processed file", "path", overwriting_path, "error", exc)
            raise FileSystemError(f"failed to stat processed file: {exc}") from exc
        try:
            src = open(overwriting_path, "rb")
        except OSError as exc:
            self.logger.error("Failed to open processed file", "path", overwriting_path, "error", exc)
            raise FileSystemError(f"failed to open processed file: {exc}") from exc
        with src:
            try:
                dst = open(remote_abs_path, "wb")
            except OSError as exc:
                self.logger.error("Failed to create destination file for upload", "path", remote_abs_path, "error", exc)
                raise FileSystemError(f"failed to create destination file for upload: {exc}") from exc
            with dst:
                try:
                    return self._copy(src, dst, ctx)
                except OSError as exc:
                    self.logger.error(
                        "Failed to upload processed file",
                        "overwriting_file_path",
                        overwriting_path,
                        "remote_abs_path",
                        remote_abs_path,
                        "error",
                        exc,
                    )
                    raise FileSystemError(f"failed to upload processed file: {exc}") from exc

    @staticmethod
    def _copy(src: IO[bytes], dst: IO[bytes], ctx: Context | None) -> int:
        """Copy ``src`` to ``dst`` in chunks, stopping if ``ctx`` is cancelled."""
        written = 0
        while True:
            if ctx is not None:
                ctx.check()
            chunk = src.read(_COPY_CHUNK)
            if not chunk:
                return written
            dst.write(chunk)
            written += len(chunk)

    def should_include_file(self, file_info: FileInfo, options: WalkOptions) -> bool:
        """Return True if the entry matches an include pattern (if any) and no exclude pattern."""
        if options.include and not any(self.match_pattern(file_info.rel_path, p) for p in options.include):
            return False
        return not any(self.match_pattern(file_info.rel_path, p) for p in options.exclude)

    def match_pattern(self, path: str, pattern: str) -> bool:
        """Match ``pattern`` against the base name of ``path``; a malformed pattern never matches."""
        try:
            compiled = _compile_pattern(pattern)
        except _BadPattern as exc:
            self.logger.warn("Pattern matching error", "pattern", pattern, "path", path, "error", exc)
            return False
        return compiled.fullmatch(_base_name(path)) is not None