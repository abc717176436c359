import os

import pytest

from overbatch.common import Context, ContextCancelled, NoOpLogger
from overbatch.local_fs import (
    FileInfo,
    FileSystemError,
    LocalFileSystem,
    WalkOptions,
)

CONTENT = "test content"


class RecordingLogger:
    def __init__(self):
        self.debug_logs = []
        self.info_logs = []
        self.warn_logs = []
        self.error_logs = []

    def debug(self, msg, *args):
        self.debug_logs.append(msg)

    def info(self, msg, *args):
        self.info_logs.append(msg)

    def warn(self, msg, *args):
        self.warn_logs.append(msg)

    def error(self, msg, *args):
        self.error_logs.append(msg)

    def with_fields(self, fields):
        return self


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "file0.txt").write_text("content0")
    dir1 = tmp_path / "dir1"
    dir1.mkdir()
    (dir1 / "file1.txt").write_text("content1")
    (dir1 / "file2.log").write_text("content2")
    subdir = dir1 / "subdir"
    subdir.mkdir()
    (subdir / "file3.txt").write_text("content3")
    return tmp_path


@pytest.fixture
def source_dir(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    (root / "source.txt").write_text(CONTENT)
    return root


def _info(rel_path):
    return FileInfo(
        name=rel_path.rsplit("/", 1)[-1],
        size=0,
        mode=0,
        mod_time=None,
        is_dir=False,
        rel_path=rel_path,
        abs_path="/" + rel_path,
    )


def test_root_path_is_cleaned_and_default_logger():
    fs = LocalFileSystem("/test//path/")
    assert fs.root_path == "/test/path"
    assert isinstance(fs.logger, NoOpLogger)


def test_logger_can_be_replaced():
    logger = RecordingLogger()
    fs = LocalFileSystem("/test/path", logger=logger)
    assert fs.logger is logger


def test_context_manager_returns_self(tmp_path):
    with LocalFileSystem(tmp_path) as fs:
        assert fs.root_path == str(tmp_path)


@pytest.mark.parametrize(
    "root, expected",
    [
        ("/usr/local/share", "file:///usr/local/share"),
        ("/path with spaces/dir", "file:///path with spaces/dir"),
        ("/", "file:///"),
    ],
)
def test_url_absolute(root, expected):
    assert LocalFileSystem(root).url == expected


def test_url_relative():
    url = LocalFileSystem("./relative/path").url
    assert url.startswith("file:///")
    assert url.endswith("relative/path")


@pytest.mark.parametrize(
    "options, expected",
    [
        (
            WalkOptions(),
            ["dir1", "dir1/file1.txt", "dir1/file2.log", "dir1/subdir", "dir1/subdir/file3.txt", "file0.txt"],
        ),
        (
            WalkOptions(files_only=True),
            ["dir1/file1.txt", "dir1/file2.log", "dir1/subdir/file3.txt", "file0.txt"],
        ),
        (
            WalkOptions(max_depth=1),
            ["dir1", "dir1/file1.txt", "dir1/file2.log", "dir1/subdir", "file0.txt"],
        ),
        (
            WalkOptions(include=["*.txt"]),
            ["dir1/file1.txt", "dir1/subdir/file3.txt", "file0.txt"],
        ),
        (
            WalkOptions(exclude=["*.log"]),
            ["dir1", "dir1/file1.txt", "dir1/subdir", "dir1/subdir/file3.txt", "file0.txt"],
        ),
    ],
)
def test_walk(tree, options, expected):
    fs = LocalFileSystem(tree, logger=RecordingLogger())
    results = [info.rel_path for info in fs.walk(options)]
    assert sorted(results) == sorted(expected)


def test_walk_is_lexical_preorder(tree):
    results = [info.rel_path for info in LocalFileSystem(tree).walk()]
    assert results == [
        "dir1",
        "dir1/file1.txt",
        "dir1/file2.log",
        "dir1/subdir",
        "dir1/subdir/file3.txt",
        "file0.txt",
    ]


def test_walk_reports_file_details(tree):
    infos = {info.rel_path: info for info in LocalFileSystem(tree).walk()}
    file0 = infos["file0.txt"]
    assert file0.name == "file0.txt"
    assert file0.size == len("content0")
    assert file0.is_dir is False
    assert file0.abs_path == os.path.join(str(tree), "file0.txt")
    assert infos["dir1"].is_dir is True


def test_walk_nonexistent_root():
    fs = LocalFileSystem("/non/existent/path", logger=RecordingLogger())
    with pytest.raises(FileSystemError, match="root path does not exist"):
        fs.walk()


def test_walk_cancelled_context(tree):
    ctx = Context()
    ctx.cancel()
    with pytest.raises(ContextCancelled):
        list(LocalFileSystem(tree).walk(WalkOptions(), ctx))


def test_walk_symlinks(tree):
    os.symlink(tree / "file0.txt", tree / "link.txt")
    fs = LocalFileSystem(tree)
    skipped = [i.rel_path for i in fs.walk(WalkOptions())]
    followed = [i.rel_path for i in fs.walk(WalkOptions(follow_symlinks=True))]
    assert "link.txt" not in skipped
    assert "link.txt" in followed


def test_overwrite_successful(source_dir):
    created = []

    def process(info, src_path):
        processed = src_path + ".processed"
        with open(processed, "w") as fh:
            fh.write("PROCESSED: " + CONTENT)
        created.append(processed)
        return processed, True

    fs = LocalFileSystem(source_dir, logger=RecordingLogger())
    info = fs.overwrite("source.txt", process)
    assert info.rel_path == "source.txt"
    assert info.size == len("PROCESSED: " + CONTENT)
    assert (source_dir / "source.txt").read_text() == "PROCESSED: test content"
    assert not os.path.exists(created[0])


def test_overwrite_intentional_skip(source_dir):
    fs = LocalFileSystem(source_dir)
    info = fs.overwrite("source.txt", lambda info, path: ("", False))
    assert info.rel_path == "source.txt"
    assert info.size == len(CONTENT)
    assert (source_dir / "source.txt").read_text() == CONTENT


def test_overwrite_callback_receives_copy(source_dir):
    seen = {}

    def process(info, src_path):
        with open(src_path) as fh:
            seen["content"] = fh.read()
        seen["info"] = info
        seen["path"] = src_path
        return None, False

    result = LocalFileSystem(source_dir).overwrite("source.txt", process)
    assert result.rel_path == "source.txt"
    assert result.size == len(CONTENT)
    assert seen["content"] == CONTENT
    assert seen["info"].name == "source.txt"
    assert not os.path.exists(seen["path"])


def test_overwrite_processing_error(source_dir):
    def process(info, src_path):
        raise RuntimeError("processing failed")

    fs = LocalFileSystem(source_dir, logger=RecordingLogger())
    with pytest.raises(RuntimeError, match="processing failed"):
        fs.overwrite("source.txt", process)
    assert (source_dir / "source.txt").read_text() == CONTENT


def test_overwrite_nonexistent_source(source_dir):
    fs = LocalFileSystem(source_dir)
    with pytest.raises(FileSystemError, match="failed to stat remote file"):
        fs.overwrite("nonexistent.txt", lambda info, path: (path, False))


def test_overwrite_in_place(source_dir):
    seen = []

    def process(info, src_path):
        with open(src_path, "w") as fh:
            fh.write("IN-PLACE: " + CONTENT)
        seen.append(src_path)
        return src_path, True

    info = LocalFileSystem(source_dir).overwrite("source.txt", process)
    assert info.rel_path == "source.txt"
    assert (source_dir / "source.txt").read_text() == "IN-PLACE: test content"
    assert not os.path.exists(seen[0])


def test_overwrite_without_auto_remove_keeps_processed(source_dir):
    created = []

    def process(info, src_path):
        processed = src_path + ".no_autoremove"
        with open(processed, "w") as fh:
            fh.write("NO_AUTOREMOVE: " + CONTENT)
        created.append(processed)
        return processed, False

    LocalFileSystem(source_dir).overwrite("source.txt", process)
    try:
        assert (source_dir / "source.txt").read_text() == "NO_AUTOREMOVE: test content"
        assert os.path.exists(created[0])
    finally:
        os.remove(created[0])


def test_overwrite_missing_processed_file(source_dir, tmp_path):
    missing = str(tmp_path / "non-existent-file.txt")
    fs = LocalFileSystem(source_dir)
    with pytest.raises(FileSystemError, match="failed to stat processed file"):
        fs.overwrite("source.txt", lambda info, path: (missing, False))
    assert (source_dir / "source.txt").read_text() == CONTENT


def test_overwrite_cancelled_context(tmp_path):
    data = bytes(i % 256 for i in range(1024 * 1024))
    (tmp_path / "source.txt").write_bytes(data)
    ctx = Context()
    ctx.cancel()
    fs = LocalFileSystem(tmp_path)
    with pytest.raises(ContextCancelled, match="context canceled"):
        fs.overwrite("source.txt", lambda info, path: (path, False), ctx)
    assert (tmp_path / "source.txt").read_bytes() == data


@pytest.mark.parametrize(
    "rel_path, options, expected",
    [
        ("test.txt", WalkOptions(), True),
        ("test.txt", WalkOptions(include=["*.txt"]), True),
        ("test.log", WalkOptions(include=["*.txt"]), False),
        ("test.log", WalkOptions(exclude=["*.log"]), False),
        ("test.txt", WalkOptions(exclude=["*.log"]), True),
        ("test.txt", WalkOptions(include=["*.txt"], exclude=["test.*"]), False),
    ],
)
def test_should_include_file(rel_path, options, expected):
    fs = LocalFileSystem("/test/path")
    assert fs.should_include_file(_info(rel_path), options) is expected


@pytest.mark.parametrize(
    "path, pattern, expected",
    [
        ("test.txt", "test.txt", True),
        ("test.txt", "*.txt", True),
        ("test.log", "*.txt", False),
        ("dir/test.txt", "*.txt", True),
        ("file1.txt", "file?.txt", True),
        ("file1.txt", "file[0-9].txt", True),
        ("filea.txt", "file[^0-9].txt", True),
        ("file1.txt", "file[^0-9].txt", False),
        ("a*b", "a\\*b", True),
        ("axb", "a\\*b", False),
    ],
)
def test_match_pattern(path, pattern, expected):
    fs = LocalFileSystem("/test/path")
    assert fs.match_pattern(path, pattern) is expected


@pytest.mark.parametrize("pattern", ["[", "[]", "abc\\", "[a-"])
def test_match_pattern_bad_pattern(pattern):
    logger = RecordingLogger()
    fs = LocalFileSystem("/test/path", logger=logger)
    assert fs.match_pattern("abc", pattern) is False
    assert logger.warn_logs == ["Pattern matching error"]