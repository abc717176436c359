# overbatch

Building blocks for batch jobs that go through a tree of local files and
rewrite them in place. The package uses only the standard library.

- `overbatch.local_fs` – `LocalFileSystem` walks a directory with filters
  (`WalkOptions`) and overwrites files through a callback, reporting
  `FileInfo` records and raising `FileSystemError`.
- `overbatch.gzip_backlog` – `GzipBacklogManager` stores the relative paths
  still to be processed in a gzip-compressed text file, raising
  `BacklogError`.
- `overbatch.memory_backlog` – `MemoryBacklogManager` offers the same
  interface with the paths kept in memory.
- `overbatch.common` – `Context` for cancellation and deadlines,
  `RetryExecutor` with `RetryableError` and `NetworkError`, and the `Logger`
  protocol with `NoOpLogger`.

## Installation

```
pip install overbatch
```

## Walking a directory

```python
from overbatch.local_fs import LocalFileSystem, WalkOptions

with LocalFileSystem("/data/images") as fs:
    options = WalkOptions(files_only=True, include=["*.jpg"], exclude=["*_thumb.jpg"])
    for info in fs.walk(options):
        print(info.rel_path, info.size, info.mod_time)
```

`walk()` checks the root at once and raises `FileSystemError` if it does not
exist; it then returns an iterator that goes depth-first, entries of each
directory in name order. The root itself is never reported. Relative paths
always use `/`.

`WalkOptions` fields:

- `include`, `exclude` – shell-style globs (`*`, `?`, `[...]`, `\` escapes)
  matched against the entry's base name. With `include` set, an entry must
  match one of them; an `exclude` match always drops the entry. A malformed
  pattern never matches.
- `files_only` – leave directories out of the results (they are still
  descended into).
- `max_depth` – when greater than zero, entries nested deeper are skipped.
- `follow_symlinks` – when false (the default), symbolic links are not
  reported.

## Overwriting a file

`overwrite(rel_path, callback)` copies the file to a temporary location and
calls `callback(file_info, tmp_path)`. The callback returns
`(path, auto_remove)`:

- an empty or `None` path skips the upload and the original `FileInfo` is
  returned;
- otherwise the file at `path` replaces the original and the updated
  `FileInfo` is returned. If `auto_remove` is true and `path` is not the
  temporary copy, that file is removed afterwards.

The temporary copy is always removed. Exceptions raised by the callback
propagate unchanged; file errors become `FileSystemError`.

```python
def shout(info, tmp_path):
    out = tmp_path + ".out"
    with open(tmp_path) as src, open(out, "w") as dst:
        dst.write(src.read().upper())
    return out, True

updated = fs.overwrite("notes/readme.txt", shout)
```

## Backlogs

```python
from overbatch.gzip_backlog import GzipBacklogManager

backlog = GzipBacklogManager("work/backlog.gz")
backlog.start_writing(info.rel_path for info in fs.walk(options))
print(backlog.count_rel_paths())
for rel_path in backlog.start_reading():
    fs.overwrite(rel_path, shout)
```

`GzipBacklogManager` writes one UTF-8 path per line, creating missing parent
directories and replacing any earlier file. Reading and counting strip each
line and skip empty ones. `start_reading()` and `count_rel_paths()` raise
`BacklogError` at once if the file is missing or is not gzip data; a read
error met later ends `start_reading()`'s iteration (and is logged), while
`count_rel_paths()` raises it as `BacklogError`.

`MemoryBacklogManager` has the same three methods; writing replaces the
stored entries, and reading works on a snapshot taken when it starts. It also
supports `len()`, `entries()` (a copy), `replace(entries)`, `clear()` and
`str()`.

## Cancellation

Every long-running method takes an optional `ctx`:

```python
from overbatch.common import Context

ctx = Context(timeout=30)   # or Context() for no deadline
...
ctx.cancel()
```

`ctx.check()` raises `ContextCancelled`, or `DeadlineExceeded` (a subclass)
once the deadline has passed; `ctx.error()` returns that error or `None`;
`ctx.wait(timeout)` blocks until the context is done or the timeout passes.
Writing, counting, walking and copying raise the context's error when it is
cancelled; the backlog readers simply stop iterating.

## Retrying

```python
from overbatch.common import NetworkError, RetryExecutor

def upload_once():
    ...
    raise NetworkError("upload", TimeoutError("timed out"), should_retry=True)

executor = RetryExecutor(max_retries=3, delay=0.5)
result = executor.execute(upload_once, Context(timeout=30))
```

`execute()` returns the operation's result. Only `RetryableError` instances
whose `is_retryable()` is true are retried, up to `max_retries` times with
`delay` seconds between attempts; any other exception, or the last retryable
one, is raised. If the context is done while waiting, its error is raised.

## Logging

The constructors take an optional `logger` with `debug`, `info`, `warn`,
`error` and `with_fields` methods (the `Logger` protocol). Extra positional
arguments to each call are key/value pairs. `NoOpLogger` discards messages.

## What it does not do

The package works with local directories only; it has no remote file
systems and no command-line program. Putting the pieces together into a
batch run is left to the caller, as in the examples above.

## Running the tests

```
pip install -e ".[test]"
pytest
```