"""Walk local directories, keep backlogs of paths, and overwrite files with cancellation and retries."""

__version__ = "0.1.0"
__all__ = ["common", "memory_backlog", "gzip_backlog", "local_fs"]