"""Shared building blocks: logging protocol, cancellation contexts and retries."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class Logger(Protocol):
    """Structured logger; extra positional arguments are key/value pairs."""

    def debug(self, msg: str, *args: Any) -> None: ...

    def info(self, msg: str, *args: Any) -> None: ...

    def warn(self, msg: str, *args: Any) -> None: ...

    def error(self, msg: str, *args: Any) -> None: ...

    def with_fields(self, fields: Mapping[str, Any]) -> "Logger": ...


@dataclass(eq=False)
class NoOpLogger:
    """Logger that discards every message, keeping only a count of them."""

    discarded: int = 0
    fields: dict[str, Any] = field(default_factory=dict)

    def _discard(self) -> None:
        self.discarded += 1

    def debug(self, msg: str, *args: Any) -> None:
        self._discard()

    def info(self, msg: str, *args: Any) -> None:
        self._discard()

    def warn(self, msg: str, *args: Any) -> None:
        self._discard()

    def error(self, msg: str, *args: Any) -> None:
        self._discard()

    def with_fields(self, fields: Mapping[str, Any]) -> "NoOpLogger":
        """Remember the fields and return this same logger."""
        self.fields.update(fields)
        return self


class ContextCancelled(Exception):
    """The operation's context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ContextCancelled):
    """The operation's context passed its deadline."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """A cancellation signal, optionally with a deadline, shared between threads."""

    def __init__(self, timeout: float | None = None) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._error: ContextCancelled | None = None
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def _expire_locked(self) -> None:
        if (
            self._error is None
            and self._deadline is not None
            and time.monotonic() >= self._deadline
        ):
            self._error = DeadlineExceeded()
            self._done.set()

    def cancel(self) -> None:
        """Cancel the context; has no effect if it is already done."""
        with self._lock:
            self._expire_locked()
            if self._error is None:
                self._error = ContextCancelled()
                self._done.set()

    def error(self) -> ContextCancelled | None:
        """Return why the context is done, or None while it is still live."""
        with self._lock:
            self._expire_locked()
            return self._error

    def check(self) -> None:
        """Raise the context's error if it is done."""
        err = self.error()
        if err is not None:
            raise err

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done or ``timeout`` seconds pass.

        Returns True if the context is done.
        """
        end = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.error() is not None:
                return True
            now = time.monotonic()
            if end is not None and now >= end:
                return False
            limits = [t for t in (end, self._deadline) if t is not None]
            remaining = min(limits) - now if limits else None
            self._done.wait(None if remaining is None else max(remaining, 0.0))


class RetryableError(Exception):
    """An error that may say it is worth retrying."""

    def __init__(self, *args: Any, retryable: bool = True) -> None:
        super().__init__(*args)
        self._retryable = retryable

    def is_retryable(self) -> bool:
        return self._retryable


class NetworkError(RetryableError):
    """A network failure during a named operation."""

    def __init__(
        self, operation: str, cause: BaseException, should_retry: bool = False
    ) -> None:
        super().__init__(f"{operation}: {cause}", retryable=should_retry)
        self.operation = operation
        self.cause = cause
        self.should_retry = should_retry
        self.__cause__ = cause

    def is_retryable(self) -> bool:
        return self.should_retry


@dataclass
class RetryExecutor:
    """Runs an operation, retrying retryable errors after a fixed delay."""

    max_retries: int = 0
    delay: float = 0.0

    def execute(self, operation: Callable[[], T], ctx: Context | None = None) -> T:
        """Call ``operation`` until it succeeds or fails for good.

        Retryable errors are retried up to ``max_retries`` times; any other
        error, or the last retryable one, is raised. A cancelled context during
        a delay raises the context's error.
        """
        attempt = 0
        while True:
            try:
                return operation()
            except RetryableError as exc:
                if not exc.is_retryable() or attempt >= self.max_retries:
                    raise
                attempt += 1
                if ctx is None:
                    time.sleep(self.delay)
                elif ctx.wait(self.delay):
                    err = ctx.error()
                    assert err is not None
                    raise err from exc