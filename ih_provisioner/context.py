"""Cancellation and deadline scopes for long-running provisioning calls.

A RunContext is the cooperative stop signal passed to every blocking
provisioner operation. Contexts form a tree: cancelling a parent (or reaching
its deadline) ends every child, while a child deadline never affects the
parent. Cleanup work must run under a fresh ``RunContext.background()``
child, never under a context that has already ended.
"""

from __future__ import annotations

import signal
import threading
import time
from contextlib import contextmanager
from types import FrameType
from typing import Callable, Dict, Generator, Optional

from ih_common.errors import IHError


class ContextError(IHError):
    """Base class for context termination reasons."""


class ContextCancelled(ContextError):
    """The context was cancelled explicitly or by a signal."""


class ContextDeadlineExceeded(ContextError):
    """The context deadline passed."""


class RunContext:
    """Cooperative cancellation scope with an optional deadline."""

    def __init__(
        self,
        parent: Optional["RunContext"] = None,
        deadline: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._parent = parent
        self._clock = parent._clock if parent is not None else clock
        if parent is not None and parent._deadline is not None:
            deadline = parent._deadline if deadline is None else min(deadline, parent._deadline)
        self._deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._cause: Optional[ContextError] = None
        self._children: list[RunContext] = []
        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> "RunContext":
        """Return a new root context that never ends on its own."""
        return cls()

    @classmethod
    def with_timeout(cls, parent: "RunContext", seconds: float) -> "RunContext":
        """Return a child of parent that also ends after seconds."""
        return cls(parent, parent._clock() + max(0.0, seconds))

    def child(self, timeout: Optional[float] = None) -> "RunContext":
        if timeout is None:
            return RunContext(self)
        return RunContext.with_timeout(self, timeout)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def _attach(self, child: "RunContext") -> None:
        with self._lock:
            cause = self._cause
            if cause is None:
                self._children.append(child)
        if cause is not None:
            child.cancel(cause)

    def _detach(self, child: "RunContext") -> None:
        with self._lock:
            try:
                self._children.remove(child)
            except ValueError:
                pass

    def cancel(self, cause: Optional[BaseException] = None) -> None:
        """End this context and all of its children."""
        if isinstance(cause, ContextError):
            reason = cause
        else:
            reason = ContextCancelled(
                str(cause) if cause is not None else "context cancelled",
                cause=cause,
            )
        with self._lock:
            if self._cause is not None:
                return
            self._cause = reason
            children = list(self._children)
            self._children.clear()
        self._event.set()
        for child in children:
            child.cancel(reason)

    def close(self) -> None:
        """Release this context: cancel it and detach from the parent."""
        self.cancel()
        if self._parent is not None:
            self._parent._detach(self)

    def err(self) -> Optional[ContextError]:
        """Return why the context ended, or None while it is still live."""
        with self._lock:
            if self._cause is not None:
                return self._cause
        if self._parent is not None:
            parent_err = self._parent.err()
            if parent_err is not None:
                return parent_err
        if self._deadline is not None and self._clock() >= self._deadline:
            return ContextDeadlineExceeded("context deadline exceeded")
        return None

    def done(self) -> bool:
        return self.err() is not None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None if unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the context ends or timeout elapses; return done()."""
        left = self.remaining()
        if timeout is None:
            timeout = left
        elif left is not None:
            timeout = min(timeout, left)
        if self.done():
            return True
        self._event.wait(timeout)
        return self.done()

    def __enter__(self) -> "RunContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Only child contexts are released on exit; a root stays live.
        if self._parent is not None:
            self.close()


@contextmanager
def bind_signals(
    ctx: RunContext,
    signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Generator[RunContext, None, None]:
    """Cancel ctx when one of the given signals arrives."""
    previous: Dict[int, object] = {}

    def _handle(signum: int, frame: FrameType | None) -> None:
        name = signal.Signals(signum).name
        ctx.cancel(ContextCancelled(f"interrupted by {name}"))

    for sig in signals:
        try:
            previous[sig] = signal.getsignal(sig)
            signal.signal(sig, _handle)
        except ValueError:
            # Not in the main thread; signals stay with their previous owner.
            previous.pop(sig, None)
    try:
        yield ctx
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)  # type: ignore[arg-type]
