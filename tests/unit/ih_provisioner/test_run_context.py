"""Tests for cancellation and deadline scopes."""

from __future__ import annotations

import os
import signal
import threading

import pytest

from ih_provisioner.context import (
    ContextCancelled,
    ContextDeadlineExceeded,
    RunContext,
    bind_signals,
)


pytestmark = pytest.mark.unit_provisioner


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_background_is_live_and_unbounded() -> None:
    ctx = RunContext.background()
    assert ctx.err() is None
    assert not ctx.done()
    assert ctx.remaining() is None


def test_deadline_expires_with_clock() -> None:
    clock = FakeClock()
    root = RunContext(clock=clock)
    ctx = RunContext.with_timeout(root, 10)

    assert ctx.remaining() == pytest.approx(10)
    clock.now += 10
    assert isinstance(ctx.err(), ContextDeadlineExceeded)
    assert root.err() is None


def test_child_deadline_is_bounded_by_parent() -> None:
    clock = FakeClock()
    parent = RunContext.with_timeout(RunContext(clock=clock), 5)
    child = parent.child(timeout=60)

    assert child.deadline == parent.deadline
    clock.now += 5
    assert isinstance(child.err(), ContextDeadlineExceeded)


def test_cancel_propagates_to_children_not_parents() -> None:
    root = RunContext.background()
    parent = root.child()
    child = parent.child()

    parent.cancel(RuntimeError("stop"))

    assert isinstance(child.err(), ContextCancelled)
    assert "stop" in str(child.err())
    assert root.err() is None


def test_child_of_cancelled_parent_starts_cancelled() -> None:
    parent = RunContext.background()
    parent.cancel()
    assert parent.child().done()


def test_exit_closes_only_child_contexts() -> None:
    root = RunContext.background()
    with root as same:
        pass
    assert same.err() is None

    with root.child() as child:
        assert child.err() is None
    assert isinstance(child.err(), ContextCancelled)
    assert root.err() is None


def test_wait_returns_when_cancelled_from_another_thread() -> None:
    ctx = RunContext.background()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    try:
        assert ctx.wait(timeout=5) is True
    finally:
        timer.cancel()


def test_wait_times_out_on_live_context() -> None:
    assert RunContext.background().wait(timeout=0.01) is False


def test_bind_signals_cancels_and_restores_handler() -> None:
    previous = signal.getsignal(signal.SIGTERM)
    ctx = RunContext.background()
    with bind_signals(ctx, signals=(signal.SIGTERM,)):
        os.kill(os.getpid(), signal.SIGTERM)
        assert ctx.wait(timeout=5)
    assert "SIGTERM" in str(ctx.err())
    assert signal.getsignal(signal.SIGTERM) == previous
