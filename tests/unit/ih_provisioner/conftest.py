"""Fakes shared by the provisioner tests."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from ih_provisioner.context import RunContext
from ih_provisioner.models.types import Node, ProvisionerKind, ToolError, ToolInterruptedError
from ih_provisioner.providers.base import Provisioner

HANG = "hang"
OK = "ok"


class FakeProvisioner(Provisioner):
    """Provisioner replaying scripted create outcomes.

    Each outcome is ``OK``, ``HANG`` (block until the attempt context ends)
    or an exception instance to raise.
    """

    kind = ProvisionerKind.TERRAFORM

    def __init__(
        self,
        state_dir: Path,
        outcomes: Sequence[object] = (OK,),
        destroy_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(state_dir)
        self.outcomes = list(outcomes)
        self.destroy_error = destroy_error
        self.create_contexts: List[RunContext] = []
        self.destroy_contexts: List[RunContext] = []
        self.destroy_context_errors: List[Optional[BaseException]] = []

    def create(self, ctx: RunContext) -> List[Node]:
        self.create_contexts.append(ctx)
        outcome = self.outcomes.pop(0) if self.outcomes else OK
        if outcome == HANG:
            ctx.wait()
            raise ToolInterruptedError("fake tool interrupted", cause=ctx.err())
        if isinstance(outcome, BaseException):
            raise outcome
        self._nodes = [Node(name="node-0", address="192.0.2.10", user="ubuntu")]
        return self.node_pool()

    def destroy(self, ctx: RunContext) -> None:
        self.destroy_contexts.append(ctx)
        self.destroy_context_errors.append(ctx.err())
        if self.destroy_error is not None:
            raise self.destroy_error
        self._nodes = []


class RecordingCollector:
    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.calls: List[tuple[str, List[Node]]] = []
        self.error = error

    def collect(self, label: str, nodes: Sequence[Node]) -> None:
        self.calls.append((label, list(nodes)))
        if self.error is not None:
            raise self.error


@pytest.fixture
def make_provisioner(tmp_path: Path):
    def _make(*outcomes: object, destroy_error: Optional[BaseException] = None) -> FakeProvisioner:
        return FakeProvisioner(tmp_path / "state", outcomes or (OK,), destroy_error)

    return _make


@pytest.fixture
def tool_failure() -> ToolError:
    return ToolError("terraform apply failed")


@pytest.fixture
def make_collector():
    def _make(error: Optional[BaseException] = None) -> RecordingCollector:
        return RecordingCollector(error)

    return _make
