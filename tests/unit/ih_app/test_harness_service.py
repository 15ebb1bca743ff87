"""Tests for the application-level harness service."""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from ih_app.models.config import HarnessConfig
from ih_app.services.harness_service import HarnessService
from ih_provisioner.context import RunContext
from ih_provisioner.engine import service as service_module
from ih_provisioner.models.types import (
    LogCollectionError,
    Node,
    ProvisionerKind,
    ProvisioningError,
)
from ih_provisioner.providers.base import Provisioner


pytestmark = pytest.mark.unit_app


class StubProvisioner(Provisioner):
    kind = ProvisionerKind.VAGRANT

    def __init__(self, state_dir: Path) -> None:
        super().__init__(state_dir)
        self.destroyed = 0

    def create(self, ctx: RunContext) -> List[Node]:
        self._nodes = [Node(name="default", address="127.0.0.1", user="vagrant", port=2222)]
        self._installer_addr = "127.0.0.1"
        return self.node_pool()

    def destroy(self, ctx: RunContext) -> None:
        self.destroyed += 1
        self._nodes = []


class StubCollector:
    def __init__(self, fail: bool = False) -> None:
        self.labels: list[str] = []
        self.fail = fail

    def collect(self, label, nodes) -> None:
        self.labels.append(label)
        if self.fail:
            raise LogCollectionError("unreachable")


@pytest.fixture
def harness_config(tmp_path: Path) -> HarnessConfig:
    return HarnessConfig.model_validate(
        {
            "provisioner": "vagrant",
            "cluster_name": "local",
            "state_dir": str(tmp_path / "state"),
            "report_dir": str(tmp_path / "report"),
            "onprem": {"nodes": 1, "script_path": str(tmp_path / "Vagrantfile")},
            "policy": {"resource_list_file": str(tmp_path / "resources.txt")},
        }
    )


@pytest.fixture
def stub(tmp_path: Path, monkeypatch) -> StubProvisioner:
    provisioner = StubProvisioner(tmp_path / "state" / "local-1")
    monkeypatch.setattr(service_module, "provisioner_from_config", lambda kind, state_dir, config: provisioner)
    monkeypatch.setattr(service_module, "provisioner_from_state", lambda config, state: provisioner)
    return provisioner


def test_provision_saves_state_and_status(tmp_path, harness_config, stub) -> None:
    service = HarnessService(harness_config, tmp_path / "config.yaml.state", log_collector=StubCollector())

    result = service.provision(RunContext.background(), tag="local-1")
    summary = service.status()

    assert (tmp_path / "config.yaml.state").exists()
    assert result.state.tag == "local-1"
    assert summary is not None
    assert summary.allocated
    assert summary.installer_addr == "127.0.0.1"
    assert summary.nodes[0].port == 2222
    assert service.ledger_tags() == ["local-1"]


def test_provision_refuses_existing_state(tmp_path, harness_config, stub) -> None:
    service = HarnessService(harness_config, tmp_path / "config.yaml.state", log_collector=StubCollector())
    service.provision(RunContext.background(), tag="local-1")

    with pytest.raises(ProvisioningError, match="destroy it first"):
        service.provision(RunContext.background(), tag="local-2")


def test_destroy_removes_state_and_ledger_entry(tmp_path, harness_config, stub) -> None:
    state_file = tmp_path / "config.yaml.state"
    service = HarnessService(harness_config, state_file, log_collector=StubCollector())
    service.provision(RunContext.background(), tag="local-1")

    state = service.destroy()

    assert state.tag == "local-1"
    assert stub.destroyed == 1
    assert not state_file.exists()
    assert service.ledger_tags() == []
    assert service.status() is None


def test_report_collects_from_saved_nodes(tmp_path, harness_config, stub) -> None:
    collector = StubCollector()
    service = HarnessService(harness_config, tmp_path / "config.yaml.state", log_collector=collector)
    service.provision(RunContext.background(), tag="local-1")

    target = service.report()

    assert collector.labels == ["local-1-report"]
    assert target == tmp_path / "report"


def test_report_propagates_collection_errors(tmp_path, harness_config, stub) -> None:
    service = HarnessService(
        harness_config, tmp_path / "config.yaml.state", log_collector=StubCollector(fail=True)
    )
    service.provision(RunContext.background(), tag="local-1")
    with pytest.raises(LogCollectionError):
        service.report()
