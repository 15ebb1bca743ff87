"""Tests for the provisioning facade."""

from __future__ import annotations

from pathlib import Path

import pytest

from ih_common.errors import ConfigurationError
from ih_provisioner.context import RunContext
from ih_provisioner.engine import service as service_module
from ih_provisioner.engine.service import (
    ProvisioningService,
    provisioner_from_config,
    provisioner_from_state,
)
from ih_provisioner.ledger import ResourceLedger
from ih_provisioner.models.config import TerraformConfig, VagrantConfig
from ih_provisioner.models.types import (
    DestroyError,
    ProvisionerKind,
    ProvisionerPolicy,
    ProvisioningRequest,
    ToolError,
)
from ih_provisioner.providers.terraform import TerraformProvisioner
from ih_provisioner.providers.vagrant import VagrantProvisioner


pytestmark = pytest.mark.unit_provisioner


@pytest.fixture
def tf_config(tmp_path: Path) -> TerraformConfig:
    return TerraformConfig(script_path=tmp_path / "module", cloud_provider="azure")


def test_terraform_state_lives_in_subdirectory(tmp_path, tf_config) -> None:
    provisioner = provisioner_from_config(ProvisionerKind.TERRAFORM, tmp_path, tf_config)
    assert isinstance(provisioner, TerraformProvisioner)
    assert provisioner.state_dir == tmp_path / "tf"


def test_vagrant_uses_state_dir_directly(tmp_path) -> None:
    config = VagrantConfig(script_path=tmp_path / "Vagrantfile")
    provisioner = provisioner_from_config(ProvisionerKind.VAGRANT, tmp_path, config)
    assert isinstance(provisioner, VagrantProvisioner)
    assert provisioner.state_dir == tmp_path


def test_mismatched_backend_config_is_rejected(tmp_path, tf_config) -> None:
    with pytest.raises(ConfigurationError):
        provisioner_from_config(ProvisionerKind.VAGRANT, tmp_path, tf_config)


def test_provisioner_from_state_restores_nodes(tmp_path, tf_config) -> None:
    original = provisioner_from_config(ProvisionerKind.TERRAFORM, tmp_path, tf_config)
    restored = provisioner_from_state(tf_config, original.state())
    assert restored.state_dir == original.state_dir


def _request(tmp_path: Path, tf_config: TerraformConfig) -> ProvisioningRequest:
    return ProvisioningRequest(
        kind=ProvisionerKind.TERRAFORM,
        tag="ci-1",
        state_dir=tmp_path / "ci-1",
        backend=tf_config,
    )


def test_provision_returns_nodes_state_and_teardown(tmp_path, tf_config, make_provisioner, monkeypatch) -> None:
    fake = make_provisioner("ok")
    monkeypatch.setattr(service_module, "provisioner_from_config", lambda kind, state_dir, config: fake)
    ledger = ResourceLedger(tmp_path / "resources.txt")
    service = ProvisioningService(ProvisionerPolicy(), ledger, thresholds=(5,))

    result = service.provision(RunContext.background(), _request(tmp_path, tf_config), lambda: False)

    assert result.state.tag == "ci-1"
    assert result.state.provisioner_state.nodes == result.nodes
    assert ledger.tags() == {"ci-1"}

    report = result.destroy()
    assert report.destroyed and report.deregistered
    assert ledger.tags() == set()


def test_default_ledger_follows_policy_file(tmp_path) -> None:
    path = tmp_path / "resources.txt"
    service = ProvisioningService(ProvisionerPolicy(resource_list_file=path))
    assert service.ledger.path == path


def test_teardown_from_state_destroys_and_deregisters(tmp_path, tf_config, make_provisioner, monkeypatch) -> None:
    fake = make_provisioner("ok")
    monkeypatch.setattr(service_module, "provisioner_from_config", lambda kind, state_dir, config: fake)
    monkeypatch.setattr(service_module, "provisioner_from_state", lambda config, state: fake)
    ledger = ResourceLedger()
    service = ProvisioningService(ProvisionerPolicy(destroy_on_success=False), ledger, thresholds=(5,))
    result = service.provision(RunContext.background(), _request(tmp_path, tf_config), lambda: False)
    assert not result.destroy().destroyed

    service.teardown_from_state(result.state, tf_config)

    assert len(fake.destroy_contexts) == 1
    assert fake.destroy_context_errors == [None]
    assert ledger.tags() == set()


def test_teardown_from_state_failure_keeps_tag(tmp_path, tf_config, make_provisioner, monkeypatch) -> None:
    fake = make_provisioner("ok", destroy_error=ToolError("boom"))
    monkeypatch.setattr(service_module, "provisioner_from_config", lambda kind, state_dir, config: fake)
    monkeypatch.setattr(service_module, "provisioner_from_state", lambda config, state: fake)
    ledger = ResourceLedger()
    service = ProvisioningService(ProvisionerPolicy(destroy_on_success=False), ledger, thresholds=(5,))
    result = service.provision(RunContext.background(), _request(tmp_path, tf_config), lambda: False)

    with pytest.raises(DestroyError):
        service.teardown_from_state(result.state, tf_config)
    assert ledger.tags() == {"ci-1"}
