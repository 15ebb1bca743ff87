"""Tests for persisted provisioner state."""

from __future__ import annotations

from pathlib import Path

import pytest

from ih_common.errors import StatePersistenceError
from ih_provisioner.models.types import Node, ProvisionerKind
from ih_provisioner.state import HarnessState, ProvisionerState


pytestmark = pytest.mark.unit_provisioner


def _state(tmp_path: Path, tag: str = "ci-1") -> HarnessState:
    return HarnessState(
        provisioner=ProvisionerKind.TERRAFORM,
        tag=tag,
        state_dir=tmp_path / tag,
        provisioner_state=ProvisionerState(
            kind=ProvisionerKind.TERRAFORM,
            state_dir=tmp_path / tag / "tf",
            nodes=[Node(name="node-0", address="1.2.3.4", private_address="10.0.0.1", user="ubuntu")],
            installer_addr="1.2.3.4",
            handle={"cloud_provider": "aws"},
        ),
    )


def test_save_and_load_preserve_nodes(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml.state"
    _state(tmp_path).save(path)

    loaded = HarnessState.load(path)

    assert loaded.tag == "ci-1"
    assert loaded.provisioner_state.nodes[0].address == "1.2.3.4"
    assert loaded.provisioner_state.nodes[0].user == "ubuntu"
    assert loaded.provisioner_state.handle == {"cloud_provider": "aws"}
    assert not path.with_suffix(".state.tmp").exists()


def test_load_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(StatePersistenceError, match="not found"):
        HarnessState.load(tmp_path / "missing.state")
    assert HarnessState.load_optional(tmp_path / "missing.state") is None


def test_load_invalid_json_raises(tmp_path: Path) -> None:
    path = tmp_path / "broken.state"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StatePersistenceError):
        HarnessState.load(path)


def test_kind_mismatch_is_rejected(tmp_path: Path) -> None:
    state = _state(tmp_path)
    with pytest.raises(ValueError):
        HarnessState(
            provisioner=ProvisionerKind.VAGRANT,
            tag=state.tag,
            state_dir=state.state_dir,
            provisioner_state=state.provisioner_state,
        )
