"""Persisted provisioner state for resuming or destroying after a crash."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from ih_common.errors import StatePersistenceError
from ih_provisioner.models.types import Node, ProvisionerKind


class ProvisionerState(BaseModel):
    """Node inventory plus the backend handle needed to rebind an adapter."""

    kind: ProvisionerKind = Field(description="Backend that created the nodes")
    state_dir: Path = Field(description="Directory holding the backend state")
    nodes: List[Node] = Field(default_factory=list, description="Provisioned nodes")
    installer_addr: Optional[str] = Field(
        default=None, description="Address of the node serving the installer"
    )
    handle: Dict[str, Any] = Field(
        default_factory=dict, description="Backend-specific parameters"
    )


class HarnessState(BaseModel):
    """State file written after provisioning, read by destroy/report runs."""

    provisioner: ProvisionerKind
    tag: str = Field(description="Resource tag registered in the ledger")
    state_dir: Path
    provisioner_state: ProvisionerState

    @model_validator(mode="after")
    def _validate_consistency(self) -> "HarnessState":
        if not self.tag.strip():
            raise ValueError("HarnessState: 'tag' must be non-empty")
        if self.provisioner_state.kind != self.provisioner:
            raise ValueError(
                "HarnessState: provisioner does not match provisioner_state.kind"
            )
        return self

    def save(self, filepath: Path) -> None:
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = filepath.with_suffix(filepath.suffix + ".tmp")
            tmp_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
            tmp_path.replace(filepath)
        except OSError as exc:
            raise StatePersistenceError(
                f"Failed to write state file {filepath}",
                context={"path": filepath},
                cause=exc,
            ) from exc

    @classmethod
    def load(cls, filepath: Path) -> "HarnessState":
        try:
            return cls.model_validate_json(filepath.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise StatePersistenceError(
                f"State file not found: {filepath}",
                context={"path": filepath},
                cause=exc,
            ) from exc
        except (OSError, ValidationError) as exc:
            raise StatePersistenceError(
                f"Invalid state file {filepath}: {exc}",
                context={"path": filepath},
                cause=exc,
            ) from exc

    @classmethod
    def load_optional(cls, filepath: Path) -> Optional["HarnessState"]:
        """Return the saved state, or None when no state file exists."""
        if not filepath.exists():
            return None
        return cls.load(filepath)
