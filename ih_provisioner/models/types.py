"""Shared provisioning types and value objects."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ih_common.errors import AggregateError, IHError
from ih_provisioner.models.config import BackendConfig

DEFAULT_ATTEMPT_THRESHOLDS: tuple[float, ...] = (15 * 60.0, 10 * 60.0)
FINAL_TEARDOWN_TIMEOUT = 5 * 60.0


class ProvisionerKind(str, Enum):
    """Supported provisioning backends."""

    TERRAFORM = "terraform"
    VAGRANT = "vagrant"


@dataclass
class Node:
    """Provisioned machine connection details."""

    name: str
    address: str
    private_address: str = ""
    user: str = "root"
    port: int = 22
    identity_file: Optional[str] = None

    def ssh_target(self) -> str:
        return f"{self.user}@{self.address}"

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "Node":
        """Build a node from a JSON mapping, ignoring unknown keys."""
        return cls(
            name=str(data["name"]),
            address=str(data["address"]),
            private_address=str(data.get("private_address") or ""),
            user=str(data.get("user") or "root"),
            port=int(data.get("port") or 22),
            identity_file=data.get("identity_file"),
        )


class ProvisionerPolicy(BaseModel):
    """Process-wide destroy/log-collection policy, immutable once built."""

    model_config = ConfigDict(frozen=True)

    destroy_on_success: bool = Field(
        default=True,
        description="Remove cloud resources after a test completed OK",
    )
    destroy_on_failure: bool = Field(
        default=False,
        description=(
            "Remove cloud resources after a test failed or its context "
            "timed out or was interrupted"
        ),
    )
    always_collect_logs: bool = Field(
        default=False,
        description="Fetch logs from nodes also when the test passed",
    )
    resource_list_file: Optional[Path] = Field(
        default=None,
        description="Ledger file recording allocated, not yet destroyed resources",
    )


class ProvisioningError(IHError):
    """Raised when provisioning fails."""


class DuplicateTagError(ProvisioningError):
    """A resource tag was registered while already present in the ledger."""


class LedgerPersistenceError(ProvisioningError):
    """The ledger file could not be written; memory and disk may disagree."""


class AttemptTimeoutError(ProvisioningError):
    """A single creation attempt exceeded its threshold."""


class DestroyError(ProvisioningError):
    """Destroying provisioned resources failed."""


class LogCollectionError(ProvisioningError):
    """Collecting diagnostic logs from nodes failed."""


class ToolError(ProvisioningError):
    """An external provisioning tool failed."""


class ToolInterruptedError(ToolError):
    """An external tool was stopped because its context ended."""


class ProvisioningAggregateError(AggregateError, ProvisioningError):
    """Creation failure combined with the outcome of the cleanup attempt."""


class OuterInterruptedError(ProvisioningAggregateError):
    """The outer context ended while an attempt was in flight."""


@dataclass
class ProvisioningRequest:
    """Input required to create one tagged batch of infrastructure."""

    kind: ProvisionerKind
    tag: str
    state_dir: Path
    backend: BackendConfig
