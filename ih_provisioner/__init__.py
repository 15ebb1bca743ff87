"""Provisioning with bounded retries, a resource ledger and policy-driven teardown."""

from ih_provisioner.api import (  # noqa: F401
    DestroyFn,
    Node,
    ProvisionerKind,
    ProvisionerPolicy,
    ProvisioningError,
    ProvisioningRequest,
    ProvisioningResult,
    ProvisioningService,
    ResourceLedger,
    RunContext,
    TeardownReport,
)

__all__ = [
    "DestroyFn",
    "Node",
    "ProvisionerKind",
    "ProvisionerPolicy",
    "ProvisioningError",
    "ProvisioningRequest",
    "ProvisioningResult",
    "ProvisioningService",
    "ResourceLedger",
    "RunContext",
    "TeardownReport",
]
