"""Public provisioning API surface."""

from ih_provisioner.context import (
    ContextCancelled,
    ContextDeadlineExceeded,
    ContextError,
    RunContext,
    bind_signals,
)
from ih_provisioner.engine.service import (
    ProvisionerFactory,
    ProvisioningResult,
    ProvisioningService,
    provisioner_for_request,
    provisioner_from_config,
    provisioner_from_state,
)
from ih_provisioner.ledger import ResourceLedger, read_ledger
from ih_provisioner.lifecycle import DestroyFn, LifecycleCoordinator, TeardownReport
from ih_provisioner.logs import LogCollector, SshLogCollector
from ih_provisioner.models.config import BackendConfig, TerraformConfig, VagrantConfig
from ih_provisioner.models.types import (
    DEFAULT_ATTEMPT_THRESHOLDS,
    FINAL_TEARDOWN_TIMEOUT,
    AttemptTimeoutError,
    DestroyError,
    DuplicateTagError,
    LedgerPersistenceError,
    LogCollectionError,
    Node,
    OuterInterruptedError,
    ProvisionerKind,
    ProvisionerPolicy,
    ProvisioningAggregateError,
    ProvisioningError,
    ProvisioningRequest,
    ToolError,
    ToolInterruptedError,
)
from ih_provisioner.policy import TeardownDecision, decide_teardown
from ih_provisioner.runner import ProvisioningOutcome, ProvisionRunner
from ih_provisioner.state import HarnessState, ProvisionerState

__all__ = [
    "AttemptTimeoutError",
    "BackendConfig",
    "ContextCancelled",
    "ContextDeadlineExceeded",
    "ContextError",
    "DEFAULT_ATTEMPT_THRESHOLDS",
    "DestroyError",
    "DestroyFn",
    "DuplicateTagError",
    "FINAL_TEARDOWN_TIMEOUT",
    "HarnessState",
    "LedgerPersistenceError",
    "LifecycleCoordinator",
    "LogCollectionError",
    "LogCollector",
    "Node",
    "OuterInterruptedError",
    "ProvisionRunner",
    "ProvisionerFactory",
    "ProvisionerKind",
    "ProvisionerPolicy",
    "ProvisionerState",
    "ProvisioningAggregateError",
    "ProvisioningError",
    "ProvisioningOutcome",
    "ProvisioningRequest",
    "ProvisioningResult",
    "ProvisioningService",
    "ResourceLedger",
    "RunContext",
    "SshLogCollector",
    "TeardownDecision",
    "TeardownReport",
    "TerraformConfig",
    "ToolError",
    "ToolInterruptedError",
    "VagrantConfig",
    "bind_signals",
    "decide_teardown",
    "provisioner_for_request",
    "provisioner_from_config",
    "provisioner_from_state",
    "read_ledger",
]
