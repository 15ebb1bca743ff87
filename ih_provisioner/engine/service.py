"""Facade that routes provisioning requests to the correct backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ih_common.errors import ConfigurationError
from ih_provisioner.context import RunContext
from ih_provisioner.ledger import ResourceLedger
from ih_provisioner.lifecycle import DestroyFn, LifecycleCoordinator
from ih_provisioner.logs import LogCollector
from ih_provisioner.models.config import BackendConfig, TerraformConfig, VagrantConfig
from ih_provisioner.models.types import (
    DEFAULT_ATTEMPT_THRESHOLDS,
    FINAL_TEARDOWN_TIMEOUT,
    DestroyError,
    Node,
    ProvisionerKind,
    ProvisionerPolicy,
    ProvisioningRequest,
)
from ih_provisioner.providers.base import Provisioner
from ih_provisioner.providers.terraform import TerraformProvisioner
from ih_provisioner.providers.vagrant import VagrantProvisioner
from ih_provisioner.runner import ProvisionRunner
from ih_provisioner.state import HarnessState, ProvisionerState

logger = logging.getLogger(__name__)

TERRAFORM_SUBDIR = "tf"


def _require(config: BackendConfig, expected: type[BackendConfig], kind: ProvisionerKind) -> None:
    if not isinstance(config, expected):
        raise ConfigurationError(
            f"{kind.value} provisioner needs {expected.__name__}, got {type(config).__name__}",
            context={"provisioner": kind.value},
        )


def provisioner_from_config(
    kind: ProvisionerKind,
    state_dir: Path,
    config: BackendConfig,
) -> Provisioner:
    """Build a fresh adapter for kind rooted under state_dir."""
    if kind is ProvisionerKind.TERRAFORM:
        _require(config, TerraformConfig, kind)
        return TerraformProvisioner(Path(state_dir) / TERRAFORM_SUBDIR, config)  # type: ignore[arg-type]
    if kind is ProvisionerKind.VAGRANT:
        _require(config, VagrantConfig, kind)
        return VagrantProvisioner(Path(state_dir), config)  # type: ignore[arg-type]
    raise ConfigurationError(f"Unsupported provisioner: {kind}")


def provisioner_from_state(config: BackendConfig, state: ProvisionerState) -> Provisioner:
    """Rebind an adapter to infrastructure recorded in a state file."""
    if state.kind is ProvisionerKind.TERRAFORM:
        _require(config, TerraformConfig, state.kind)
        return TerraformProvisioner.from_state(config, state)  # type: ignore[arg-type]
    if state.kind is ProvisionerKind.VAGRANT:
        _require(config, VagrantConfig, state.kind)
        return VagrantProvisioner.from_state(config, state)  # type: ignore[arg-type]
    raise ConfigurationError(f"Unsupported provisioner: {state.kind}")


def provisioner_for_request(request: ProvisioningRequest) -> Provisioner:
    return provisioner_from_config(request.kind, request.state_dir, request.backend)


ProvisionerFactory = Callable[[ProvisioningRequest], Provisioner]


@dataclass
class ProvisioningResult:
    """Nodes of a provisioned batch, its teardown closure and saved state."""

    nodes: List[Node]
    destroy: DestroyFn
    state: HarnessState


class ProvisioningService:
    """Create tagged infrastructure and hand back a policy-aware teardown."""

    def __init__(
        self,
        policy: ProvisionerPolicy,
        ledger: Optional[ResourceLedger] = None,
        log_collector: Optional[LogCollector] = None,
        *,
        thresholds: Sequence[float] = DEFAULT_ATTEMPT_THRESHOLDS,
        finalization_timeout: float = FINAL_TEARDOWN_TIMEOUT,
        provisioner_factory: ProvisionerFactory = provisioner_for_request,
    ) -> None:
        self.policy = policy
        self.provisioner_factory = provisioner_factory
        self.ledger = ledger if ledger is not None else ResourceLedger(policy.resource_list_file)
        self.thresholds = tuple(thresholds)
        self.finalization_timeout = finalization_timeout
        self.coordinator = LifecycleCoordinator(
            policy,
            self.ledger,
            log_collector,
            finalization_timeout=finalization_timeout,
        )

    def provision(
        self,
        ctx: RunContext,
        request: ProvisioningRequest,
        test_failed: Callable[[], bool],
    ) -> ProvisioningResult:
        """Provision resources according to the request."""
        provisioner = self.provisioner_factory(request)
        runner = ProvisionRunner(
            provisioner,
            self.ledger,
            thresholds=self.thresholds,
            finalization_timeout=self.finalization_timeout,
        )
        outcome = runner.create(ctx, request.tag)
        state = HarnessState(
            provisioner=request.kind,
            tag=request.tag,
            state_dir=Path(request.state_dir),
            provisioner_state=provisioner.state(),
        )
        destroy = self.coordinator.wrap_destroy(
            ctx, request.tag, outcome.nodes, outcome.destroy, test_failed
        )
        return ProvisioningResult(nodes=outcome.nodes, destroy=destroy, state=state)

    def teardown_from_state(
        self,
        state: HarnessState,
        config: BackendConfig,
        ctx: Optional[RunContext] = None,
    ) -> None:
        """Destroy infrastructure recorded in state and deregister its tag."""
        provisioner = provisioner_from_state(config, state.provisioner_state)
        parent = ctx if ctx is not None else RunContext.background()
        logger.info("Destroying %s from saved state in %s", state.tag, state.state_dir)
        with RunContext.with_timeout(parent, self.finalization_timeout) as teardown_ctx:
            try:
                provisioner.destroy(teardown_ctx)
            except Exception as exc:
                raise DestroyError(
                    f"failed to destroy resources for {state.tag}",
                    context={"tag": state.tag, "state_dir": state.state_dir},
                    cause=exc,
                ) from exc
        self.ledger.deallocate(state.tag)
        logger.info("Destroyed %s", state.tag)
