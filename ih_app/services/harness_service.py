"""Application service driving provisioning from a loaded configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ih_app.models.config import HarnessConfig
from ih_common.errors import StatePersistenceError
from ih_provisioner.context import RunContext
from ih_provisioner.engine.service import ProvisioningResult, ProvisioningService
from ih_provisioner.ledger import ResourceLedger, read_ledger
from ih_provisioner.logs import LogCollector, SshLogCollector
from ih_provisioner.models.types import Node, ProvisioningError, ProvisioningRequest
from ih_provisioner.state import HarnessState

REPORT_LABEL = "report"


@dataclass(frozen=True)
class StatusSummary:
    """What the state file says about the current infrastructure."""

    tag: str
    provisioner: str
    state_dir: Path
    nodes: List[Node] = field(default_factory=list)
    installer_addr: Optional[str] = None
    allocated: bool = False


def _never_failed() -> bool:
    return False


class HarnessService:
    """Provision, inspect and destroy infrastructure for one config file."""

    def __init__(
        self,
        config: HarnessConfig,
        state_file: Path,
        *,
        ledger: Optional[ResourceLedger] = None,
        log_collector: Optional[LogCollector] = None,
    ) -> None:
        self.config = config
        self.state_file = Path(state_file)
        self.ledger = ledger if ledger is not None else ResourceLedger(config.policy.resource_list_file)
        self.log_collector = log_collector if log_collector is not None else SshLogCollector(
            config.report_dir,
            remote_paths=config.log_paths,
            timeout=config.finalization_timeout,
        )
        self._logger = logging.getLogger(__name__)

    def provisioning_service(self) -> ProvisioningService:
        return ProvisioningService(
            self.config.policy,
            self.ledger,
            self.log_collector,
            thresholds=self.config.attempt_thresholds,
            finalization_timeout=self.config.finalization_timeout,
        )

    def provision(
        self,
        ctx: RunContext,
        *,
        tag: Optional[str] = None,
        test_failed: Callable[[], bool] = _never_failed,
    ) -> ProvisioningResult:
        """Create infrastructure and record it in the state file."""
        existing = HarnessState.load_optional(self.state_file)
        if existing is not None:
            raise ProvisioningError(
                f"State file {self.state_file} already tracks {existing.tag}; destroy it first",
                context={"state_file": self.state_file, "tag": existing.tag},
            )
        resolved_tag = tag or self.config.new_tag()
        request = ProvisioningRequest(
            kind=self.config.provisioner,  # type: ignore[arg-type]
            tag=resolved_tag,
            state_dir=self.config.state_dir / resolved_tag,
            backend=self.config.backend_config(resolved_tag),
        )
        result = self.provisioning_service().provision(ctx, request, test_failed)
        try:
            result.state.save(self.state_file)
        except StatePersistenceError:
            self._logger.error(
                "Provisioned %s but could not save %s; tag stays in the ledger",
                resolved_tag,
                self.state_file,
            )
            raise
        self._logger.info("Saved state for %s to %s", resolved_tag, self.state_file)
        return result

    def load_state(self) -> HarnessState:
        return HarnessState.load(self.state_file)

    def destroy(self, ctx: Optional[RunContext] = None) -> HarnessState:
        """Destroy the infrastructure in the state file and drop the file."""
        state = self.load_state()
        backend = self.config.backend_config(state.tag)
        self.provisioning_service().teardown_from_state(state, backend, ctx)
        self.state_file.unlink(missing_ok=True)
        return state

    def status(self) -> Optional[StatusSummary]:
        state = HarnessState.load_optional(self.state_file)
        if state is None:
            return None
        return StatusSummary(
            tag=state.tag,
            provisioner=state.provisioner.value,
            state_dir=state.state_dir,
            nodes=list(state.provisioner_state.nodes),
            installer_addr=state.provisioner_state.installer_addr,
            allocated=state.tag in self.ledger,
        )

    def report(self, label: str = REPORT_LABEL) -> Path:
        """Collect logs from the nodes in the state file into the report dir."""
        state = self.load_state()
        self.log_collector.collect(f"{state.tag}-{label}", state.provisioner_state.nodes)
        return self.config.report_dir

    def ledger_tags(self) -> List[str]:
        path = self.config.policy.resource_list_file
        if path is None:
            return sorted(self.ledger.tags())
        return sorted(read_ledger(path))
