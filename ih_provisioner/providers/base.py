"""Common surface of provisioning backends."""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from ih_provisioner.context import RunContext
from ih_provisioner.models.types import Node, ProvisionerKind, ProvisioningError
from ih_provisioner.state import ProvisionerState

logger = logging.getLogger(__name__)


class Provisioner(ABC):
    """Create, destroy and list nodes of one infrastructure batch."""

    kind: ProvisionerKind

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = Path(state_dir)
        self._nodes: List[Node] = []
        self._installer_addr: Optional[str] = None

    @property
    def log_file(self) -> Path:
        return self.state_dir / f"{self.kind.value}.log"

    @abstractmethod
    def create(self, ctx: RunContext) -> List[Node]:
        """Create the infrastructure and return its nodes."""

    @abstractmethod
    def destroy(self, ctx: RunContext) -> None:
        """Destroy whatever create() allocated."""

    def node_pool(self) -> List[Node]:
        return list(self._nodes)

    @property
    def installer_addr(self) -> Optional[str]:
        return self._installer_addr

    def handle(self) -> dict:
        """Backend-specific parameters needed to rebind after a restart."""
        return {}

    def state(self) -> ProvisionerState:
        return ProvisionerState(
            kind=self.kind,
            state_dir=self.state_dir,
            nodes=self.node_pool(),
            installer_addr=self._installer_addr,
            handle=self.handle(),
        )

    def _restore(self, state: ProvisionerState) -> None:
        if state.kind != self.kind:
            raise ProvisioningError(
                f"Cannot restore {self.kind.value} provisioner from {state.kind.value} state"
            )
        self._nodes = list(state.nodes)
        self._installer_addr = state.installer_addr


def stage_script(source: Path, target_dir: Path, *, single_file_name: str | None = None) -> None:
    """Copy provisioning scripts into the state directory."""
    if not source.exists():
        raise ProvisioningError(f"Provisioning script not found: {source}")
    target_dir.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, target_dir, dirs_exist_ok=True)
    else:
        shutil.copy2(source, target_dir / (single_file_name or source.name))
    logger.debug("Staged %s into %s", source, target_dir)
