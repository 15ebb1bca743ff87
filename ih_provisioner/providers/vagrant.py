"""Provision local virtual machines with Vagrant."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from ih_provisioner.context import RunContext
from ih_provisioner.models.config import VagrantConfig
from ih_provisioner.models.types import Node, ProvisionerKind, ProvisioningError
from ih_provisioner.providers.base import Provisioner, stage_script
from ih_provisioner.providers.process import run_tool
from ih_provisioner.state import ProvisionerState

logger = logging.getLogger(__name__)


def parse_ssh_config(text: str) -> List[Node]:
    """Parse `vagrant ssh-config` output into nodes, one per Host block."""
    nodes: List[Node] = []
    current: Dict[str, str] = {}

    def flush() -> None:
        if not current:
            return
        if "hostname" not in current:
            raise ProvisioningError(f"ssh-config entry for {current.get('host')} has no HostName")
        nodes.append(
            Node(
                name=current["host"],
                address=current["hostname"],
                user=current.get("user", "vagrant"),
                port=int(current.get("port", "22")),
                identity_file=current.get("identityfile", "").strip('"') or None,
            )
        )

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition(" ")
        key = key.lower()
        value = value.strip()
        if key == "host":
            flush()
            current = {"host": value}
        elif current and key not in current:
            current[key] = value
    flush()
    return nodes


class VagrantProvisioner(Provisioner):
    """Bring Vagrant boxes up and down inside a dedicated state directory."""

    kind = ProvisionerKind.VAGRANT

    def __init__(self, state_dir: Path, config: VagrantConfig) -> None:
        super().__init__(state_dir)
        self.config = config

    @classmethod
    def from_state(cls, config: VagrantConfig, state: ProvisionerState) -> "VagrantProvisioner":
        provisioner = cls(state.state_dir, config)
        provisioner._restore(state)
        return provisioner

    def handle(self) -> dict:
        return {"box": self.config.box, "vagrant_provider": self.config.vagrant_provider}

    def _env(self) -> Dict[str, str]:
        cfg = self.config
        env = {
            "IH_NODES": str(cfg.num_nodes),
            "IH_INSTALLER_URL": cfg.installer_url,
            "IH_CLUSTER_TAG": cfg.cluster_tag,
        }
        if cfg.box:
            env["IH_BOX"] = cfg.box
        if cfg.vagrant_provider:
            env["VAGRANT_DEFAULT_PROVIDER"] = cfg.vagrant_provider
        return env

    def _vagrant(self, ctx: RunContext, *args: str, merge_stderr: bool = True):
        return run_tool(
            ctx,
            [self.config.vagrant_bin, *args],
            cwd=self.state_dir,
            env=self._env(),
            log_file=self.log_file,
            merge_stderr=merge_stderr,
        )

    def create(self, ctx: RunContext) -> List[Node]:
        stage_script(self.config.script_path, self.state_dir, single_file_name="Vagrantfile")
        logger.info("Bringing up %s vagrant box(es) in %s", self.config.num_nodes, self.state_dir)
        self._vagrant(ctx, "up", "--no-color")
        result = self._vagrant(ctx, "ssh-config", merge_stderr=False)
        nodes = parse_ssh_config(result.output)
        if not nodes:
            raise ProvisioningError(f"vagrant reported no machines in {self.state_dir}")
        self._nodes = nodes
        self._installer_addr = nodes[0].address
        return self.node_pool()

    def destroy(self, ctx: RunContext) -> None:
        if not (self.state_dir / ".vagrant").exists():
            logger.info("No vagrant machines in %s; nothing to destroy", self.state_dir)
            self._nodes = []
            return
        logger.info("Destroying vagrant machines in %s", self.state_dir)
        self._vagrant(ctx, "destroy", "--force", "--no-color")
        self._nodes = []
