"""Provision cloud nodes with a Terraform module."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

from ih_provisioner.context import RunContext
from ih_provisioner.models.config import TerraformConfig
from ih_provisioner.models.types import Node, ProvisionerKind, ProvisioningError
from ih_provisioner.providers.base import Provisioner, stage_script
from ih_provisioner.providers.process import run_tool
from ih_provisioner.state import ProvisionerState

logger = logging.getLogger(__name__)

VAR_FILE = "harness.tfvars.json"


def _output_value(outputs: dict[str, Any], name: str, default: Any = None) -> Any:
    entry = outputs.get(name)
    if isinstance(entry, dict) and "value" in entry:
        return entry["value"]
    return default


class TerraformProvisioner(Provisioner):
    """Apply/destroy a Terraform module inside a dedicated state directory."""

    kind = ProvisionerKind.TERRAFORM

    def __init__(self, state_dir: Path, config: TerraformConfig) -> None:
        super().__init__(state_dir)
        self.config = config

    @classmethod
    def from_state(cls, config: TerraformConfig, state: ProvisionerState) -> "TerraformProvisioner":
        provisioner = cls(state.state_dir, config)
        provisioner._restore(state)
        return provisioner

    @property
    def var_file(self) -> Path:
        return self.state_dir / VAR_FILE

    def handle(self) -> dict:
        return {
            "var_file": str(self.var_file),
            "cloud_provider": self.config.cloud_provider,
        }

    def _variables(self) -> dict[str, Any]:
        cfg = self.config
        variables: dict[str, Any] = {
            "nodes": cfg.num_nodes,
            "os": cfg.os,
            "installer_url": cfg.installer_url,
            "cluster_tag": cfg.cluster_tag,
            "cloud_provider": cfg.cloud_provider,
            "docker_device": cfg.docker_device,
            "ssh_user": cfg.ssh_user,
        }
        if cfg.ssh_key_path:
            variables["ssh_key_path"] = str(cfg.ssh_key_path)
        variables.update(cfg.variables)
        return variables

    def _terraform(self, ctx: RunContext, *args: str, merge_stderr: bool = True):
        return run_tool(
            ctx,
            [self.config.terraform_bin, *args],
            cwd=self.state_dir,
            env={"TF_IN_AUTOMATION": "1"},
            log_file=self.log_file,
            merge_stderr=merge_stderr,
        )

    def create(self, ctx: RunContext) -> List[Node]:
        stage_script(self.config.script_path, self.state_dir)
        self.var_file.write_text(json.dumps(self._variables(), indent=2), encoding="utf-8")
        logger.info(
            "Applying terraform in %s (%s nodes, %s)",
            self.state_dir,
            self.config.num_nodes,
            self.config.cloud_provider,
        )
        self._terraform(ctx, "init", "-input=false", "-no-color")
        self._terraform(
            ctx,
            "apply",
            "-input=false",
            "-auto-approve",
            "-no-color",
            f"-var-file={VAR_FILE}",
        )
        result = self._terraform(ctx, "output", "-json", "-no-color", merge_stderr=False)
        self._nodes, self._installer_addr = self._parse_outputs(result.output)
        return self.node_pool()

    def _parse_outputs(self, raw: str) -> tuple[List[Node], str | None]:
        try:
            outputs = json.loads(raw or "{}")
        except json.JSONDecodeError as exc:
            raise ProvisioningError(f"Could not parse terraform output: {exc}", cause=exc) from exc
        if not isinstance(outputs, dict):
            raise ProvisioningError("Unexpected terraform output payload: expected a JSON object")

        public_ips = _output_value(outputs, "public_ips", [])
        private_ips = _output_value(outputs, "private_ips", [])
        if not isinstance(public_ips, list) or not public_ips:
            raise ProvisioningError("terraform output 'public_ips' is missing or empty")
        ssh_user = _output_value(outputs, "ssh_user", None) or self.config.ssh_user
        key_path = str(self.config.ssh_key_path) if self.config.ssh_key_path else None

        nodes = []
        for idx, address in enumerate(public_ips):
            private = private_ips[idx] if idx < len(private_ips) else ""
            nodes.append(
                Node(
                    name=f"node-{idx}",
                    address=str(address),
                    private_address=str(private),
                    user=ssh_user,
                    identity_file=key_path,
                )
            )
        installer = _output_value(outputs, "installer_ip", None)
        return nodes, str(installer) if installer else None

    def destroy(self, ctx: RunContext) -> None:
        if not (self.state_dir / ".terraform").exists():
            logger.info("No terraform state in %s; nothing to destroy", self.state_dir)
            self._nodes = []
            return
        if not self.var_file.exists():
            self.var_file.write_text(json.dumps(self._variables(), indent=2), encoding="utf-8")
        logger.info("Destroying terraform resources in %s", self.state_dir)
        self._terraform(
            ctx,
            "destroy",
            "-input=false",
            "-auto-approve",
            "-no-color",
            f"-var-file={VAR_FILE}",
        )
        self._nodes = []
