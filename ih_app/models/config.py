"""User-facing harness configuration."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from ih_common.errors import ConfigurationError
from ih_provisioner.models.config import BackendConfig, OSFlavor, TerraformConfig, VagrantConfig
from ih_provisioner.models.types import (
    DEFAULT_ATTEMPT_THRESHOLDS,
    FINAL_TEARDOWN_TIMEOUT,
    ProvisionerKind,
    ProvisionerPolicy,
)
from ih_provisioner.logs import DEFAULT_REMOTE_PATHS


class OnpremConfig(BaseModel):
    """Nodes to provision and how to install them."""

    nodes: int = Field(default=0, ge=0, description="Number of nodes to provision")
    installer_url: str = Field(default="", description="Installer tarball URL or local path")
    script_path: Optional[Path] = Field(
        default=None, description="Terraform module directory or Vagrantfile"
    )
    os: OSFlavor = Field(default="ubuntu", description="OS flavor of the nodes")
    docker_device: str = Field(default="/dev/xvdb", description="Block device for docker data")
    ssh_user: Optional[str] = Field(default=None, description="Override the backend SSH user")
    ssh_key_path: Optional[Path] = Field(default=None, description="SSH private key for the nodes")
    box: str = Field(default="", description="Vagrant box name")
    vagrant_provider: str = Field(default="", description="Vagrant provider")

    def is_empty(self) -> bool:
        return self.nodes == 0 and self.script_path is None


class HarnessConfig(BaseModel):
    """Top-level configuration read from config.yaml."""

    provisioner: Optional[ProvisionerKind] = Field(
        default=None, description="Provision nodes using this provisioner"
    )
    cloud_provider: Optional[Literal["aws", "azure"]] = Field(
        default=None, description="Cloud for the terraform provisioner"
    )
    cluster_name: str = Field(default="", description="Prefix for resource tags")
    state_dir: Path = Field(default=Path(".ih-state"), description="Directory to store state in")
    report_dir: Path = Field(default=Path("report"), description="Directory receiving collected logs")
    onprem: OnpremConfig = Field(default_factory=OnpremConfig)
    aws: Dict[str, Any] = Field(default_factory=dict, description="Extra terraform variables for AWS")
    azure: Dict[str, Any] = Field(default_factory=dict, description="Extra terraform variables for Azure")
    policy: ProvisionerPolicy = Field(default_factory=ProvisionerPolicy)
    log_paths: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REMOTE_PATHS),
        description="Remote directories archived during log collection",
    )
    attempt_thresholds: List[float] = Field(
        default_factory=lambda: list(DEFAULT_ATTEMPT_THRESHOLDS),
        min_length=1,
        description="Per-attempt creation deadlines in seconds",
    )
    finalization_timeout: float = Field(default=FINAL_TEARDOWN_TIMEOUT, gt=0)

    @model_validator(mode="after")
    def _validate_provisioner(self) -> "HarnessConfig":
        if self.provisioner is not None and self.onprem.is_empty():
            raise ValueError(
                f"onprem configuration is required for provisioner {self.provisioner.value!r}"
            )
        if any(threshold <= 0 for threshold in self.attempt_thresholds):
            raise ValueError("attempt_thresholds must be positive")
        return self

    def new_tag(self) -> str:
        """Return a fresh resource tag derived from the cluster name."""
        prefix = self.cluster_name or "ih"
        return f"{prefix}-{uuid.uuid4().hex[:8]}"

    def backend_config(self, tag: str = "") -> BackendConfig:
        """Translate the onprem section into the selected backend's config."""
        if self.provisioner is None:
            raise ConfigurationError("No provisioner configured")
        onprem = self.onprem
        if onprem.script_path is None:
            raise ConfigurationError(
                "onprem.script_path is required",
                context={"provisioner": self.provisioner.value},
            )
        common: Dict[str, Any] = {
            "script_path": onprem.script_path,
            "installer_url": onprem.installer_url,
            "num_nodes": max(onprem.nodes, 1),
            "cluster_tag": tag or self.cluster_name,
            "ssh_key_path": onprem.ssh_key_path,
        }
        if onprem.ssh_user:
            common["ssh_user"] = onprem.ssh_user

        try:
            return self._build_backend(common)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid {self.provisioner.value} configuration: {exc}",
                cause=exc,
            ) from exc

    def _build_backend(self, common: Dict[str, Any]) -> BackendConfig:
        onprem = self.onprem
        if self.provisioner is ProvisionerKind.TERRAFORM:
            if self.cloud_provider is None:
                raise ConfigurationError("cloud_provider parameter is required for Terraform")
            variables = self.aws if self.cloud_provider == "aws" else self.azure
            return TerraformConfig(
                **common,
                cloud_provider=self.cloud_provider,
                os=onprem.os,
                docker_device=onprem.docker_device,
                variables=dict(variables),
            )
        return VagrantConfig(
            **common,
            box=onprem.box,
            vagrant_provider=onprem.vagrant_provider,
        )
