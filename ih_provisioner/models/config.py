"""Backend configuration passed to provisioners at construction time."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

OSFlavor = Literal["ubuntu", "redhat", "centos", "debian"]


class BackendConfig(BaseModel):
    """Parameters common to every provisioning backend."""

    script_path: Path = Field(description="Terraform module directory or Vagrantfile")
    installer_url: str = Field(default="", description="Installer tarball URL or local path")
    num_nodes: int = Field(default=1, gt=0, description="Number of nodes to provision")
    cluster_tag: str = Field(default="", description="Tag applied to created resources")
    ssh_user: str = Field(default="ubuntu", description="SSH user on provisioned nodes")
    ssh_key_path: Optional[Path] = Field(
        default=None, description="Private key used to reach the nodes"
    )

    @field_validator("script_path")
    @classmethod
    def _script_path_not_empty(cls, value: Path) -> Path:
        if not str(value).strip():
            raise ValueError("script_path must be set")
        return value


class TerraformConfig(BackendConfig):
    """Terraform backend parameters."""

    cloud_provider: Literal["aws", "azure"] = Field(description="Cloud to deploy into")
    os: OSFlavor = Field(default="ubuntu", description="OS flavor of the nodes")
    docker_device: str = Field(default="/dev/xvdb", description="Block device for docker data")
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Extra Terraform variables (cloud credentials, instance type)"
    )
    terraform_bin: str = Field(default="terraform", description="Terraform executable")


class VagrantConfig(BackendConfig):
    """Vagrant backend parameters."""

    box: str = Field(default="", description="Box name; empty keeps the Vagrantfile default")
    vagrant_provider: str = Field(default="", description="Vagrant provider, e.g. virtualbox or libvirt")
    ssh_user: str = Field(default="vagrant", description="SSH user on provisioned nodes")
    vagrant_bin: str = Field(default="vagrant", description="Vagrant executable")
