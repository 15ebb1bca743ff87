"""Application layer between the CLI/pytest front ends and the provisioner."""

from ih_app.api import ConfigService, HarnessConfig, HarnessService

__all__ = ["ConfigService", "HarnessConfig", "HarnessService"]
