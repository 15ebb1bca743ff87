"""Application-facing services for the CLI and the pytest plugin."""

from ih_app.services.config_service import ConfigService
from ih_app.services.harness_service import HarnessService, StatusSummary

__all__ = ["ConfigService", "HarnessService", "StatusSummary"]
