"""Stable application-layer API surface."""

from ih_app.models.config import HarnessConfig, OnpremConfig
from ih_app.services.config_service import ConfigService, apply_env_overrides, state_file_for
from ih_app.services.harness_service import HarnessService, StatusSummary

__all__ = [
    "ConfigService",
    "HarnessConfig",
    "HarnessService",
    "OnpremConfig",
    "StatusSummary",
    "apply_env_overrides",
    "state_file_for",
]
