from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from rich.console import Console

from ih_app.api import ConfigService, HarnessConfig, HarnessService, state_file_for
from ih_common.api import configure_logging


@dataclass
class UIContext:
    """Global CLI options plus lazily built services."""

    config_path: Optional[Path] = None
    state_file: Optional[Path] = None
    overrides: Dict[str, Any] = field(default_factory=dict)
    console: Console = field(default_factory=lambda: Console(stderr=False))
    err_console: Console = field(default_factory=lambda: Console(stderr=True))

    _config_service: Optional[ConfigService] = None

    @property
    def config_service(self) -> ConfigService:
        if self._config_service is None:
            self._config_service = ConfigService()
        return self._config_service

    @config_service.setter
    def config_service(self, value: ConfigService) -> None:
        self._config_service = value

    def load_config(self) -> Tuple[HarnessConfig, Path]:
        config, path = self.config_service.load(self.config_path, overrides=self.overrides)
        state_file = self.state_file or state_file_for(path)
        return config, state_file

    def harness_service(self) -> HarnessService:
        config, state_file = self.load_config()
        return HarnessService(config, state_file)

    def reset(self) -> None:
        self.config_path = None
        self.state_file = None
        self.overrides = {}


__all__ = ["UIContext", "configure_logging"]
