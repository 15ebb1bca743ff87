"""Configuration resolution for the CLI and the pytest plugin."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from ih_app.models.config import HarnessConfig
from ih_common.config.env import parse_bool_env, parse_float_env, parse_int_env
from ih_common.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.yaml"
STATE_SUFFIX = ".state"


def _set_path(data: Dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    target = data
    for key in parents:
        nested = target.get(key)
        if not isinstance(nested, dict):
            nested = {}
            target[key] = nested
        target = nested
    target[leaf] = value


def _as_bool(value: str) -> bool:
    parsed = parse_bool_env(value)
    return bool(parsed)


def _as_int(value: str) -> int:
    parsed = parse_int_env(value)
    if parsed is None:
        raise ConfigurationError(f"Expected an integer, got {value!r}")
    return parsed


def _as_float(value: str) -> float:
    parsed = parse_float_env(value)
    if parsed is None:
        raise ConfigurationError(f"Expected a number, got {value!r}")
    return parsed


ENV_OVERRIDES: Tuple[Tuple[str, str, Callable[[str], Any]], ...] = (
    ("IH_PROVISIONER", "provisioner", str),
    ("IH_CLOUD_PROVIDER", "cloud_provider", str),
    ("IH_CLUSTER_NAME", "cluster_name", str),
    ("IH_STATE_DIR", "state_dir", str),
    ("IH_REPORT_DIR", "report_dir", str),
    ("IH_NODES", "onprem.nodes", _as_int),
    ("IH_INSTALLER_URL", "onprem.installer_url", str),
    ("IH_SCRIPT_PATH", "onprem.script_path", str),
    ("IH_OS", "onprem.os", str),
    ("IH_DESTROY_ON_SUCCESS", "policy.destroy_on_success", _as_bool),
    ("IH_DESTROY_ON_FAILURE", "policy.destroy_on_failure", _as_bool),
    ("IH_ALWAYS_COLLECT_LOGS", "policy.always_collect_logs", _as_bool),
    ("IH_RESOURCE_LIST_FILE", "policy.resource_list_file", str),
    ("IH_FINALIZATION_TIMEOUT", "finalization_timeout", _as_float),
)


def apply_env_overrides(
    data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Overlay IH_* environment variables onto raw config data."""
    env = os.environ if environ is None else environ
    for name, dotted, convert in ENV_OVERRIDES:
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            value = convert(raw)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"Invalid value for {name}: {exc}", context={"variable": name}, cause=exc
            ) from exc
        logger.debug("Config override %s from %s", dotted, name)
        _set_path(data, dotted, value)
    return data


def state_file_for(config_path: Path) -> Path:
    """Default state file stored next to the config file."""
    return config_path.with_name(config_path.name + STATE_SUFFIX)


class ConfigService:
    """Load harness configuration from YAML plus environment overrides."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ

    def _env(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def resolve_config_path(self, config_path: Optional[Path]) -> Path:
        if config_path is not None:
            return Path(config_path).expanduser()
        env_path = self._env().get("IH_CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        return Path(DEFAULT_CONFIG_NAME)

    def read_raw(self, path: Path) -> Dict[str, Any]:
        """Return the YAML mapping at path; a missing file yields {}."""
        if not path.exists():
            logger.info("Config file %s not found; using environment and defaults", path)
            return {}
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Error parsing config file {path}: {exc}",
                context={"path": path},
                cause=exc,
            ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Config file must contain a mapping at the top level.",
                context={"path": path},
            )
        return data

    def load(
        self,
        config_path: Optional[Path] = None,
        *,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[HarnessConfig, Path]:
        """Load, override and validate configuration.

        ``overrides`` maps dotted keys (``policy.destroy_on_failure``) to
        values and wins over both the file and the environment.
        """
        path = self.resolve_config_path(config_path)
        data = apply_env_overrides(self.read_raw(path), self._env())
        for dotted, value in (overrides or {}).items():
            if value is not None:
                _set_path(data, dotted, value)
        try:
            config = HarnessConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"config validation failed: {exc}",
                context={"path": path},
                cause=exc,
            ) from exc
        return config, path
