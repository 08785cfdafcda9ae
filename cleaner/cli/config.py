"""Configuration loading for the controller and CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV = "CLEANER_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".cleaner" / "config.yaml"

# Environment variable -> config field
ENV_OVERRIDES = {
    "CLEANER_LOG_LEVEL": "log_level",
    "CLEANER_NAMESPACE": "namespace",
    "CLEANER_HELM_BINARY": "helm_binary",
    "CLEANER_HELM_DRIVER": "helm_driver",
    "CLEANER_REQUEST_TIMEOUT": "request_timeout",
    "CLEANER_MAX_WORKERS": "max_workers",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Controller settings.

    Attributes:
        log_level: Default log level
        namespace: Namespace to watch (None watches the whole cluster)
        helm_binary: Helm executable used for release teardown
        helm_driver: Helm storage driver (HELM_DRIVER)
        request_timeout: Timeout in seconds for cluster, helm and HTTP calls
        max_workers: Concurrent reconciliations run by the operator
    """

    log_level: str = "INFO"
    namespace: Optional[str] = None
    helm_binary: str = "helm"
    helm_driver: Optional[str] = None
    request_timeout: float = 30.0
    max_workers: int = 10

    def validate(self) -> bool:
        """Validate settings.

        Raises:
            ValueError: If a setting is out of range
        """
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        config = cls()
        for key, value in data.items():
            if key in known:
                setattr(config, key, value)
        config._coerce()
        return config

    def _coerce(self) -> None:
        try:
            self.request_timeout = float(self.request_timeout)
            self.max_workers = int(self.max_workers)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid config value: {e}") from e
        self.log_level = str(self.log_level).upper()

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load configuration from file, then apply environment overrides.

        Args:
            path: Config file (default: $CLEANER_CONFIG or ~/.cleaner/config.yaml)

        Returns:
            Validated Config

        Raises:
            ValueError: If the file or an override holds an invalid value
        """
        if path is None:
            path = Path(os.environ[CONFIG_ENV]) if os.environ.get(CONFIG_ENV) else DEFAULT_CONFIG_PATH

        data: Dict[str, Any] = {}
        if path.exists():
            with open(path, "r") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Config file {path} must contain a mapping")
            data.update(loaded)
            logger.debug(f"Loaded config from {path}")

        for env_name, field_name in ENV_OVERRIDES.items():
            if os.environ.get(env_name):
                data[field_name] = os.environ[env_name]

        config = cls.from_dict(data)
        config.validate()
        return config
