# noqa: D401
"""Configuration management for the service supervisor."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from dotenv import dotenv_values, set_key, unset_key
from pydantic import ValidationError

from .errors import ConfigError
from .models import DEFAULT_HEALTH_ENDPOINT, HealthCheckConfig, ServiceConfig

logger = logging.getLogger(__name__)

DEFAULT_ENV_PATH = Path(".env")
ENV_PREFIX = "SUPERVISOR_"

DEFAULT_COMMAND = "ollama serve"
DEFAULT_PORT = 11434

T = TypeVar("T")


class ConfigManager:
    """Manages supervisor configuration via .env file and environment."""

    def __init__(self, env_path: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            env_path: Path to .env file (defaults to ./.env)
        """
        self.env_path = Path(env_path) if env_path else DEFAULT_ENV_PATH

        if not self.env_path.exists():
            logger.debug(f".env file not found at {self.env_path}")

    def load(self) -> ServiceConfig:
        """Load service configuration.

        Values from the process environment override the .env file.

        Returns:
            ServiceConfig instance

        Raises:
            ConfigError: If a value cannot be parsed or violates an invariant
        """
        values = self.get_env_vars()

        max_attempts = values.get("SUPERVISOR_HEALTH_MAX_ATTEMPTS")
        log_file = values.get("SUPERVISOR_LOG_FILE")

        try:
            health_check = HealthCheckConfig(
                timeout=self._parse(values, "SUPERVISOR_HEALTH_TIMEOUT", float, 30.0),
                interval=self._parse(values, "SUPERVISOR_HEALTH_INTERVAL", float, 1.0),
                max_attempts=(
                    self._parse(values, "SUPERVISOR_HEALTH_MAX_ATTEMPTS", int, 0)
                    if max_attempts
                    else None
                ),
                endpoint=values.get("SUPERVISOR_HEALTH_ENDPOINT") or DEFAULT_HEALTH_ENDPOINT,
                request_timeout=self._parse(
                    values, "SUPERVISOR_HEALTH_REQUEST_TIMEOUT", float, 2.0
                ),
            )
            return ServiceConfig(
                command=values.get("SUPERVISOR_COMMAND") or DEFAULT_COMMAND,
                args=self._parse_list(values.get("SUPERVISOR_ARGS", "")),
                process_name=values.get("SUPERVISOR_PROCESS_NAME") or None,
                log_file=Path(log_file) if log_file else None,
                host=values.get("SUPERVISOR_HOST") or "127.0.0.1",
                port=self._parse(values, "SUPERVISOR_PORT", int, DEFAULT_PORT),
                health_check=health_check,
                graceful_stop_timeout=self._parse(
                    values, "SUPERVISOR_GRACEFUL_STOP_TIMEOUT", float, 5.0
                ),
                stop_confirm_attempts=self._parse(
                    values, "SUPERVISOR_STOP_CONFIRM_ATTEMPTS", int, 5
                ),
                stop_confirm_interval=self._parse(
                    values, "SUPERVISOR_STOP_CONFIRM_INTERVAL", float, 1.0
                ),
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid supervisor configuration: {e}") from e

    def save(self, config: ServiceConfig) -> None:
        """Save service configuration to the .env file.

        Args:
            config: ServiceConfig to save
        """
        self.env_path.touch(exist_ok=True)

        self._set_env("SUPERVISOR_COMMAND", config.command)
        self._set_env("SUPERVISOR_HOST", config.host)
        self._set_env("SUPERVISOR_PORT", str(config.port))

        health = config.health_check
        self._set_env("SUPERVISOR_HEALTH_ENDPOINT", health.endpoint)
        self._set_env("SUPERVISOR_HEALTH_TIMEOUT", str(health.timeout))
        self._set_env("SUPERVISOR_HEALTH_INTERVAL", str(health.interval))
        self._set_env("SUPERVISOR_HEALTH_REQUEST_TIMEOUT", str(health.request_timeout))
        self._set_env("SUPERVISOR_GRACEFUL_STOP_TIMEOUT", str(config.graceful_stop_timeout))
        self._set_env("SUPERVISOR_STOP_CONFIRM_ATTEMPTS", str(config.stop_confirm_attempts))
        self._set_env("SUPERVISOR_STOP_CONFIRM_INTERVAL", str(config.stop_confirm_interval))

        optional = {
            "SUPERVISOR_HEALTH_MAX_ATTEMPTS": (
                str(health.max_attempts) if health.max_attempts else None
            ),
            "SUPERVISOR_ARGS": " ".join(config.args) if config.args else None,
            "SUPERVISOR_PROCESS_NAME": config.process_name,
            "SUPERVISOR_LOG_FILE": str(config.log_file) if config.log_file else None,
        }
        for key, value in optional.items():
            if value:
                self._set_env(key, value)
            else:
                self._unset_env(key)

        logger.info(f"Configuration saved to {self.env_path}")

    def get_env_vars(self) -> Dict[str, str]:
        """Get all supervisor variables, environment taking precedence over .env.

        Returns:
            Dictionary of SUPERVISOR_* variables
        """
        values: Dict[str, str] = {}
        if self.env_path.exists():
            values.update(
                {k: v for k, v in dotenv_values(self.env_path).items() if v is not None}
            )
        values.update({k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)})
        return values

    def _set_env(self, key: str, value: str) -> None:
        """Set variable in .env file."""
        set_key(self.env_path, key, value, quote_mode="never")

    def _unset_env(self, key: str) -> None:
        """Remove variable from .env file if present."""
        if key in dotenv_values(self.env_path):
            unset_key(self.env_path, key)

    @staticmethod
    def _parse(values: Dict[str, str], key: str, convert: Callable[[str], T], default: T) -> T:
        """Convert a raw value, falling back to the default when unset.

        Raises:
            ConfigError: If the value cannot be converted
        """
        raw = values.get(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return convert(raw.strip())
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: {raw!r}", key=key, value=raw) from e

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        """Parse comma or space-separated string to list."""
        if not value:
            return []

        if "," in value:
            return [item.strip() for item in value.split(",") if item.strip()]

        return [item.strip() for item in value.split() if item.strip()]


def load_config(env_path: Optional[Path] = None) -> ServiceConfig:
    """Load configuration from .env file and environment.

    Args:
        env_path: Optional path to .env file

    Returns:
        ServiceConfig instance
    """
    return ConfigManager(env_path).load()


def save_config(config: ServiceConfig, env_path: Optional[Path] = None) -> None:
    """Save configuration to .env file.

    Args:
        config: ServiceConfig to save
        env_path: Optional path to .env file
    """
    ConfigManager(env_path).save(config)


__all__ = [
    "ConfigManager",
    "load_config",
    "save_config",
    "DEFAULT_ENV_PATH",
]
