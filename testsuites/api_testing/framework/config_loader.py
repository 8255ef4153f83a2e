"""
================================================================================
Configuration Loader
================================================================================

Environment-driven configuration for the API test suite.

Features:
    - Immutable Settings object (read-only mapping keyed by env name)
    - Resolution order: process env > .env file > YAML file > defaults
    - Type conversion driven by each setting's default (str, int, bool)
    - Fail-fast validation of required settings and malformed integers

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional

import yaml
from dotenv import dotenv_values
from loguru import logger


PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent

# Default source file paths
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"

# Settings that must be provided explicitly (not by a hardcoded default)
REQUIRED_SETTINGS = ("BASE_URL", "API_BASE_URL")

TRUTHY_VALUES = ("true", "1", "yes", "on")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


def _setting(env: str, default: Any) -> Any:
    return field(default=default, metadata={"env": env})


@dataclass(frozen=True)
class Settings(Mapping):
    """
    Resolved test-run configuration.

    Read-only: attribute access uses Python names, mapping access uses the
    environment names.

    Usage:
        >>> settings = load_settings()
        >>> settings.base_url
        'http://localhost:3000'
        >>> settings["TEST_TIMEOUT"]
        30000
    """

    # Base URLs
    base_url: str = _setting("BASE_URL", "http://localhost:3000")
    api_base_url: str = _setting("API_BASE_URL", "http://localhost:3000/api")
    auth_base_url: str = _setting("AUTH_BASE_URL", "http://localhost:3000/api/auth")
    users_base_url: str = _setting("USERS_BASE_URL", "http://localhost:3000/api/users")

    # Timeouts (milliseconds)
    test_timeout: int = _setting("TEST_TIMEOUT", 30000)
    assertion_timeout: int = _setting("ASSERTION_TIMEOUT", 10000)

    # Authentication
    test_user_email: str = _setting("TEST_USER_EMAIL", "test@example.com")
    test_user_password: str = _setting("TEST_USER_PASSWORD", "testpassword123")
    admin_user_email: str = _setting("ADMIN_USER_EMAIL", "admin@example.com")
    admin_user_password: str = _setting("ADMIN_USER_PASSWORD", "adminpassword123")

    # Logging
    log_level: str = _setting("LOG_LEVEL", "info")
    log_file: str = _setting("LOG_FILE", "reports/test-execution.log")

    # Environment
    node_env: str = _setting("NODE_ENV", "test")
    ci: bool = _setting("CI", False)
    api_target: str = _setting("API_TARGET", "stub")

    @classmethod
    def env_names(cls) -> Dict[str, str]:
        """Map environment name -> attribute name."""
        return {f.metadata["env"]: f.name for f in fields(cls)}

    @classmethod
    def defaults(cls) -> Dict[str, Any]:
        """Map environment name -> hardcoded default."""
        return {f.metadata["env"]: f.default for f in fields(cls)}

    def __getitem__(self, key: str) -> Any:
        try:
            return getattr(self, self.env_names()[key])
        except KeyError:
            raise KeyError(key) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self.env_names())

    def __len__(self) -> int:
        return len(fields(self))

    def as_dict(self) -> Dict[str, Any]:
        """Return a plain, mutable copy keyed by environment name."""
        return {name: self[name] for name in self}


class ConfigLoader:
    """
    Configuration loader with .env, YAML and environment variable support.

    Configuration hierarchy (highest to lowest priority):
        1. Process environment variables
        2. .env file (never overrides the process environment)
        3. YAML configuration file (flat mapping of env names to values)
        4. Hardcoded defaults on Settings

    Usage:
        >>> loader = ConfigLoader()
        >>> loader.validate()
        >>> settings = loader.load()
    """

    def __init__(
        self,
        environ: Optional[Mapping] = None,
        env_file: Optional[Path] = None,
        config_path: Optional[Path] = None,
    ) -> None:
        """
        Initialize configuration loader.

        Args:
            environ: Environment mapping. Uses os.environ if not specified.
            env_file: Path to a .env file. Uses DEFAULT_ENV_FILE if not specified.
            config_path: Path to YAML configuration file.
                        Uses DEFAULT_CONFIG_PATH if not specified.
        """
        self._environ = os.environ if environ is None else environ
        self._env_file = Path(env_file) if env_file else DEFAULT_ENV_FILE
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._sources = self._collect_sources()

    def _collect_sources(self) -> Dict[str, Any]:
        """Merge explicit sources, lowest priority first."""
        known = Settings.env_names()
        merged: Dict[str, Any] = {}

        for key, value in self._load_yaml().items():
            if key not in known:
                logger.warning(f"Ignoring unknown configuration key: {key}")
                continue
            merged[key] = value

        for key, value in self._load_env_file().items():
            if key in known:
                merged[key] = value

        for key in known:
            value = self._environ.get(key)
            if value is not None:
                merged[key] = value

        return merged

    def _load_env_file(self) -> Dict[str, str]:
        if not self._env_file.exists():
            return {}
        values = dotenv_values(self._env_file, encoding="utf-8")
        logger.debug(f"Loaded environment file: {self._env_file}")
        # dotenv returns None for keys without a value
        return {k: v for k, v in values.items() if v is not None}

    def _load_yaml(self) -> Dict[str, Any]:
        if not self._config_path.exists():
            return {}
        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping: {self._config_path}"
            )
        logger.debug(f"Loaded configuration from: {self._config_path}")
        return {str(k).upper(): v for k, v in data.items()}

    def load(self) -> Settings:
        """
        Resolve every setting to its typed value.

        Raises:
            ConfigurationError: When an integer setting cannot be parsed
        """
        defaults = Settings.defaults()
        names = Settings.env_names()
        values = {}
        for env_name, attr in names.items():
            reference = defaults[env_name]
            if env_name in self._sources:
                values[attr] = self._convert_type(
                    env_name, self._sources[env_name], reference
                )
            else:
                values[attr] = reference
        return Settings(**values)

    def validate(self, required: Iterable[str] = REQUIRED_SETTINGS) -> None:
        """
        Ensure every required setting is explicitly provided.

        All missing names are reported together.

        Raises:
            ConfigurationError: When one or more required settings are absent
        """
        missing = [
            name for name in required
            if self._sources.get(name) in (None, "")
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}\n"
                "Please check your .env file and ensure all required variables are set."
            )

    def _convert_type(self, name: str, value: Any, reference: Any) -> Any:
        """
        Convert a raw source value to match the default's type.

        Environment variables are always strings; YAML values may already
        be typed.
        """
        if isinstance(reference, bool):
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in TRUTHY_VALUES
        if isinstance(reference, int):
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            try:
                return int(str(value).strip())
            except ValueError:
                raise ConfigurationError(
                    f"Setting {name} must be an integer, got {value!r}"
                ) from None
        return str(value)


def load_settings(**kwargs: Any) -> Settings:
    """Quick helper: build a ConfigLoader and resolve Settings."""
    return ConfigLoader(**kwargs).load()


def validate_environment(
    required: Iterable[str] = REQUIRED_SETTINGS, **kwargs: Any
) -> None:
    """Quick helper: validate required settings against explicit sources."""
    ConfigLoader(**kwargs).validate(required)


def environment_flags(settings: Settings) -> Dict[str, bool]:
    """Describe the run environment."""
    return {
        "is_development": settings.node_env == "development",
        "is_test": settings.node_env == "test",
        "is_production": settings.node_env == "production",
        "is_ci": settings.ci,
    }


__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "REQUIRED_SETTINGS",
    "Settings",
    "environment_flags",
    "load_settings",
    "validate_environment",
]
