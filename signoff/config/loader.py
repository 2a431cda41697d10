"""
Configuration loader for signoff.

This module provides the ConfigLoader class for loading configuration
from YAML files with environment variable overrides.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from signoff.config.defaults import (
    get_default_config,
    get_development_config,
    get_production_config,
    get_test_config,
)
from signoff.config.schema import (
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    ServerConfig,
    SignoffConfig,
    WorkflowConfig,
)
from signoff.exceptions import ConfigurationError

# ${VAR} or ${VAR:-default}
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class ConfigLoader:
    """
    Loads and validates signoff configuration.

    The ConfigLoader supports loading configuration from:
    1. Environment presets (development, production, test)
    2. YAML configuration files, with ``${VAR}`` references expanded
    3. Environment variables (SIGNOFF_ prefix)

    Configuration sources are applied in order, with later sources
    overriding earlier ones.

    Example:
        Loading configuration::

            loader = ConfigLoader()

            # Load from file with env overrides
            config = loader.load("config/signoff.yaml")

            # Load with specific environment profile
            config = loader.load("config/signoff.yaml", environment="production")
    """

    ENV_PREFIX = "SIGNOFF_"

    SEARCH_PATHS = (
        "signoff.yaml",
        "config/signoff.yaml",
        "~/.signoff/config.yaml",
    )

    def __init__(self) -> None:
        """Initialize the configuration loader."""
        self._config: SignoffConfig | None = None
        self._source: Path | None = None

    def load(
        self,
        config_path: str | Path | None = None,
        environment: str | None = None,
        search: bool = True,
    ) -> SignoffConfig:
        """
        Load configuration from file and environment.

        Args:
            config_path: Path to a YAML configuration file. If None and
                ``search`` is set, the first existing file of
                SEARCH_PATHS is used.
            environment: Environment profile to use. Overrides any
                environment setting in the config file.
            search: Look for a configuration file when none is given.

        Returns:
            A validated SignoffConfig object.

        Raises:
            ConfigurationError: If configuration is invalid or file not found.
        """
        if environment:
            config = self._get_environment_defaults(environment)
        else:
            config = get_default_config()

        if config_path is None and search:
            config_path = self.find_config_file()

        if config_path:
            self._source = Path(config_path)
            file_config = self._substitute_env(self._load_yaml(config_path))
            config = self._merge_config(config, file_config)

        config = self._apply_env_overrides(config)

        if environment:
            config.environment = environment

        self._validate(config)

        self._config = config
        return config

    def find_config_file(self) -> Path | None:
        """Return the first existing file of SEARCH_PATHS, if any."""
        for candidate in self.SEARCH_PATHS:
            path = Path(candidate).expanduser()
            if path.is_file():
                return path
        return None

    def _get_environment_defaults(self, environment: str) -> SignoffConfig:
        """Get default configuration for an environment."""
        env_lower = environment.lower()
        if env_lower == "production":
            return get_production_config()
        elif env_lower == "development":
            return get_development_config()
        elif env_lower == "test":
            return get_test_config()
        else:
            config = get_default_config()
            config.environment = environment
            return config

    def _load_yaml(self, path: str | Path) -> dict[str, Any]:
        """
        Load configuration from a YAML file.

        Raises:
            ConfigurationError: If file not found or invalid YAML.
        """
        path = Path(path)

        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                details={"path": str(path)},
            )

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}",
                details={"path": str(path)},
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read configuration file: {e}",
                details={"path": str(path)},
            ) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping at the top level",
                details={"path": str(path)},
            )
        return data

    def _substitute_env(self, data: Any) -> Any:
        """Recursively expand ``${VAR}`` and ``${VAR:-default}`` in strings."""
        if isinstance(data, str):
            return self._substitute_string(data)
        elif isinstance(data, dict):
            return {key: self._substitute_env(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [self._substitute_env(item) for item in data]
        return data

    def _substitute_string(self, text: str) -> str:
        def replace_var(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            value = os.environ.get(name)
            if value is not None and value != "":
                return value
            if default is not None:
                return default
            raise ConfigurationError(
                f"Environment variable {name} is not set",
                details={"variable": name},
            )

        return _ENV_REFERENCE.sub(replace_var, text)

    def _merge_config(
        self,
        base: SignoffConfig,
        override: dict[str, Any],
    ) -> SignoffConfig:
        """
        Merge file configuration into base configuration.

        Args:
            base: Base configuration object.
            override: Dictionary of override values.

        Returns:
            Merged configuration object.

        Raises:
            ConfigurationError: If a section has an invalid value.
        """
        if not override:
            return base

        if "environment" in override:
            base.environment = str(override["environment"])

        if "metadata" in override and isinstance(override["metadata"], dict):
            base.metadata.update(override["metadata"])

        sections = {
            "database": self._merge_database,
            "workflow": self._merge_workflow,
            "notifications": self._merge_notifications,
            "logging": self._merge_logging,
            "server": self._merge_server,
        }
        for name, merge in sections.items():
            if name not in override:
                continue
            section = override[name] or {}
            if not isinstance(section, dict):
                raise ConfigurationError(
                    f"Configuration section '{name}' must be a mapping",
                    details={"section": name},
                )
            try:
                setattr(base, name, merge(getattr(base, name), section))
            except (ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Invalid {name} configuration: {e}",
                    details={"section": name},
                ) from e

        return base

    def _merge_database(
        self,
        base: DatabaseConfig,
        override: dict[str, Any],
    ) -> DatabaseConfig:
        """Merge database configuration."""
        return DatabaseConfig(
            path=str(override.get("path", base.path)),
            pool_size=int(override.get("pool_size", base.pool_size)),
            timeout_seconds=float(override.get("timeout_seconds", base.timeout_seconds)),
        )

    def _merge_workflow(
        self,
        base: WorkflowConfig,
        override: dict[str, Any],
    ) -> WorkflowConfig:
        """Merge workflow engine configuration."""
        return WorkflowConfig(
            sweep_enabled=self._coerce_bool(override.get("sweep_enabled", base.sweep_enabled)),
            sweep_interval_seconds=float(
                override.get("sweep_interval_seconds", base.sweep_interval_seconds)
            ),
            clear_overdue_on_reset=self._coerce_bool(
                override.get("clear_overdue_on_reset", base.clear_overdue_on_reset)
            ),
            notify_overdue_workflows_once=self._coerce_bool(
                override.get(
                    "notify_overdue_workflows_once", base.notify_overdue_workflows_once
                )
            ),
        )

    def _merge_notifications(
        self,
        base: NotificationConfig,
        override: dict[str, Any],
    ) -> NotificationConfig:
        """Merge notification configuration."""
        return NotificationConfig(
            enabled=self._coerce_bool(override.get("enabled", base.enabled)),
            channel=str(override.get("channel", base.channel)),
            webhook_url=str(override.get("webhook_url", base.webhook_url) or ""),
            webhook_timeout_seconds=float(
                override.get("webhook_timeout_seconds", base.webhook_timeout_seconds)
            ),
            deadline_recipient_id=str(
                override.get("deadline_recipient_id", base.deadline_recipient_id) or ""
            ),
            store_in_app=self._coerce_bool(override.get("store_in_app", base.store_in_app)),
        )

    def _merge_logging(
        self,
        base: LoggingConfig,
        override: dict[str, Any],
    ) -> LoggingConfig:
        """Merge logging configuration."""
        return LoggingConfig(
            level=str(override.get("level", base.level)),
            format=str(override.get("format", base.format)),
            file=str(override.get("file", base.file) or ""),
        )

    def _merge_server(
        self,
        base: ServerConfig,
        override: dict[str, Any],
    ) -> ServerConfig:
        """Merge server configuration."""
        origins = override.get("cors_origins", base.cors_origins)
        if isinstance(origins, str):
            origins = self._parse_list(origins)
        return ServerConfig(
            host=str(override.get("host", base.host)),
            port=int(override.get("port", base.port)),
            user_header=str(override.get("user_header", base.user_header)),
            cors_origins=list(origins or []),
            request_timeout_seconds=float(
                override.get("request_timeout_seconds", base.request_timeout_seconds)
            ),
        )

    def _apply_env_overrides(self, config: SignoffConfig) -> SignoffConfig:
        """
        Apply environment variable overrides to configuration.

        Environment variables use the format:
        SIGNOFF_SECTION_OPTION=value

        For example:
        - SIGNOFF_DATABASE_PATH=approvals.db
        - SIGNOFF_WORKFLOW_SWEEP_INTERVAL=60
        - SIGNOFF_NOTIFICATIONS_DEADLINE_RECIPIENT=u-admin

        Args:
            config: Configuration object to update.

        Returns:
            Updated configuration object.

        Raises:
            ConfigurationError: If a variable cannot be converted.
        """
        env_mapping = {
            # Top-level
            "SIGNOFF_ENVIRONMENT": ("environment", str),
            # Database
            "SIGNOFF_DATABASE_PATH": ("database.path", str),
            "SIGNOFF_DATABASE_POOL_SIZE": ("database.pool_size", int),
            "SIGNOFF_DATABASE_TIMEOUT_SECONDS": ("database.timeout_seconds", float),
            # Workflow
            "SIGNOFF_WORKFLOW_SWEEP_ENABLED": ("workflow.sweep_enabled", self._parse_bool),
            "SIGNOFF_WORKFLOW_SWEEP_INTERVAL": ("workflow.sweep_interval_seconds", float),
            "SIGNOFF_WORKFLOW_CLEAR_OVERDUE_ON_RESET": (
                "workflow.clear_overdue_on_reset",
                self._parse_bool,
            ),
            "SIGNOFF_WORKFLOW_NOTIFY_OVERDUE_ONCE": (
                "workflow.notify_overdue_workflows_once",
                self._parse_bool,
            ),
            # Notifications
            "SIGNOFF_NOTIFICATIONS_ENABLED": ("notifications.enabled", self._parse_bool),
            "SIGNOFF_NOTIFICATIONS_CHANNEL": ("notifications.channel", str),
            "SIGNOFF_NOTIFICATIONS_WEBHOOK_URL": ("notifications.webhook_url", str),
            "SIGNOFF_NOTIFICATIONS_DEADLINE_RECIPIENT": (
                "notifications.deadline_recipient_id",
                str,
            ),
            "SIGNOFF_NOTIFICATIONS_STORE_IN_APP": (
                "notifications.store_in_app",
                self._parse_bool,
            ),
            # Logging
            "SIGNOFF_LOGGING_LEVEL": ("logging.level", str),
            "SIGNOFF_LOGGING_FORMAT": ("logging.format", str),
            "SIGNOFF_LOGGING_FILE": ("logging.file", str),
            # Server
            "SIGNOFF_SERVER_HOST": ("server.host", str),
            "SIGNOFF_SERVER_PORT": ("server.port", int),
            "SIGNOFF_SERVER_USER_HEADER": ("server.user_header", str),
            "SIGNOFF_SERVER_CORS_ORIGINS": ("server.cors_origins", self._parse_list),
        }

        for env_var, (path, converter) in env_mapping.items():
            value = os.environ.get(env_var)
            if value is not None:
                try:
                    converted = converter(value)
                    self._set_nested_attr(config, path, converted)
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(
                        f"Invalid value for {env_var}: {e}",
                        details={"env_var": env_var, "value": value},
                    ) from e

        return config

    def _set_nested_attr(self, obj: Any, path: str, value: Any) -> None:
        """Set a nested attribute using dot notation."""
        parts = path.split(".")
        for part in parts[:-1]:
            obj = getattr(obj, part)
        setattr(obj, parts[-1], value)

    def _parse_bool(self, value: str) -> bool:
        """Parse a string to boolean."""
        if value.lower() in ("true", "1", "yes", "on"):
            return True
        elif value.lower() in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"Cannot parse '{value}' as boolean")

    def _coerce_bool(self, value: Any) -> bool:
        if isinstance(value, str):
            return self._parse_bool(value)
        return bool(value)

    def _parse_list(self, value: str) -> list[str]:
        """Parse a comma separated string into a list."""
        return [item.strip() for item in value.split(",") if item.strip()]

    def _validate(self, config: SignoffConfig) -> None:
        """
        Validate the complete configuration.

        Environment overrides bypass the dataclass constructors, so each
        section is rebuilt here to run its validation again.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        errors: list[str] = []

        checks = [
            ("database", DatabaseConfig, config.database),
            ("workflow", WorkflowConfig, config.workflow),
            ("notifications", NotificationConfig, config.notifications),
            ("logging", LoggingConfig, config.logging),
            ("server", ServerConfig, config.server),
        ]
        for name, section_type, section in checks:
            try:
                section_type(**vars(section))
            except (ValueError, TypeError) as e:
                errors.append(f"{name}: {e}")

        try:
            SignoffConfig(environment=config.environment)
        except ValueError as e:
            errors.append(f"environment: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                details={"errors": errors},
            )

    @property
    def source(self) -> Path | None:
        """The configuration file the last load read, if any."""
        return self._source

    @property
    def config(self) -> SignoffConfig:
        """Get the currently loaded configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded. Call load() first.")
        return self._config


def load_config(
    config_path: str | Path | None = None,
    environment: str | None = None,
    search: bool = True,
) -> SignoffConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to a YAML configuration file.
        environment: Environment profile to use.
        search: Look for a configuration file when none is given.

    Returns:
        A validated SignoffConfig object.
    """
    loader = ConfigLoader()
    return loader.load(config_path, environment, search)
