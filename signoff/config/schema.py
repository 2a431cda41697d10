"""
Configuration schema definitions for signoff.

This module defines the configuration structure using dataclasses.
All configuration options are strongly typed with validation support.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class LogLevel(Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class NotificationChannelName(Enum):
    """Delivery channels for workflow notifications."""

    LOG = "log"
    WEBHOOK = "webhook"


@dataclass
class DatabaseConfig:
    """
    Database configuration options.

    Attributes:
        path: Path to the SQLite database file. Use ":memory:" for
            in-memory database (useful for testing).
        pool_size: Maximum number of connections in the connection pool.
            Higher values allow more concurrent database access.
        timeout_seconds: Timeout in seconds for acquiring the database
            write lock.
    """

    path: str = "signoff.db"
    pool_size: int = 5
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass
class WorkflowConfig:
    """
    Approval workflow engine options.

    Attributes:
        sweep_enabled: Run the deadline sweeper on a background timer
            while the server is up.
        sweep_interval_seconds: Seconds between two timer sweeps.
        clear_overdue_on_reset: Clear a step's overdue flag whenever a
            return or resubmission reopens it.
        notify_overdue_workflows_once: Report each overdue workflow once
            instead of on every sweep.
    """

    sweep_enabled: bool = True
    sweep_interval_seconds: float = 300.0
    clear_overdue_on_reset: bool = True
    notify_overdue_workflows_once: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be positive")


@dataclass
class NotificationConfig:
    """
    Notification delivery options.

    Attributes:
        enabled: Deliver notifications at all. When disabled, events are
            still produced but only logged at DEBUG.
        channel: Where notifications go: "log" or "webhook".
        webhook_url: Endpoint receiving JSON payloads for the webhook channel.
        webhook_timeout_seconds: Timeout for one webhook call.
        deadline_recipient_id: User that also receives every overdue
            notification, in addition to the approver or initiator.
        store_in_app: Keep a copy of every notification in the in-app inbox.
    """

    enabled: bool = True
    channel: str = "log"
    webhook_url: str = ""
    webhook_timeout_seconds: float = 10.0
    deadline_recipient_id: str = ""
    store_in_app: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        valid_channels = [c.value for c in NotificationChannelName]
        if self.channel.lower() not in valid_channels:
            raise ValueError(f"channel must be one of: {valid_channels}")
        if self.channel.lower() == NotificationChannelName.WEBHOOK.value and not self.webhook_url:
            raise ValueError("webhook_url is required for the webhook channel")
        if self.webhook_timeout_seconds <= 0:
            raise ValueError("webhook_timeout_seconds must be positive")


@dataclass
class LoggingConfig:
    """
    Logging configuration options.

    Attributes:
        level: Minimum log level to output. One of: DEBUG, INFO,
            WARNING, ERROR, CRITICAL.
        format: Output format, "text" or "json".
        file: Path to a log file. If empty, logs are written to stderr only.
    """

    level: str = "INFO"
    format: str = "text"
    file: str = ""

    def __post_init__(self) -> None:
        """Validate configuration values."""
        valid_levels = [level.value for level in LogLevel]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"level must be one of: {valid_levels}")
        if self.format.lower() not in ("text", "json"):
            raise ValueError("format must be one of: ['text', 'json']")


@dataclass
class ServerConfig:
    """
    HTTP server configuration options.

    Attributes:
        host: Host address to bind the server to.
        port: Port number to listen on.
        user_header: HTTP header carrying the acting user's id.
        cors_origins: List of allowed CORS origins. Empty list disables CORS.
        request_timeout_seconds: Maximum time to handle one request.
    """

    host: str = "127.0.0.1"
    port: int = 8080
    user_header: str = "X-User-ID"
    cors_origins: list[str] = field(default_factory=list)
    request_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.port < 1 or self.port > 65535:
            raise ValueError("port must be between 1 and 65535")
        if not self.user_header:
            raise ValueError("user_header must not be empty")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be positive")


@dataclass
class SignoffConfig:
    """
    Root configuration object for signoff.

    Attributes:
        environment: The environment profile name (development, staging,
            production, test).
        database: Database configuration options.
        workflow: Approval workflow engine options.
        notifications: Notification delivery options.
        logging: Logging configuration options.
        server: HTTP server configuration options.
        metadata: Additional custom configuration as key-value pairs.
    """

    environment: str = "development"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        valid_environments = ["development", "staging", "production", "test"]
        if self.environment.lower() not in valid_environments:
            raise ValueError(f"environment must be one of: {valid_environments}")

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary."""
        return {
            "environment": self.environment,
            "database": {
                "path": self.database.path,
                "pool_size": self.database.pool_size,
                "timeout_seconds": self.database.timeout_seconds,
            },
            "workflow": {
                "sweep_enabled": self.workflow.sweep_enabled,
                "sweep_interval_seconds": self.workflow.sweep_interval_seconds,
                "clear_overdue_on_reset": self.workflow.clear_overdue_on_reset,
                "notify_overdue_workflows_once": self.workflow.notify_overdue_workflows_once,
            },
            "notifications": {
                "enabled": self.notifications.enabled,
                "channel": self.notifications.channel,
                "webhook_url": self.notifications.webhook_url,
                "webhook_timeout_seconds": self.notifications.webhook_timeout_seconds,
                "deadline_recipient_id": self.notifications.deadline_recipient_id,
                "store_in_app": self.notifications.store_in_app,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "file": self.logging.file,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "user_header": self.server.user_header,
                "cors_origins": list(self.server.cors_origins),
                "request_timeout_seconds": self.server.request_timeout_seconds,
            },
            "metadata": self.metadata,
        }
