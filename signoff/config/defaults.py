"""
Default configuration values for signoff.

The defaults favour a single-node deployment: a local SQLite file,
notifications written to the log and kept in the in-app inbox, and a
deadline sweep every five minutes.

These defaults can be overridden by YAML configuration files and/or
environment variables.
"""

from signoff.config.schema import (
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    ServerConfig,
    SignoffConfig,
    WorkflowConfig,
)

# Default database configuration
DEFAULT_DATABASE = DatabaseConfig(
    path="signoff.db",
    pool_size=5,
    timeout_seconds=30.0,
)

# Default workflow engine configuration
DEFAULT_WORKFLOW = WorkflowConfig(
    sweep_enabled=True,
    sweep_interval_seconds=300.0,  # every 5 minutes
    clear_overdue_on_reset=True,
    notify_overdue_workflows_once=True,
)

# Default notification configuration
DEFAULT_NOTIFICATIONS = NotificationConfig(
    enabled=True,
    channel="log",
    webhook_url="",
    webhook_timeout_seconds=10.0,
    deadline_recipient_id="",  # no extra overdue recipient
    store_in_app=True,
)

# Default logging configuration
DEFAULT_LOGGING = LoggingConfig(
    level="INFO",
    format="text",
    file="",  # stderr only by default
)

# Default server configuration
DEFAULT_SERVER = ServerConfig(
    host="127.0.0.1",  # Localhost only by default
    port=8080,
    user_header="X-User-ID",
    cors_origins=[],  # No CORS by default
    request_timeout_seconds=30.0,
)


def get_default_config() -> SignoffConfig:
    """
    Get the default configuration.

    Returns:
        SignoffConfig with default values.
    """
    return SignoffConfig(
        environment="development",
        database=DatabaseConfig(
            path=DEFAULT_DATABASE.path,
            pool_size=DEFAULT_DATABASE.pool_size,
            timeout_seconds=DEFAULT_DATABASE.timeout_seconds,
        ),
        workflow=WorkflowConfig(
            sweep_enabled=DEFAULT_WORKFLOW.sweep_enabled,
            sweep_interval_seconds=DEFAULT_WORKFLOW.sweep_interval_seconds,
            clear_overdue_on_reset=DEFAULT_WORKFLOW.clear_overdue_on_reset,
            notify_overdue_workflows_once=DEFAULT_WORKFLOW.notify_overdue_workflows_once,
        ),
        notifications=NotificationConfig(
            enabled=DEFAULT_NOTIFICATIONS.enabled,
            channel=DEFAULT_NOTIFICATIONS.channel,
            webhook_url=DEFAULT_NOTIFICATIONS.webhook_url,
            webhook_timeout_seconds=DEFAULT_NOTIFICATIONS.webhook_timeout_seconds,
            deadline_recipient_id=DEFAULT_NOTIFICATIONS.deadline_recipient_id,
            store_in_app=DEFAULT_NOTIFICATIONS.store_in_app,
        ),
        logging=LoggingConfig(
            level=DEFAULT_LOGGING.level,
            format=DEFAULT_LOGGING.format,
            file=DEFAULT_LOGGING.file,
        ),
        server=ServerConfig(
            host=DEFAULT_SERVER.host,
            port=DEFAULT_SERVER.port,
            user_header=DEFAULT_SERVER.user_header,
            cors_origins=DEFAULT_SERVER.cors_origins.copy(),
            request_timeout_seconds=DEFAULT_SERVER.request_timeout_seconds,
        ),
        metadata={},
    )


def get_production_config() -> SignoffConfig:
    """
    Get a production-ready configuration.

    Returns:
        SignoffConfig with warning-level JSON logging.
    """
    config = get_default_config()
    config.environment = "production"
    config.logging.level = "WARNING"
    config.logging.format = "json"
    return config


def get_development_config() -> SignoffConfig:
    """
    Get a development configuration.

    Returns:
        SignoffConfig with verbose logging and a separate database file.
    """
    config = get_default_config()
    config.environment = "development"
    config.logging.level = "DEBUG"
    config.database.path = "signoff_dev.db"
    config.workflow.sweep_interval_seconds = 60.0
    return config


def get_test_config() -> SignoffConfig:
    """
    Get a test configuration.

    Returns a SignoffConfig suitable for running tests, using an
    in-memory database and no background sweeper.

    Returns:
        SignoffConfig with test settings.
    """
    config = get_default_config()
    config.environment = "test"
    config.database.path = ":memory:"
    config.logging.level = "DEBUG"
    config.workflow.sweep_enabled = False
    return config
