"""
Tests for signoff configuration loading.
"""

from pathlib import Path

import pytest

from signoff.config.defaults import get_default_config, get_test_config
from signoff.config.loader import ConfigLoader, load_config
from signoff.config.schema import (
    NotificationConfig,
    ServerConfig,
    SignoffConfig,
    WorkflowConfig,
)
from signoff.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test without SIGNOFF_ variables and outside any config dir."""
    import os

    for name in list(os.environ):
        if name.startswith("SIGNOFF_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "signoff.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """Tests for the built-in profiles."""

    def test_default_config(self) -> None:
        """Test the default values."""
        config = get_default_config()

        assert config.environment == "development"
        assert config.database.path == "signoff.db"
        assert config.workflow.sweep_enabled is True
        assert config.workflow.sweep_interval_seconds == 300.0
        assert config.notifications.channel == "log"
        assert config.server.user_header == "X-User-ID"

    def test_test_config(self) -> None:
        """Test the profile used by the test suite."""
        config = get_test_config()

        assert config.environment == "test"
        assert config.database.path == ":memory:"
        assert config.workflow.sweep_enabled is False

    def test_environment_profile(self) -> None:
        """Test loading a named profile without a file."""
        config = ConfigLoader().load(environment="production", search=False)

        assert config.is_production()
        assert config.logging.format == "json"

    def test_to_dict(self) -> None:
        """Test that to_dict covers every section."""
        data = get_default_config().to_dict()

        assert set(data) >= {"environment", "database", "workflow", "notifications", "logging", "server"}
        assert data["server"]["port"] == 8080
        assert data["workflow"]["notify_overdue_workflows_once"] is True


class TestFileLoading:
    """Tests for YAML files."""

    def test_load_file(self, tmp_path: Path) -> None:
        """Test that file values override the defaults."""
        path = write_config(
            tmp_path,
            """
environment: staging
database:
  path: approvals.db
workflow:
  sweep_interval_seconds: 30
notifications:
  deadline_recipient_id: u-admin
server:
  port: 9000
  cors_origins: "https://a.example, https://b.example"
""",
        )

        loader = ConfigLoader()
        config = loader.load(path)

        assert loader.source == path
        assert config.environment == "staging"
        assert config.database.path == "approvals.db"
        assert config.database.pool_size == 5
        assert config.workflow.sweep_interval_seconds == 30.0
        assert config.notifications.deadline_recipient_id == "u-admin"
        assert config.server.port == 9000
        assert config.server.cors_origins == ["https://a.example", "https://b.example"]

    def test_search_current_directory(self, tmp_path: Path) -> None:
        """Test that signoff.yaml in the working directory is found."""
        write_config(tmp_path, "database:\n  path: found.db\n")

        config = load_config()

        assert config.database.path == "found.db"

    def test_search_disabled(self, tmp_path: Path) -> None:
        """Test that search=False ignores files in the working directory."""
        write_config(tmp_path, "database:\n  path: found.db\n")

        config = load_config(search=False)

        assert config.database.path == "signoff.db"

    def test_empty_file(self, tmp_path: Path) -> None:
        """Test that an empty file yields the defaults."""
        path = write_config(tmp_path, "")

        assert load_config(path).database.path == "signoff.db"

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that an explicit missing file is an error."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "nope.yaml")

        assert "Configuration file not found" in exc_info.value.message

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that malformed YAML is an error."""
        path = write_config(tmp_path, "database: [unclosed\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert "Invalid YAML" in exc_info.value.message

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        """Test that a list at the top level is refused."""
        path = write_config(tmp_path, "- one\n- two\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_section_must_be_mapping(self, tmp_path: Path) -> None:
        """Test that a scalar section is refused."""
        path = write_config(tmp_path, "server: 8080\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert exc_info.value.message == "Configuration section 'server' must be a mapping"

    def test_invalid_section_value(self, tmp_path: Path) -> None:
        """Test that an invalid value inside a section is refused."""
        path = write_config(tmp_path, "server:\n  port: 70000\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert "port must be between 1 and 65535" in exc_info.value.message

    def test_webhook_needs_url(self, tmp_path: Path) -> None:
        """Test that the webhook channel requires a URL."""
        path = write_config(tmp_path, "notifications:\n  channel: webhook\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert "webhook_url is required" in exc_info.value.message


class TestVariableSubstitution:
    """Tests for ${VAR} references in files."""

    def test_substitutes_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a set variable is expanded."""
        monkeypatch.setenv("APPROVALS_DB", "/data/approvals.db")
        path = write_config(tmp_path, "database:\n  path: ${APPROVALS_DB}\n")

        assert load_config(path).database.path == "/data/approvals.db"

    def test_default_value(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the default is used when the variable is unset."""
        monkeypatch.delenv("APPROVALS_DB", raising=False)
        path = write_config(tmp_path, "database:\n  path: ${APPROVALS_DB:-fallback.db}\n")

        assert load_config(path).database.path == "fallback.db"

    def test_missing_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that an unset variable without default is an error."""
        monkeypatch.delenv("APPROVALS_DB", raising=False)
        path = write_config(tmp_path, "database:\n  path: ${APPROVALS_DB}\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert exc_info.value.message == "Environment variable APPROVALS_DB is not set"


class TestEnvironmentOverrides:
    """Tests for SIGNOFF_ environment variables."""

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables win over defaults."""
        monkeypatch.setenv("SIGNOFF_DATABASE_PATH", "env.db")
        monkeypatch.setenv("SIGNOFF_SERVER_PORT", "9100")
        monkeypatch.setenv("SIGNOFF_WORKFLOW_SWEEP_ENABLED", "no")
        monkeypatch.setenv("SIGNOFF_NOTIFICATIONS_DEADLINE_RECIPIENT", "u-admin")
        monkeypatch.setenv("SIGNOFF_SERVER_CORS_ORIGINS", "https://a.example,https://b.example")

        config = load_config(search=False)

        assert config.database.path == "env.db"
        assert config.server.port == 9100
        assert config.workflow.sweep_enabled is False
        assert config.notifications.deadline_recipient_id == "u-admin"
        assert config.server.cors_origins == ["https://a.example", "https://b.example"]

    def test_override_beats_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables win over file values."""
        monkeypatch.setenv("SIGNOFF_DATABASE_PATH", "env.db")
        path = write_config(tmp_path, "database:\n  path: file.db\n")

        assert load_config(path).database.path == "env.db"

    def test_invalid_conversion(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that an unconvertible value is an error."""
        monkeypatch.setenv("SIGNOFF_SERVER_PORT", "eighty")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(search=False)

        assert "Invalid value for SIGNOFF_SERVER_PORT" in exc_info.value.message

    def test_override_is_validated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that overridden values are validated after conversion."""
        monkeypatch.setenv("SIGNOFF_DATABASE_POOL_SIZE", "0")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(search=False)

        assert exc_info.value.message.startswith("Configuration validation failed")


class TestSchema:
    """Tests for section validation."""

    def test_invalid_port(self) -> None:
        """Test the port range."""
        with pytest.raises(ValueError):
            ServerConfig(port=0)

    def test_invalid_interval(self) -> None:
        """Test that the sweep interval must be positive."""
        with pytest.raises(ValueError):
            WorkflowConfig(sweep_interval_seconds=0)

    def test_invalid_channel(self) -> None:
        """Test that only known channels are accepted."""
        with pytest.raises(ValueError):
            NotificationConfig(channel="email")

    def test_invalid_environment(self) -> None:
        """Test that only known environments are accepted."""
        with pytest.raises(ValueError):
            SignoffConfig(environment="qa")

    def test_unloaded_config(self) -> None:
        """Test that reading config before load is an error."""
        with pytest.raises(ConfigurationError):
            ConfigLoader().config


class TestLogging:
    """Tests for logging setup."""

    def test_json_lines(self) -> None:
        """Test that json format writes one JSON object per record."""
        import io
        import json

        from signoff.config.schema import LoggingConfig
        from signoff.logging_config import configure_logging

        stream = io.StringIO()
        logger = configure_logging(LoggingConfig(format="json"), stream=stream)
        logger.getChild("workflows").info("step approved", extra={"step_id": "s1"})

        record = json.loads(stream.getvalue().strip())
        assert record["logger"] == "signoff.workflows"
        assert record["message"] == "step approved"
        assert record["step_id"] == "s1"

    def test_reconfigure_replaces_handler(self) -> None:
        """Test that a second call does not duplicate handlers."""
        import io

        from signoff.config.schema import LoggingConfig
        from signoff.logging_config import configure_logging

        configure_logging(LoggingConfig(), stream=io.StringIO())
        logger = configure_logging(LoggingConfig(level="DEBUG"), stream=io.StringIO())

        owned = [h for h in logger.handlers if getattr(h, "_signoff_handler", False)]
        assert len(owned) == 1
        assert logger.level == 10
