"""Tests for configuration management."""

from datetime import timedelta
from pathlib import Path

import pytest

from fork_sync.config import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    ForkSyncConfig,
    ValidationError,
    _validate_url,
    ensure_directories,
    get_config,
    load_config,
    parse_duration,
    set_config,
    validate_config,
)
from fork_sync.exceptions import ConfigurationError

ENV_VARS = [
    "DATABASE_URL",
    "REDIS_URL",
    "REDIS_QUEUE_NAME",
    "WEBHOOK_SYNC_DURATION",
    "FORK_SYNC_CONFIG_DIR",
    "FORK_SYNC_REDIS_URL",
    "FORK_SYNC_STALENESS",
    "FORK_SYNC_INTERVAL_SECONDS",
    "FORK_SYNC_GITHUB_TOKEN",
    "FORK_SYNC_SINGLE_FLIGHT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration variables from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Test default configuration values."""

    def test_default_config_location(self):
        assert DEFAULT_CONFIG_DIR == Path.home() / ".config" / "fork-sync"
        assert DEFAULT_CONFIG_FILE == "config.toml"

    def test_scheduler_defaults(self):
        config = ForkSyncConfig()

        assert config.scheduler.interval_seconds == 30
        assert config.scheduler.staleness_delta == timedelta(minutes=10)
        assert config.scheduler.single_flight is True
        assert config.scheduler.preserve_sha_on_missing_upstream is False

    def test_queue_and_status_defaults(self):
        config = ForkSyncConfig()

        assert config.queue.name == "webhookQueue"
        assert config.queue.namespace == "rsmq"
        assert config.status.ttl_seconds == 86400
        assert config.status.key_prefix == "webhook:status"

    def test_database_url_defaults_to_data_dir(self, tmp_path):
        config = ForkSyncConfig(data_dir=tmp_path)

        assert config.database_url == f"sqlite:///{tmp_path}/fork-sync.db"


class TestParseDuration:
    """Test duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("10 minutes", timedelta(minutes=10)),
            ("1 minute", timedelta(minutes=1)),
            ("30s", timedelta(seconds=30)),
            ("2h", timedelta(hours=2)),
            ("1 day", timedelta(days=1)),
            ("3 weeks", timedelta(weeks=3)),
            ("1 hour 30 minutes", timedelta(hours=1, minutes=30)),
            ("1h30m", timedelta(minutes=90)),
            ("2 days 4 hrs", timedelta(days=2, hours=4)),
        ],
    )
    def test_valid_durations(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "minutes", "10 fortnights", "-5 minutes", "500ms", "1 hour 2 months"])
    def test_invalid_durations(self, value):
        with pytest.raises(ConfigurationError):
            parse_duration(value)


class TestLoadConfig:
    """Test loading from file and environment."""

    def test_missing_file_uses_defaults(self, tmp_path, clean_env):
        config = load_config(tmp_path / "missing.toml")

        assert config.scheduler.interval_seconds == 30

    def test_load_from_toml(self, tmp_path, clean_env):
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            'database_url = "postgresql://db/backstroke"\n'
            "\n"
            "[scheduler]\n"
            "interval_seconds = 60\n"
            'staleness = "5 minutes"\n'
            "\n"
            "[queue]\n"
            'name = "jobs"\n'
        )

        config = load_config(config_file)

        assert config.database_url == "postgresql://db/backstroke"
        assert config.scheduler.interval_seconds == 60
        assert config.scheduler.staleness_delta == timedelta(minutes=5)
        assert config.queue.name == "jobs"

    def test_invalid_toml_raises(self, tmp_path, clean_env):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[scheduler\n")

        with pytest.raises(ConfigurationError):
            load_config(config_file)

    def test_legacy_environment_variables(self, tmp_path, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql://legacy/db")
        clean_env.setenv("REDIS_URL", "redis://legacy:6379/1")
        clean_env.setenv("REDIS_QUEUE_NAME", "legacyQueue")
        clean_env.setenv("WEBHOOK_SYNC_DURATION", "1 hour")

        config = load_config(tmp_path / "missing.toml")

        assert config.database_url == "postgresql://legacy/db"
        assert config.queue.redis_url == "redis://legacy:6379/1"
        assert config.queue.name == "legacyQueue"
        assert config.scheduler.staleness_delta == timedelta(hours=1)

    def test_prefixed_variables_win_over_legacy(self, tmp_path, clean_env):
        clean_env.setenv("REDIS_URL", "redis://legacy:6379/1")
        clean_env.setenv("FORK_SYNC_REDIS_URL", "redis://new:6379/2")
        clean_env.setenv("FORK_SYNC_SINGLE_FLIGHT", "false")

        config = load_config(tmp_path / "missing.toml")

        assert config.queue.redis_url == "redis://new:6379/2"
        assert config.scheduler.single_flight is False

    def test_environment_overrides_file(self, tmp_path, clean_env):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[scheduler]\ninterval_seconds = 60\n")
        clean_env.setenv("FORK_SYNC_INTERVAL_SECONDS", "15")

        config = load_config(config_file)

        assert config.scheduler.interval_seconds == 15

    def test_invalid_environment_value(self, tmp_path, clean_env):
        clean_env.setenv("FORK_SYNC_INTERVAL_SECONDS", "often")

        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "missing.toml")


class TestValidateConfig:
    """Test configuration validation."""

    def test_valid_config_has_no_errors(self):
        config = ForkSyncConfig()
        config.github.token = "ghp_x"

        assert validate_config(config) == []

    def test_missing_token_is_warning(self):
        errors = validate_config(ForkSyncConfig())

        assert [e.field for e in errors] == ["github.token"]
        assert errors[0].severity == "warning"

    def test_invalid_values(self):
        config = ForkSyncConfig()
        config.github.token = "ghp_x"
        config.scheduler.interval_seconds = 0
        config.scheduler.staleness = "soon"
        config.queue.redis_url = "http://not-redis"
        config.status.ttl_seconds = -1

        fields = {e.field for e in validate_config(config) if e.severity == "error"}

        assert fields == {
            "scheduler.interval_seconds",
            "scheduler.staleness",
            "queue.redis_url",
            "status.ttl_seconds",
        }

    def test_short_staleness_warns(self):
        config = ForkSyncConfig()
        config.github.token = "ghp_x"
        config.scheduler.staleness = "10 seconds"

        errors = validate_config(config)

        assert [(e.field, e.severity) for e in errors] == [("scheduler.staleness", "warning")]

    def test_validation_error_str(self):
        error = ValidationError(field="queue.name", message="empty", severity="error")

        assert str(error) == "[ERROR] queue.name: empty"

    def test_validate_url(self):
        assert _validate_url("https://api.github.com")
        assert _validate_url("redis://localhost:6379/0", ("redis",))
        assert not _validate_url("localhost")


class TestGlobalConfig:
    """Test the cached global configuration."""

    def test_set_and_get(self):
        config = ForkSyncConfig()
        set_config(config)

        assert get_config() is config

    def test_ensure_directories(self, tmp_path):
        config = ForkSyncConfig(config_dir=tmp_path / "cfg", data_dir=tmp_path / "data")

        ensure_directories(config)

        assert config.config_dir.is_dir()
        assert config.data_dir.is_dir()
