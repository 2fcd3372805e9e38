"""
fork-sync Configuration Management.

Handles loading and validating configuration from various sources:
- Default values
- Configuration file (TOML)
- Environment variables (``FORK_SYNC_*`` plus the legacy names used by
  existing deployments: ``DATABASE_URL``, ``REDIS_URL``, ``REDIS_QUEUE_NAME``
  and ``WEBHOOK_SYNC_DURATION``)
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, List, Optional

from fork_sync.exceptions import ConfigurationError


# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "fork-sync"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "fork-sync"

# Legacy environment variables understood without a prefix
LEGACY_ENV_DATABASE_URL = "DATABASE_URL"
LEGACY_ENV_REDIS_URL = "REDIS_URL"
LEGACY_ENV_QUEUE_NAME = "REDIS_QUEUE_NAME"
LEGACY_ENV_STALENESS = "WEBHOOK_SYNC_DURATION"

ONE_HOUR_IN_SECONDS = 60 * 60

_DURATION_UNITS = {
    "s": "seconds",
    "sec": "seconds",
    "second": "seconds",
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "h": "hours",
    "hr": "hours",
    "hour": "hours",
    "d": "days",
    "day": "days",
    "w": "weeks",
    "week": "weeks",
}

_DURATION_PATTERN = re.compile(r"^\s*(?:\d+\s*[a-zA-Z]+\s*)+$")
_DURATION_PART = re.compile(r"(\d+)\s*([a-zA-Z]+)")


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class SchedulerConfig:
    """Configuration for the change detection cycle."""

    # Seconds between two ticks
    interval_seconds: int = 30

    # Links checked more recently than this are not candidates
    staleness: str = "10 minutes"

    # Skip a tick while the previous cycle is still running
    single_flight: bool = True

    # Upper bound for a single upstream lookup, in seconds
    fetch_timeout: float = 30.0

    # How long the daemon waits for in-flight cycles on shutdown
    shutdown_timeout: float = 30.0

    # Keep the last known SHA when the upstream branch can no longer be resolved
    preserve_sha_on_missing_upstream: bool = False

    @property
    def staleness_delta(self) -> timedelta:
        """Staleness threshold as a timedelta."""
        return parse_duration(self.staleness)


@dataclass
class QueueConfig:
    """Configuration for the Redis-backed job queue."""

    redis_url: str = "redis://localhost:6379/0"
    name: str = "webhookQueue"
    namespace: str = "rsmq"


@dataclass
class StatusConfig:
    """Configuration for the status store."""

    ttl_seconds: int = 24 * ONE_HOUR_IN_SECONDS
    key_prefix: str = "webhook:status"


@dataclass
class GitHubConfig:
    """Configuration for upstream branch lookups."""

    api_url: str = "https://api.github.com"
    # Used when a link owner has no access token of their own
    token: Optional[str] = None
    timeout: float = 10.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    file: Optional[Path] = None


@dataclass
class ForkSyncConfig:
    """Main configuration container for fork-sync."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database
    database_url: str = ""

    def __post_init__(self):
        """Initialize derived values."""
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/fork-sync.db"


def parse_duration(value: str) -> timedelta:
    """
    Parse a human readable duration such as ``"10 minutes"`` or ``"2h"``.

    Several parts are summed, so Postgres-style intervals like
    ``"1 hour 30 minutes"`` work too. Months, years and ``HH:MM:SS``
    forms are not supported.

    Args:
        value: Duration string

    Returns:
        The duration as a timedelta

    Raises:
        ConfigurationError: If the string cannot be parsed
    """
    if not _DURATION_PATTERN.match(value or ""):
        raise ConfigurationError(
            f"Invalid duration: {value!r}",
            details={"expected": "<number> <unit>, e.g. '10 minutes'"},
        )

    total = timedelta()
    for amount, unit in _DURATION_PART.findall(value):
        unit = unit.lower()
        if unit not in _DURATION_UNITS and len(unit) > 2 and unit.endswith("s"):
            unit = unit[:-1]
        if unit not in _DURATION_UNITS:
            raise ConfigurationError(f"Unknown duration unit in {value!r}: {unit}")
        total += timedelta(**{_DURATION_UNITS[unit]: int(amount)})

    return total


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "FORK_SYNC_"
) -> ForkSyncConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/fork-sync/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = ForkSyncConfig()

    if config_path is None:
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)

    try:
        config = _load_from_env(config, env_prefix)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value in environment: {e}") from e

    return config


def _apply_section(target: Any, values: dict[str, Any]) -> None:
    for key, value in values.items():
        if hasattr(target, key):
            setattr(target, key, value)


def _load_from_file(path: Path, config: ForkSyncConfig) -> ForkSyncConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(
            f"Failed to load config from {path}: {e}",
            details={"path": str(path)},
        ) from e

    for section in ("scheduler", "queue", "status", "github", "logging"):
        if section in data:
            _apply_section(getattr(config, section), data[section])

    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])
    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"])
    if "database_url" in data:
        config.database_url = data["database_url"]

    return config


def _env_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _load_from_env(config: ForkSyncConfig, prefix: str) -> ForkSyncConfig:
    """Load configuration from environment variables."""

    # Legacy names first so the prefixed ones win
    if env_val := os.environ.get(LEGACY_ENV_DATABASE_URL):
        config.database_url = env_val
    if env_val := os.environ.get(LEGACY_ENV_REDIS_URL):
        config.queue.redis_url = env_val
    if env_val := os.environ.get(LEGACY_ENV_QUEUE_NAME):
        config.queue.name = env_val
    if env_val := os.environ.get(LEGACY_ENV_STALENESS):
        config.scheduler.staleness = env_val

    # Scheduler settings
    if env_val := os.environ.get(f"{prefix}INTERVAL_SECONDS"):
        config.scheduler.interval_seconds = int(env_val)
    if env_val := os.environ.get(f"{prefix}STALENESS"):
        config.scheduler.staleness = env_val
    if env_val := os.environ.get(f"{prefix}SINGLE_FLIGHT"):
        config.scheduler.single_flight = _env_bool(env_val)
    if env_val := os.environ.get(f"{prefix}FETCH_TIMEOUT"):
        config.scheduler.fetch_timeout = float(env_val)
    if env_val := os.environ.get(f"{prefix}PRESERVE_SHA_ON_MISSING_UPSTREAM"):
        config.scheduler.preserve_sha_on_missing_upstream = _env_bool(env_val)

    # Queue and status store
    if env_val := os.environ.get(f"{prefix}REDIS_URL"):
        config.queue.redis_url = env_val
    if env_val := os.environ.get(f"{prefix}QUEUE_NAME"):
        config.queue.name = env_val
    if env_val := os.environ.get(f"{prefix}STATUS_TTL_SECONDS"):
        config.status.ttl_seconds = int(env_val)

    # GitHub
    if env_val := os.environ.get(f"{prefix}GITHUB_API_URL"):
        config.github.api_url = env_val
    if env_val := os.environ.get(f"{prefix}GITHUB_TOKEN"):
        config.github.token = env_val

    # Logging
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


def ensure_directories(config: ForkSyncConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance (lazy-loaded)
_global_config: Optional[ForkSyncConfig] = None


def get_config() -> ForkSyncConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: ForkSyncConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


def _validate_url(url: str, schemes: tuple[str, ...] = ("http", "https")) -> bool:
    """Validate a URL format."""
    scheme_group = "|".join(schemes)
    url_pattern = rf"^({scheme_group})://[^\s/$.?#].[^\s]*$"
    return bool(re.match(url_pattern, url))


def validate_config(config: Optional[ForkSyncConfig] = None) -> List[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate (default: loaded from file)

    Returns:
        List of validation errors (empty if valid)
    """
    if config is None:
        config = load_config()

    errors: List[ValidationError] = []

    if config.scheduler.interval_seconds <= 0:
        errors.append(ValidationError(
            field="scheduler.interval_seconds",
            message="Polling interval must be a positive number of seconds.",
            severity="error"
        ))

    try:
        staleness = config.scheduler.staleness_delta
    except ConfigurationError as e:
        errors.append(ValidationError(
            field="scheduler.staleness",
            message=e.message,
            severity="error"
        ))
    else:
        if staleness.total_seconds() < config.scheduler.interval_seconds:
            errors.append(ValidationError(
                field="scheduler.staleness",
                message="Staleness is shorter than the polling interval; links are re-checked every tick.",
                severity="warning"
            ))

    if config.scheduler.fetch_timeout <= 0:
        errors.append(ValidationError(
            field="scheduler.fetch_timeout",
            message="Fetch timeout must be positive.",
            severity="error"
        ))

    if not _validate_url(config.queue.redis_url, ("redis", "rediss", "unix")):
        errors.append(ValidationError(
            field="queue.redis_url",
            message=f"Invalid Redis URL: {config.queue.redis_url}",
            severity="error"
        ))

    if not config.queue.name:
        errors.append(ValidationError(
            field="queue.name",
            message="Queue name must not be empty.",
            severity="error"
        ))

    if config.status.ttl_seconds <= 0:
        errors.append(ValidationError(
            field="status.ttl_seconds",
            message="Status TTL must be positive.",
            severity="error"
        ))

    if not _validate_url(config.github.api_url):
        errors.append(ValidationError(
            field="github.api_url",
            message=f"Invalid URL format: {config.github.api_url}",
            severity="error"
        ))

    if not config.github.token:
        errors.append(ValidationError(
            field="github.token",
            message="No fallback GitHub token set. Links whose owner has no token use anonymous rate limits.",
            severity="warning"
        ))

    return errors
