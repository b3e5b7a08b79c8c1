"""
animebell configuration management.

Handles loading, saving, and validating configuration from various sources:
- Default values
- Configuration file (TOML)
- Environment variables
"""

from __future__ import annotations

import json
import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tomli_w
import yaml
from croniter import croniter

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "animebell"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "animebell"

ENV_PREFIX = "ANIMEBELL_"


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class TelegramConfig:
    """Configuration for the Telegram delivery gateway."""

    bot_token: Optional[str] = None
    api_base: str = "https://api.telegram.org"
    timeout: float = 10.0


@dataclass
class MetadataConfig:
    """Configuration for the AniList metadata gateway."""

    endpoint: str = "https://graphql.anilist.co"
    timeout: float = 3.0


@dataclass
class SchedulerConfig:
    """Configuration for the job scheduler and its internal jobs."""

    # Reference time zone for cron triggers and the digest day window
    timezone: str = "UTC"

    daily_summary_cron: str = "0 9 * * *"
    release_check_cron: str = "0 8 * * *"

    # Seconds a recurring run may be late before it is reported as missed
    misfire_grace_time: int = 300

    # Worker pool size used by the digest and release sweeps
    max_concurrency: int = 4


@dataclass
class NotificationConfig:
    """Configuration for release alerts."""

    # Minimum seconds between on-demand checks by the same user
    check_cooldown: int = 15 * 60


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class AnimeBellConfig:
    """Main configuration container for animebell."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database
    database_url: str = ""

    def __post_init__(self) -> None:
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/animebell.db"

    @property
    def pid_file(self) -> Path:
        """Path of the daemon PID file."""
        return self.data_dir / "animebell.pid"


_SECTIONS = ("telegram", "metadata", "scheduler", "notifications", "logging")


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = ENV_PREFIX,
) -> AnimeBellConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/animebell/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration
    """
    config = AnimeBellConfig()

    if config_path is None:
        env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
        if env_config_dir:
            config_path = Path(env_config_dir) / DEFAULT_CONFIG_FILE
        else:
            config_path = DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE

    if config_path.exists():
        config = _load_from_file(config_path, config)

    config = _load_from_env(config, env_prefix)

    return config


def _load_from_file(path: Path, config: AnimeBellConfig) -> AnimeBellConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return config

    for section in _SECTIONS:
        if section not in data:
            continue
        section_obj = getattr(config, section)
        for key, value in data[section].items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)

    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])
    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"])
        if "database_url" not in data:
            config.database_url = f"sqlite:///{config.data_dir}/animebell.db"
    if "database_url" in data:
        config.database_url = data["database_url"]

    if isinstance(config.logging.file, str):
        config.logging.file = Path(config.logging.file)

    return config


def _load_from_env(config: AnimeBellConfig, prefix: str) -> AnimeBellConfig:
    """Load configuration from environment variables."""

    # Telegram
    if env_val := os.environ.get(f"{prefix}BOT_TOKEN"):
        config.telegram.bot_token = env_val
    # The bot token is commonly exported without a prefix
    elif env_val := os.environ.get("BOT_TOKEN"):
        config.telegram.bot_token = env_val
    if env_val := os.environ.get(f"{prefix}TELEGRAM_API_BASE"):
        config.telegram.api_base = env_val

    # Metadata
    if env_val := os.environ.get(f"{prefix}METADATA_ENDPOINT"):
        config.metadata.endpoint = env_val

    # Scheduler
    if env_val := os.environ.get(f"{prefix}TIMEZONE"):
        config.scheduler.timezone = env_val
    if env_val := os.environ.get(f"{prefix}DAILY_SUMMARY_CRON"):
        config.scheduler.daily_summary_cron = env_val
    if env_val := os.environ.get(f"{prefix}RELEASE_CHECK_CRON"):
        config.scheduler.release_check_cron = env_val
    if env_val := os.environ.get(f"{prefix}MAX_CONCURRENCY"):
        config.scheduler.max_concurrency = int(env_val)

    # Logging
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(env_val)
        config.database_url = f"sqlite:///{config.data_dir}/animebell.db"
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


def save_config(config: AnimeBellConfig, path: Optional[Path] = None) -> Path:
    """
    Save configuration to a TOML file.

    Secrets are written as stored; unset optional values are omitted.

    Args:
        config: Configuration to save
        path: Path to save to (default: config.config_dir / config.toml)

    Returns:
        The path written
    """
    if path is None:
        path = config.config_dir / DEFAULT_CONFIG_FILE

    path.parent.mkdir(parents=True, exist_ok=True)

    data = _config_to_dict(config, mask_secrets=False)
    with open(path, "wb") as f:
        tomli_w.dump(_drop_none(data), f)

    return path


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    """TOML has no null; remove unset values recursively."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            value = _drop_none(value)
        result[key] = value
    return result


# httpx logs request URLs, and Bot API URLs embed the bot token
_TOKEN_BEARING_LOGGERS = ("httpx", "httpcore")
# Job runs are already logged by the scheduler's event listeners
_CHATTY_LOGGERS = ("apscheduler",)


def quiet_library_loggers(debug: bool = False) -> None:
    """Raise the level of third-party loggers that are noisy or leak secrets.

    The HTTP client loggers stay at WARNING even in debug mode.
    """
    for name in _TOKEN_BEARING_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if debug else logging.WARNING)


def ensure_directories(config: AnimeBellConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance (lazy-loaded)
_global_config: Optional[AnimeBellConfig] = None


def get_config() -> AnimeBellConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: AnimeBellConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


def _validate_cron(cron: str) -> bool:
    """Validate a standard 5-field cron expression."""
    return len(cron.split()) == 5 and croniter.is_valid(cron)


def _validate_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def _validate_url(url: str) -> bool:
    """Validate a URL format."""
    url_pattern = r"^https?://[^\s/$.?#].[^\s]*$"
    return bool(re.match(url_pattern, url))


def validate_config(config: Optional[AnimeBellConfig] = None) -> List[ValidationError]:
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

    if not config.telegram.bot_token:
        errors.append(ValidationError(
            field="telegram.bot_token",
            message="Bot token not set. Reminders and digests cannot be delivered.",
            severity="warning",
        ))

    if not _validate_url(config.telegram.api_base):
        errors.append(ValidationError(
            field="telegram.api_base",
            message=f"Invalid URL format: {config.telegram.api_base}",
            severity="error",
        ))

    if not _validate_url(config.metadata.endpoint):
        errors.append(ValidationError(
            field="metadata.endpoint",
            message=f"Invalid URL format: {config.metadata.endpoint}",
            severity="error",
        ))

    if not _validate_timezone(config.scheduler.timezone):
        errors.append(ValidationError(
            field="scheduler.timezone",
            message=f"Unknown time zone: {config.scheduler.timezone}",
            severity="error",
        ))

    for name in ("daily_summary_cron", "release_check_cron"):
        cron = getattr(config.scheduler, name)
        if not _validate_cron(cron):
            errors.append(ValidationError(
                field=f"scheduler.{name}",
                message=f"Invalid cron expression: {cron}",
                severity="error",
            ))

    if config.scheduler.max_concurrency < 1:
        errors.append(ValidationError(
            field="scheduler.max_concurrency",
            message="Must be at least 1.",
            severity="error",
        ))

    if not config.data_dir.exists():
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory does not exist: {config.data_dir}",
            severity="warning",
        ))
    else:
        try:
            test_file = config.data_dir / ".write_test"
            test_file.touch()
            test_file.unlink()
        except OSError:
            errors.append(ValidationError(
                field="data_dir",
                message=f"Data directory is not writable: {config.data_dir}",
                severity="error",
            ))

    return errors


def _config_to_dict(config: AnimeBellConfig, mask_secrets: bool = True) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert
        mask_secrets: If True, mask sensitive values like the bot token

    Returns:
        Dictionary representation of config
    """
    def mask_value(key: str, value: Any) -> Any:
        if not mask_secrets:
            return value
        sensitive_keys = {"token", "password", "secret"}
        if value and any(sk in key.lower() for sk in sensitive_keys):
            if isinstance(value, str) and len(value) > 4:
                return value[:4] + "****"
            return "****"
        return value

    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": config.database_url,
        "telegram": {
            "bot_token": mask_value("bot_token", config.telegram.bot_token),
            "api_base": config.telegram.api_base,
            "timeout": config.telegram.timeout,
        },
        "metadata": {
            "endpoint": config.metadata.endpoint,
            "timeout": config.metadata.timeout,
        },
        "scheduler": {
            "timezone": config.scheduler.timezone,
            "daily_summary_cron": config.scheduler.daily_summary_cron,
            "release_check_cron": config.scheduler.release_check_cron,
            "misfire_grace_time": config.scheduler.misfire_grace_time,
            "max_concurrency": config.scheduler.max_concurrency,
        },
        "notifications": {
            "check_cooldown": config.notifications.check_cooldown,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def export_config_yaml(config: AnimeBellConfig, mask_secrets: bool = True) -> str:
    """Export configuration as a YAML string."""
    config_dict = _config_to_dict(config, mask_secrets)
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: AnimeBellConfig, mask_secrets: bool = True) -> str:
    """Export configuration as a JSON string."""
    config_dict = _config_to_dict(config, mask_secrets)
    return json.dumps(config_dict, indent=2)
